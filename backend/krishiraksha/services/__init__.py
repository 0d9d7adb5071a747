"""
Services for signed QR payloads and transaction lifecycles.
"""
from .qr_service import SignedPayloadCodec, sign_payload, verify_payload
from .transaction_lifecycle import TransactionLifecycleController
from .confirmation import ConfirmationSource, SimulatedConfirmations, LedgerPollingConfirmations

__all__ = [
    "SignedPayloadCodec",
    "sign_payload",
    "verify_payload",
    "TransactionLifecycleController",
    "ConfirmationSource",
    "SimulatedConfirmations",
    "LedgerPollingConfirmations",
]
