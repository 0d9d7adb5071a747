"""
Pydantic models for signed QR payloads and transaction lifecycles.
"""
from .payload import (
    FarmerRecord,
    StampedRecord,
    IssueCategory,
    InvalidKind,
    ValidPayload,
    InvalidPayload,
    VerificationResult,
)
from .transactions import TransactionStatus, TransactionState

__all__ = [
    "FarmerRecord",
    "StampedRecord",
    "IssueCategory",
    "InvalidKind",
    "ValidPayload",
    "InvalidPayload",
    "VerificationResult",
    "TransactionStatus",
    "TransactionState",
]
