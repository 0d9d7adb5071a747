"""
Krishiraksha Exception Hierarchy

Standard error codes for the signed-payload codec and the transaction
lifecycle. Codes are namespaced (qr:*, tx:*) so API clients can branch on them.
"""
from typing import Optional, Dict, Any


class KrishirakshaError(Exception):
    """
    Base exception for all Krishiraksha errors.

    Every error carries a stable error code, a human-readable message and
    optional structured details for the API response.
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class SerializationError(KrishirakshaError):
    """
    Record could not be serialized to canonical JSON.

    Examples:
    - Record contains a set, bytes or an arbitrary object
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("qr:payload:serialization", message, details)


class RecordValidationError(KrishirakshaError):
    """
    Record is missing mandatory fields before signing.

    Examples:
    - batchId, farmer or cropType missing or empty
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("qr:payload:invalid_record", message, details)


class SigningKeyError(KrishirakshaError):
    """Signing secret is missing or empty."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("qr:key:missing", message, details)


class InvalidPayloadError(KrishirakshaError):
    """
    Signed payload failed verification.

    Only raised at the API boundary; the codec itself returns typed results.
    The error code embeds the failure kind, e.g. qr:payload:tampered.
    """

    def __init__(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        super().__init__(f"qr:payload:{kind.lower()}", message, details)


class TransactionInProgressError(KrishirakshaError):
    """
    A lifecycle attempt is already in flight on this controller.

    Example:
    - execute() called again while the previous submit is still confirming
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("tx:lifecycle:in_progress", message, details)


class SubmitTimeoutError(KrishirakshaError):
    """Submit function did not resolve within the configured timeout."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("tx:submit:timeout", message, details)


class LedgerSubmissionError(KrishirakshaError):
    """
    Ledger rejected a submitted record.

    Examples:
    - Reserved failure batch IDs in the mock ledger
    - Ledger reported as unavailable
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("tx:ledger:rejected", message, details)


class LifecycleNotFoundError(KrishirakshaError):
    """No lifecycle registered under the requested ID."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("tx:lifecycle:not_found", message, details)
