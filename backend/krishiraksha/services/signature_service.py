"""
Signature Service for Signed QR Payloads

Implements canonical JSON serialization and HMAC-SHA256 signing/verification.
The secret is always passed in by the caller; nothing here reads settings.
"""
import hmac
import hashlib
import json
from typing import Dict, Any

from ..exceptions import SerializationError, SigningKeyError

ALGORITHM = "HMAC-SHA256"


def create_canonical_json(data: Any) -> str:
    """
    Create canonical JSON representation for signing.

    Ensures consistent serialization:
    - Sorted keys
    - No whitespace
    - UTF-8 encoding

    Raises:
        SerializationError: If data contains values JSON cannot represent
    """
    try:
        return json.dumps(data, sort_keys=True, separators=(',', ':'))
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(
            f"Record cannot be serialized: {e}",
            details={"error_type": type(e).__name__}
        ) from e


def require_secret(secret_key: str) -> str:
    """Reject empty or non-string secrets."""
    if not isinstance(secret_key, str) or not secret_key:
        raise SigningKeyError("Signing secret must be a non-empty string")
    return secret_key


def compute_signature(data: Dict[str, Any], secret_key: str) -> str:
    """
    Sign data using HMAC-SHA256.

    Args:
        data: Stamped record as dictionary
        secret_key: Shared HMAC secret

    Returns:
        Lowercase hexadecimal digest (64 characters)
    """
    canonical_data = create_canonical_json(data)

    signature_bytes = hmac.new(
        require_secret(secret_key).encode('utf-8'),
        canonical_data.encode('utf-8'),
        hashlib.sha256
    ).digest()

    return signature_bytes.hex()


def verify_signature(
    data: Dict[str, Any],
    signature_value: str,
    secret_key: str
) -> bool:
    """
    Verify signature using constant-time comparison.

    Args:
        data: Stamped record as dictionary
        signature_value: Hex digest presented alongside the data
        secret_key: Shared HMAC secret

    Returns:
        True if signature valid, False otherwise
    """
    try:
        expected_signature_value = compute_signature(data, secret_key)
    except SerializationError:
        return False

    # Compare bytes: compare_digest rejects non-ASCII str operands
    return hmac.compare_digest(
        expected_signature_value.encode('utf-8'),
        signature_value.encode('utf-8')
    )
