"""
QR Payload Service

Builds and verifies tamper-evident, expiring QR payloads for farmer batches.

A payload is the canonical JSON envelope {"data": stamped_record, "signature": hex}
where the signature is HMAC-SHA256 over the canonical serialization of data.
Verification never raises for a bad payload; it returns a typed result whose
kind tells the caller whether it faces tampering, staleness or a format bug.
"""
import json
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

from pydantic import ValidationError

from ..exceptions import RecordValidationError
from ..models.payload import (
    FarmerRecord,
    StampedRecord,
    InvalidKind,
    ValidPayload,
    InvalidPayload,
    VerificationResult,
)
from .signature_service import (
    create_canonical_json,
    compute_signature,
    require_secret,
    verify_signature,
)

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = "1.0"
MAX_AGE_MS = 30 * 24 * 60 * 60 * 1000  # 30 days
QR_RENDER_URL = "https://api.qrserver.com/v1/create-qr-code/"


def now_ms() -> int:
    """Current wall-clock time in milliseconds since epoch."""
    return int(time.time() * 1000)


def _missing_fields(error: ValidationError) -> List[str]:
    return sorted({".".join(str(part) for part in err["loc"]) for err in error.errors()})


class SignedPayloadCodec:
    """
    Signs and verifies QR payloads.

    Stateless apart from its fixed parameters: the secret is passed on every
    call and the clock is injectable for tests.
    """

    def __init__(
        self,
        max_age_ms: int = MAX_AGE_MS,
        version: str = PAYLOAD_VERSION,
        clock: Callable[[], int] = now_ms
    ):
        if max_age_ms <= 0:
            raise ValueError(f"max_age_ms must be positive, got {max_age_ms}")
        self.max_age_ms = max_age_ms
        self.version = version
        self._clock = clock

    def sign(self, record: Union[Mapping[str, Any], FarmerRecord], secret: str) -> str:
        """
        Stamp a farmer record with time and version, sign it, return the envelope.

        Args:
            record: Batch fields (mapping or FarmerRecord)
            secret: Shared HMAC secret, non-empty

        Returns:
            Canonical JSON envelope string, safe to embed in a QR code

        Raises:
            SigningKeyError: Secret empty
            RecordValidationError: Mandatory fields missing or empty
            SerializationError: Record holds values JSON cannot represent
        """
        require_secret(secret)

        if isinstance(record, FarmerRecord):
            fields = record.model_dump(by_alias=True, exclude_none=True)
        else:
            fields = dict(record)
            try:
                FarmerRecord.model_validate(fields)
            except ValidationError as e:
                raise RecordValidationError(
                    "Record is missing required information",
                    details={"fields": _missing_fields(e)}
                ) from e

        data = {
            **fields,
            "timestamp": self._clock(),
            "version": self.version,
        }
        signature = compute_signature(data, secret)

        logger.debug(
            f"Signed QR payload: batch={data.get('batchId', data.get('batch_id'))}, "
            f"timestamp={data['timestamp']}"
        )

        return create_canonical_json({"data": data, "signature": signature})

    def verify(self, signed: str, secret: str) -> VerificationResult:
        """
        Verify a signed QR payload.

        Checks run in a fixed order and the first failure wins:
        malformed envelope, missing signature, tampered, expired, incomplete.

        Raises:
            SigningKeyError: Secret empty (configuration error, not a bad payload)
        """
        require_secret(secret)

        try:
            envelope = json.loads(signed)
        except (TypeError, ValueError, RecursionError):
            return self._invalid(InvalidKind.MALFORMED_ENVELOPE)

        if not isinstance(envelope, dict):
            return self._invalid(
                InvalidKind.MALFORMED_ENVELOPE,
                {"reason": f"envelope is {type(envelope).__name__}, expected object"}
            )

        data = envelope.get("data")
        signature = envelope.get("signature")

        if data is not None and not isinstance(data, dict):
            return self._invalid(InvalidKind.MALFORMED_ENVELOPE, {"reason": "data is not an object"})
        if signature is not None and not isinstance(signature, str):
            return self._invalid(InvalidKind.MALFORMED_ENVELOPE, {"reason": "signature is not a string"})

        if not data or not signature:
            return self._invalid(InvalidKind.MISSING_SIGNATURE)

        if not verify_signature(data, signature, secret):
            return self._invalid(InvalidKind.TAMPERED)

        timestamp = data.get("timestamp")
        if isinstance(timestamp, int) and not isinstance(timestamp, bool):
            age_ms = self._clock() - timestamp
            if age_ms > self.max_age_ms:
                return self._invalid(
                    InvalidKind.EXPIRED,
                    {"age_ms": age_ms, "max_age_ms": self.max_age_ms}
                )

        try:
            StampedRecord.model_validate(data)
        except ValidationError as e:
            return self._invalid(InvalidKind.INCOMPLETE_RECORD, {"fields": _missing_fields(e)})

        if data["version"] != self.version:
            return self._invalid(
                InvalidKind.INCOMPLETE_RECORD,
                {"reason": "unsupported version", "version": data["version"]}
            )

        return ValidPayload(data=data)

    def _invalid(self, kind: InvalidKind, details: Optional[Dict[str, Any]] = None) -> InvalidPayload:
        logger.info(f"QR payload rejected: {kind.value}")
        return InvalidPayload(kind=kind, error=kind.message, details=details or {})


# ============================================================================
# Presentation helpers
# ============================================================================

def _format_date(value: Any) -> str:
    try:
        return date.fromisoformat(str(value)[:10]).strftime("%d %b %Y")
    except ValueError:
        return str(value)


def format_for_display(data: Mapping[str, Any]) -> List[str]:
    """
    Format stamped QR data as human-readable lines.

    Optional quantity and organic certification lines appear only when set.
    """
    lines = [
        f"Batch ID: {data.get('batchId')}",
        f"Crop: {data.get('cropType')}",
        f"Farmer: {data.get('farmer')}",
        f"Harvest Date: {_format_date(data.get('harvestDate'))}",
        f"Location: {data.get('location')}",
    ]

    if data.get("quantity"):
        lines.append(f"Quantity: {data['quantity']} {data.get('unit') or 'kg'}")
    if data.get("organicCertified"):
        lines.append("✓ Organic Certified")

    timestamp = data.get("timestamp")
    if isinstance(timestamp, (int, float)):
        generated = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
        lines.append(f"Generated: {generated.strftime('%d %b %Y')}")

    return lines


def qr_code_url(signed: str, size: int = 300) -> str:
    """URL of a rendered QR image carrying the signed payload."""
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    return f"{QR_RENDER_URL}?size={size}x{size}&data={quote(signed, safe='')}"


# ============================================================================
# Module-level helpers (default codec)
# ============================================================================

_default_codec = SignedPayloadCodec()


def sign_payload(record: Union[Mapping[str, Any], FarmerRecord], secret: str) -> str:
    """Sign with the default 30-day, version 1.0 codec."""
    return _default_codec.sign(record, secret)


def verify_payload(signed: str, secret: str) -> VerificationResult:
    """Verify with the default 30-day, version 1.0 codec."""
    return _default_codec.verify(signed, secret)
