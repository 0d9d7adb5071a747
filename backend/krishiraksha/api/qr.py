"""
QR Payload API Endpoints

Signs farmer batch records into QR payloads and verifies scanned payloads.

The signing secret comes from settings and is passed explicitly to the codec.
Verification failures are returned as 400 errors whose error code names the
failure kind (qr:payload:tampered, qr:payload:expired, ...).
"""
from fastapi import APIRouter
from pydantic import BaseModel, Field
from typing import Dict, Any
import logging

from ..config import settings
from ..exceptions import InvalidPayloadError
from ..models.payload import FarmerRecord, InvalidPayload
from ..services.qr_service import SignedPayloadCodec, format_for_display, qr_code_url

logger = logging.getLogger(__name__)

router = APIRouter()


class SignRequest(BaseModel):
    """Batch record to sign, with optional QR image size."""
    record: Dict[str, Any]
    size: int = Field(300, gt=0, le=1000)


class VerifyRequest(BaseModel):
    """Raw string read from a QR code."""
    payload: str


def get_codec() -> SignedPayloadCodec:
    """Codec configured from settings."""
    return SignedPayloadCodec(
        max_age_ms=settings.qr_max_age_days * 24 * 60 * 60 * 1000,
        version=settings.qr_payload_version,
    )


@router.post("/sign")
async def sign_endpoint(request: SignRequest) -> Dict[str, Any]:
    """
    Sign a farmer batch record.

    Request Body:
        {
            "record": {"batchId": str, "cropType": str, "farmer": str, ...},
            "size": int  # QR image size in pixels (default 300)
        }

    Returns:
        {
            "payload": str,  # signed envelope to embed in the QR code
            "qr_code_url": str
        }

    Errors:
        400 qr:payload:invalid_record when mandatory fields are missing
    """
    payload = get_codec().sign(request.record, settings.qr_signature_secret)
    logger.info(f"Signed QR payload for batch {request.record.get('batchId')}")

    return {
        "payload": payload,
        "qr_code_url": qr_code_url(payload, request.size),
    }


@router.post("/verify")
async def verify_endpoint(request: VerifyRequest) -> Dict[str, Any]:
    """
    Verify a scanned QR payload.

    Returns:
        {
            "is_valid": true,
            "data": {...},  # stamped record
            "display": [str, ...]
        }

    Errors:
        400 with error_code qr:payload:<kind> and details
        {"kind", "category", "recommendation", ...}
    """
    result = get_codec().verify(request.payload, settings.qr_signature_secret)

    if isinstance(result, InvalidPayload):
        raise InvalidPayloadError(
            result.kind.value,
            result.error,
            details={
                "kind": result.kind.value,
                "category": result.category.value,
                "recommendation": result.kind.recommendation,
                **result.details,
            }
        )

    return {
        "is_valid": True,
        "data": result.data,
        "display": format_for_display(result.data),
    }


@router.post("/display")
async def display_endpoint(record: FarmerRecord) -> Dict[str, Any]:
    """
    Preview display lines for a record without signing it.

    Example:
        POST /api/qr/display {"batchId": "KR12345", "cropType": "rice", "farmer": "Ramesh Kumar"}
    """
    return {"display": format_for_display(record.model_dump(by_alias=True, exclude_none=True))}
