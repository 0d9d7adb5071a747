"""
Pydantic Models for Signed QR Payloads

Defines the farmer batch record carried inside a QR code, the stamped form
that gets signed, and the typed verification outcome.
"""
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field


# ==================== Records ====================

class FarmerRecord(BaseModel):
    """
    Farmer batch record embedded in a QR code.

    Mandatory fields identify the batch (batchId), the principal (farmer)
    and the classification (cropType). Any other caller-defined field is
    allowed and signed along with the rest.
    """
    batch_id: str = Field(alias="batchId", min_length=1)
    crop_type: str = Field(alias="cropType", min_length=1)
    farmer: str = Field(min_length=1)
    harvest_date: Optional[str] = Field(None, alias="harvestDate")
    location: Optional[str] = None
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    organic_certified: Optional[bool] = Field(None, alias="organicCertified")

    model_config = {
        "populate_by_name": True,
        "extra": "allow",
        "str_strip_whitespace": True,
        "json_schema_extra": {
            "example": {
                "batchId": "KR12345",
                "cropType": "rice",
                "farmer": "Ramesh Kumar",
                "harvestDate": "2024-01-15",
                "location": "Punjab",
                "quantity": 100,
                "unit": "kg",
                "organicCertified": True
            }
        }
    }


class StampedRecord(FarmerRecord):
    """Farmer record as signed: adds the creation time and schema version."""
    timestamp: int = Field(strict=True, ge=0, description="Milliseconds since epoch")
    version: str = Field(min_length=1)


# ==================== Verification Outcome ====================

class IssueCategory(str, Enum):
    """How a verification failure should be treated by the caller."""
    INTEGRITY = "integrity"  # active tampering signal, block
    STALENESS = "staleness"  # routine, request a fresh code
    FORMAT = "format"  # issuer or caller bug


class InvalidKind(str, Enum):
    """Reason a signed payload was rejected, in evaluation order."""
    MALFORMED_ENVELOPE = "MALFORMED_ENVELOPE"
    MISSING_SIGNATURE = "MISSING_SIGNATURE"
    TAMPERED = "TAMPERED"
    EXPIRED = "EXPIRED"
    INCOMPLETE_RECORD = "INCOMPLETE_RECORD"

    @property
    def message(self) -> str:
        return _MESSAGES[self]

    @property
    def category(self) -> IssueCategory:
        return _CATEGORIES[self]

    @property
    def recommendation(self) -> str:
        return _RECOMMENDATIONS[self]


_MESSAGES = {
    InvalidKind.MALFORMED_ENVELOPE: "Invalid QR code format",
    InvalidKind.MISSING_SIGNATURE: "QR code is missing security signature",
    InvalidKind.TAMPERED: "QR code has been tampered with or is invalid",
    InvalidKind.EXPIRED: "QR code has expired",
    InvalidKind.INCOMPLETE_RECORD: "QR code is missing required information",
}

_CATEGORIES = {
    InvalidKind.MALFORMED_ENVELOPE: IssueCategory.FORMAT,
    InvalidKind.MISSING_SIGNATURE: IssueCategory.INTEGRITY,
    InvalidKind.TAMPERED: IssueCategory.INTEGRITY,
    InvalidKind.EXPIRED: IssueCategory.STALENESS,
    InvalidKind.INCOMPLETE_RECORD: IssueCategory.FORMAT,
}

_RECOMMENDATIONS = {
    InvalidKind.MALFORMED_ENVELOPE: "Ensure you are scanning a valid Krishiraksha QR code.",
    InvalidKind.MISSING_SIGNATURE: "This may be a counterfeit. Do not proceed with this transaction.",
    InvalidKind.TAMPERED: "Request a new QR code from the farmer or verify the source.",
    InvalidKind.EXPIRED: "Request an updated QR code from the farmer.",
    InvalidKind.INCOMPLETE_RECORD: "Ask the issuer to regenerate the QR code with complete batch details.",
}


class ValidPayload(BaseModel):
    """Signature matched, payload is fresh and complete."""
    is_valid: Literal[True] = True
    data: Dict[str, Any]

    @property
    def record(self) -> StampedRecord:
        return StampedRecord.model_validate(self.data)


class InvalidPayload(BaseModel):
    """Payload rejected; kind is the first failing check."""
    is_valid: Literal[False] = False
    kind: InvalidKind
    error: str
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def category(self) -> IssueCategory:
        return self.kind.category


VerificationResult = Union[ValidPayload, InvalidPayload]
