"""
Pydantic Transaction Lifecycle Model

Immutable snapshot of a transaction lifecycle: submission, confirmation
progress, outcome and retry bookkeeping.
"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class TransactionStatus(str, Enum):
    """Lifecycle status of a supervised transaction."""
    IDLE = "idle"
    PENDING = "pending"  # submit function awaited
    CONFIRMING = "confirming"  # submitted, awaiting confirmations
    SUCCESS = "success"
    FAILED = "failed"


class TransactionState(BaseModel):
    """
    Transaction lifecycle snapshot.

    Snapshots are frozen; the controller replaces its state on every
    transition, so a snapshot handed to a listener never changes under it.
    """
    status: TransactionStatus = TransactionStatus.IDLE
    tx_id: Optional[str] = None
    confirmations: Optional[int] = Field(None, ge=0)
    required_confirmations: int = Field(gt=0)
    error: Optional[str] = None
    retry_count: int = Field(0, ge=0)

    model_config = {
        "frozen": True,
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "status": "confirming",
                "tx_id": "0xabc123",
                "confirmations": 1,
                "required_confirmations": 3,
                "error": None,
                "retry_count": 0
            }
        }
    }

    @model_validator(mode='after')
    def validate_confirmations(self):
        """Confirmations never exceed the target."""
        if self.confirmations is not None and self.confirmations > self.required_confirmations:
            raise ValueError(
                f"Confirmations {self.confirmations} exceed required {self.required_confirmations}"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (TransactionStatus.SUCCESS, TransactionStatus.FAILED)
