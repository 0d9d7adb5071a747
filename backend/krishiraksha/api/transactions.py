"""
Transaction Lifecycle API Endpoints

Records farmer batches on the ledger through a supervised lifecycle and
exposes its state for polling.

Lifecycle:
- POST starts recording in the background and returns immediately
- GET returns the current state snapshot
- retry/reset drive the lifecycle after a failure
"""
from fastapi import APIRouter
from typing import Dict, Any
import logging

from ..models.payload import FarmerRecord
from ..services.lifecycle_registry import lifecycle_registry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def start_transaction_endpoint(record: FarmerRecord) -> Dict[str, Any]:
    """
    Start recording a batch on the ledger.

    Returns:
        {
            "lifecycle_id": str,
            "batch_id": str,
            "state": TransactionState,
            "is_loading": bool,
            "can_retry": bool,
            "max_retries": int
        }

    Example:
        POST /api/transactions {"batchId": "KR12345", "cropType": "rice", "farmer": "Ramesh Kumar"}
    """
    entry = await lifecycle_registry.start(record.model_dump(by_alias=True, exclude_none=True))
    return entry.to_dict()


@router.get("/{lifecycle_id}")
async def get_transaction_endpoint(lifecycle_id: str) -> Dict[str, Any]:
    """
    Get the current lifecycle state.

    Errors:
        404 tx:lifecycle:not_found
    """
    logger.debug(f"Retrieving lifecycle: {lifecycle_id}")
    entry = await lifecycle_registry.get(lifecycle_id)
    return entry.to_dict()


@router.post("/{lifecycle_id}/retry")
async def retry_transaction_endpoint(lifecycle_id: str) -> Dict[str, Any]:
    """
    Retry a failed lifecycle after the configured delay.

    Errors:
        404 tx:lifecycle:not_found
        409 tx:lifecycle:in_progress
    """
    entry = await lifecycle_registry.retry(lifecycle_id)
    return entry.to_dict()


@router.post("/{lifecycle_id}/reset")
async def reset_transaction_endpoint(lifecycle_id: str) -> Dict[str, Any]:
    """Return a lifecycle to idle."""
    entry = await lifecycle_registry.reset(lifecycle_id)
    return entry.to_dict()
