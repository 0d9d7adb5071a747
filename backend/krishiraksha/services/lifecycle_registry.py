"""
Lifecycle Registry

Keeps transaction lifecycle controllers in memory so the API can start a
lifecycle in the background and let clients poll its state.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Mapping, Optional

from ..config import settings
from ..exceptions import LifecycleNotFoundError, TransactionInProgressError
from ..mocks.ledger import MockLedger
from .confirmation import LedgerPollingConfirmations
from .transaction_lifecycle import TransactionLifecycleController

logger = logging.getLogger(__name__)


class LifecycleEntry:
    """A controller with the batch it records and its running task."""

    def __init__(self, lifecycle_id: str, controller: TransactionLifecycleController, record: Dict[str, Any]):
        self.lifecycle_id = lifecycle_id
        self.controller = controller
        self.record = record
        self.task: Optional[asyncio.Task] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lifecycle_id": self.lifecycle_id,
            "batch_id": self.record.get("batchId"),
            "state": self.controller.state.model_dump(mode="json"),
            "is_loading": self.controller.is_loading,
            "can_retry": self.controller.can_retry,
            "max_retries": self.controller.max_retries,
        }


class LifecycleRegistry:
    """
    In-memory registry of lifecycles recording batches on the ledger.

    Controllers are configured from settings and poll the ledger for
    confirmations. Once more than max_entries lifecycles are held, the oldest
    settled ones are evicted on the next start; running ones are never evicted.
    """

    def __init__(self, ledger: Optional[MockLedger] = None, max_entries: int = 1000):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self.ledger = ledger or MockLedger()
        self.max_entries = max_entries
        self._entries: Dict[str, LifecycleEntry] = {}
        self._lock = asyncio.Lock()

    def _build_controller(self) -> TransactionLifecycleController:
        return TransactionLifecycleController(
            required_confirmations=settings.tx_required_confirmations,
            max_retries=settings.tx_max_retries,
            retry_delay=settings.tx_retry_delay_seconds,
            confirmation_source=LedgerPollingConfirmations(
                self.ledger.get_confirmations,
                interval=settings.tx_confirmation_interval_seconds,
            ),
            submit_timeout=settings.tx_submit_timeout_seconds,
        )

    async def start(self, record: Mapping[str, Any]) -> LifecycleEntry:
        """Register a lifecycle for a batch and start recording it."""
        lifecycle_id = f"lc_{uuid.uuid4().hex[:16]}"
        entry = LifecycleEntry(lifecycle_id, self._build_controller(), dict(record))

        async with self._lock:
            self._entries[lifecycle_id] = entry
            self._evict_settled(keep=lifecycle_id)

        entry.task = asyncio.create_task(entry.controller.execute(self._submit_fn(entry)))
        logger.info(f"Started lifecycle {lifecycle_id} for batch {entry.record.get('batchId')}")
        return entry

    async def get(self, lifecycle_id: str) -> LifecycleEntry:
        async with self._lock:
            entry = self._entries.get(lifecycle_id)

        if entry is None:
            raise LifecycleNotFoundError(
                f"No lifecycle found with ID: {lifecycle_id}",
                details={"lifecycle_id": lifecycle_id}
            )
        return entry

    async def retry(self, lifecycle_id: str) -> LifecycleEntry:
        """Schedule a retry; the retry delay runs in the background."""
        entry = await self.get(lifecycle_id)
        if entry.controller.is_loading or (entry.task is not None and not entry.task.done()):
            raise TransactionInProgressError(
                "Cannot retry while a transaction is in progress",
                details={"lifecycle_id": lifecycle_id}
            )

        entry.task = asyncio.create_task(entry.controller.retry(self._submit_fn(entry)))
        # Let the retry claim the controller before answering
        await asyncio.sleep(0)
        return entry

    async def reset(self, lifecycle_id: str) -> LifecycleEntry:
        entry = await self.get(lifecycle_id)
        entry.controller.reset()
        return entry

    def _evict_settled(self, keep: str) -> None:
        # Dicts keep insertion order, so the first settled entries are the oldest
        excess = len(self._entries) - self.max_entries
        if excess <= 0:
            return
        settled = [
            lifecycle_id for lifecycle_id, entry in self._entries.items()
            if lifecycle_id != keep
            and not entry.controller.is_loading
            and (entry.task is None or entry.task.done())
        ]
        for lifecycle_id in settled[:excess]:
            del self._entries[lifecycle_id]
            logger.info(f"Evicted settled lifecycle {lifecycle_id}")

    def _submit_fn(self, entry: LifecycleEntry):
        async def submit() -> str:
            return await self.ledger.submit(entry.record)
        return submit


# Global registry instance
lifecycle_registry = LifecycleRegistry()
