"""
Mock Supply-Chain Ledger

Simulates recording farmer batches on a ledger for the demo.
Deterministic test scenarios are triggered by reserved batch IDs.

Stands in for the real ledger client: submit() returns a transaction hash,
get_confirmations() reports how many blocks have built on top of it.
"""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from ..exceptions import LedgerSubmissionError
from ..services.signature_service import create_canonical_json

logger = logging.getLogger(__name__)


# Batch IDs that trigger specific failures
FAILURE_BATCH_IDS = {
    "FAIL_NETWORK": "Ledger node unreachable",
    "FAIL_GAS": "Insufficient gas for transaction",
    "FAIL_REJECTED": "Transaction rejected by ledger",
}


class MockLedger:
    """
    In-memory ledger double.

    Every call to get_confirmations() advances the mined height of the
    queried transaction by one block, which makes confirmation polling
    progress without wall-clock time.
    """

    def __init__(self, available: bool = True):
        self.available = available
        self._nonce = 0
        self._confirmations: Dict[str, int] = {}
        self._records: Dict[str, Dict[str, Any]] = {}

    async def submit(self, record: Mapping[str, Any]) -> str:
        """
        Record a batch and return its transaction hash.

        Args:
            record: Batch fields (batchId used for failure scenarios)

        Returns:
            0x-prefixed transaction hash

        Raises:
            LedgerSubmissionError: Ledger unavailable or reserved failure batch ID
        """
        if not self.available:
            raise LedgerSubmissionError("Ledger is not available")

        batch_id = str(record.get("batchId", ""))
        if batch_id in FAILURE_BATCH_IDS:
            logger.info(f"Mock ledger rejecting batch {batch_id}")
            raise LedgerSubmissionError(
                FAILURE_BATCH_IDS[batch_id],
                details={"batch_id": batch_id}
            )

        # Deterministic hash from record content + nonce
        self._nonce += 1
        hash_input = f"{create_canonical_json(dict(record))}:{self._nonce}"
        tx_hash = f"0x{hashlib.sha256(hash_input.encode()).hexdigest()}"

        self._confirmations[tx_hash] = 0
        self._records[tx_hash] = dict(record)

        logger.info(f"Mock ledger recorded batch {batch_id}: {tx_hash}")
        return tx_hash

    async def get_confirmations(self, tx_hash: str) -> int:
        """
        Confirmation count of a transaction, advancing one block per call.

        Raises:
            LedgerSubmissionError: Unknown transaction hash
        """
        if tx_hash not in self._confirmations:
            raise LedgerSubmissionError(
                f"Unknown transaction: {tx_hash}",
                details={"tx_hash": tx_hash}
            )

        self._confirmations[tx_hash] += 1
        return self._confirmations[tx_hash]

    def get_record(self, tx_hash: str) -> Dict[str, Any]:
        """Return the batch stored under a transaction hash."""
        return self._records[tx_hash]

    def status(self) -> Dict[str, Any]:
        """
        Check ledger availability.

        Mock Behavior: Reports the configured availability and counters.
        """
        return {
            "status": "operational" if self.available else "unavailable",
            "recorded_transactions": len(self._records),
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }
