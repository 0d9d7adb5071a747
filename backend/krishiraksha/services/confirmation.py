"""
Confirmation Sources

Pluggable strategies that report how many confirmations a submitted
transaction has accumulated. The lifecycle controller asks a source for the
next count until the target is reached; sources own their own waiting.

- SimulatedConfirmations: one confirmation per fixed interval
- LedgerPollingConfirmations: polls a ledger query at a fixed interval
"""
import asyncio
import logging
from typing import Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
PollFn = Callable[[str], Awaitable[int]]


class ConfirmationSource(Protocol):
    """Reports the confirmation count of a submitted transaction."""

    async def next_count(self, tx_id: str, current: int) -> int:
        """
        Wait for progress and return the latest confirmation count.

        Args:
            tx_id: Identifier returned by the submit function
            current: Count the controller has already observed

        Raises:
            Exception: Any error fails the lifecycle (confirming -> failed)
        """
        ...


class SimulatedConfirmations:
    """
    Stand-in for real confirmation tracking.

    Waits a fixed interval and reports one more confirmation than before.
    """

    def __init__(self, interval: float = 1.0, sleep: Sleep = asyncio.sleep):
        if interval < 0:
            raise ValueError(f"interval must be non-negative, got {interval}")
        self.interval = interval
        self._sleep = sleep

    async def next_count(self, tx_id: str, current: int) -> int:
        await self._sleep(self.interval)
        return current + 1


class LedgerPollingConfirmations:
    """
    Polls a ledger for the confirmation count of a transaction.

    The poll function receives the transaction ID and returns the count the
    ledger currently reports. Errors raised by it propagate to the controller.
    """

    def __init__(self, poll: PollFn, interval: float = 1.0, sleep: Sleep = asyncio.sleep):
        if interval < 0:
            raise ValueError(f"interval must be non-negative, got {interval}")
        self._poll = poll
        self.interval = interval
        self._sleep = sleep

    async def next_count(self, tx_id: str, current: int) -> int:
        await self._sleep(self.interval)
        count = await self._poll(tx_id)
        logger.debug(f"Polled confirmations for {tx_id}: {count} (previously {current})")
        return count
