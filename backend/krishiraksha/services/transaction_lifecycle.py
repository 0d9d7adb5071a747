"""
Transaction Lifecycle Controller

Drives a caller-supplied async submit function through a supervised lifecycle:

    idle --execute--> pending --submitted--> confirming --target reached--> success
    pending/confirming --error--> failed --retry--> pending
    any --reset--> idle

Submit and confirmation errors are captured into state and reported through
on_error; they never escape execute() or retry(). Exceptions raised by
callbacks and listeners are logged and contained. Retries are capped at
max_retries and each one waits retry_delay before the attempt begins.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from ..exceptions import SubmitTimeoutError, TransactionInProgressError
from ..models.transactions import TransactionState, TransactionStatus
from .confirmation import ConfirmationSource, SimulatedConfirmations, Sleep

logger = logging.getLogger(__name__)

SubmitFn = Callable[[], Awaitable[str]]
StateListener = Callable[[TransactionState], None]

GENERIC_FAILURE_MESSAGE = "Transaction failed"


class _SubmitRaisedTimeout(Exception):
    """Carries a TimeoutError raised by the submit function past wait_for."""

    def __init__(self, original: BaseException):
        self.original = original
        super().__init__(str(original))


class TransactionLifecycleController:
    """
    State machine around one async submit operation.

    One lifecycle is in flight at a time per controller. Each attempt is
    tagged with a generation; reset() starts a new generation so a late
    result from an abandoned attempt is dropped instead of overwriting state.
    """

    def __init__(
        self,
        required_confirmations: int = 3,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        confirmation_source: Optional[ConfirmationSource] = None,
        on_success: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        submit_timeout: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Args:
            required_confirmations: Confirmations needed to reach success
            max_retries: Retry attempts allowed after the initial failure
            retry_delay: Seconds to wait before each retry attempt
            confirmation_source: Strategy reporting confirmation progress
                (defaults to one simulated confirmation per second)
            on_success: Called with the transaction ID after success
            on_error: Called with the exception after a failure
            submit_timeout: Seconds before a pending submit is failed, or None
            sleep: Timer used for the retry delay
        """
        if required_confirmations < 1:
            raise ValueError(f"required_confirmations must be at least 1, got {required_confirmations}")
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")
        if retry_delay < 0:
            raise ValueError(f"retry_delay must be non-negative, got {retry_delay}")
        if submit_timeout is not None and submit_timeout <= 0:
            raise ValueError(f"submit_timeout must be positive, got {submit_timeout}")

        self.required_confirmations = required_confirmations
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.submit_timeout = submit_timeout
        self._confirmation_source = confirmation_source or SimulatedConfirmations(sleep=sleep)
        self._on_success = on_success
        self._on_error = on_error
        self._sleep = sleep

        self._state = TransactionState(required_confirmations=required_confirmations)
        self._listeners: List[StateListener] = []
        self._generation = 0
        self._in_flight = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def retry_count(self) -> int:
        return self._state.retry_count

    @property
    def is_loading(self) -> bool:
        return self._state.status in (TransactionStatus.PENDING, TransactionStatus.CONFIRMING)

    @property
    def can_retry(self) -> bool:
        return (
            self._state.status == TransactionStatus.FAILED
            and self._state.retry_count < self.max_retries
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called with every new state snapshot.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def execute(self, submit_fn: SubmitFn) -> None:
        """
        Run one attempt: submit, track confirmations, settle in success or failed.

        Raises:
            TransactionInProgressError: Another attempt is still in flight
        """
        generation = self._claim("execute")
        try:
            await self._run_attempt(submit_fn, generation)
        finally:
            self._release(generation)

    async def retry(self, submit_fn: SubmitFn) -> None:
        """
        Retry after a failure, waiting retry_delay first.

        When retries are exhausted the state keeps its status and only the
        error message changes.

        Raises:
            TransactionInProgressError: Another attempt is still in flight
        """
        if self._in_flight:
            raise TransactionInProgressError(
                "Cannot retry while a transaction is in progress",
                details={"status": self._state.status.value}
            )

        if self._state.retry_count >= self.max_retries:
            logger.warning(f"Retry refused: {self._state.retry_count}/{self.max_retries} attempts used")
            self._transition(error=f"Maximum retry attempts ({self.max_retries}) exceeded")
            return

        generation = self._claim("retry")
        try:
            self._transition(retry_count=self._state.retry_count + 1)
            logger.info(
                f"Retrying transaction (attempt {self._state.retry_count}/{self.max_retries}) "
                f"in {self.retry_delay}s"
            )
            await self._sleep(self.retry_delay)
            if self._is_stale(generation):
                return
            await self._run_attempt(submit_fn, generation)
        finally:
            self._release(generation)

    def reset(self) -> None:
        """Return to idle from any state, abandoning any in-flight attempt."""
        self._generation += 1
        self._in_flight = False
        self._transition(
            status=TransactionStatus.IDLE,
            tx_id=None,
            confirmations=None,
            error=None,
            retry_count=0,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _claim(self, operation: str) -> int:
        if self._in_flight:
            raise TransactionInProgressError(
                f"Cannot {operation} while a transaction is in progress",
                details={"status": self._state.status.value}
            )
        self._in_flight = True
        return self._generation

    def _release(self, generation: int) -> None:
        if not self._is_stale(generation):
            self._in_flight = False

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation:
            logger.info(f"Discarding result of abandoned attempt (generation {generation})")
            return True
        return False

    async def _run_attempt(self, submit_fn: SubmitFn, generation: int) -> None:
        self._transition(
            status=TransactionStatus.PENDING,
            tx_id=None,
            confirmations=None,
            error=None,
        )

        try:
            tx_id = await self._submit(submit_fn)
        except Exception as e:
            if not self._is_stale(generation):
                self._fail(e)
            return

        if self._is_stale(generation):
            return

        logger.info(f"Transaction submitted: {tx_id}")
        self._transition(status=TransactionStatus.CONFIRMING, tx_id=tx_id, confirmations=0)

        try:
            confirmed = await self._await_confirmations(tx_id, generation)
        except Exception as e:
            if not self._is_stale(generation):
                self._fail(e, tx_id=tx_id)
            return

        if not confirmed:
            return

        self._transition(status=TransactionStatus.SUCCESS, retry_count=0)
        logger.info(f"Transaction confirmed: {tx_id} ({self.required_confirmations} confirmations)")

        if self._on_success:
            self._notify("on_success", self._on_success, tx_id)

    async def _submit(self, submit_fn: SubmitFn) -> str:
        if self.submit_timeout is None:
            tx_id = await submit_fn()
        else:
            # TimeoutError raised by submit_fn itself must not look like ours
            async def guarded() -> str:
                try:
                    return await submit_fn()
                except asyncio.TimeoutError as e:
                    raise _SubmitRaisedTimeout(e) from e

            try:
                tx_id = await asyncio.wait_for(guarded(), timeout=self.submit_timeout)
            except _SubmitRaisedTimeout as wrapped:
                raise wrapped.original
            except asyncio.TimeoutError as e:
                raise SubmitTimeoutError(
                    f"Transaction submission timed out after {self.submit_timeout}s",
                    details={"timeout_seconds": self.submit_timeout}
                ) from e

        if not isinstance(tx_id, str) or not tx_id:
            raise ValueError(f"Submit function returned an invalid transaction identifier: {tx_id!r}")
        return tx_id

    async def _await_confirmations(self, tx_id: str, generation: int) -> bool:
        """Advance confirmations one at a time; False if the attempt was abandoned."""
        confirmations = 0
        while confirmations < self.required_confirmations:
            observed = await self._confirmation_source.next_count(tx_id, confirmations)
            if self._is_stale(generation):
                return False

            if observed < confirmations:
                logger.warning(
                    f"Confirmation count for {tx_id} went backwards ({confirmations} -> {observed}), ignoring"
                )
                continue

            for count in range(confirmations + 1, min(observed, self.required_confirmations) + 1):
                confirmations = count
                self._transition(confirmations=confirmations)

        return True

    def _fail(self, error: Exception, tx_id: Optional[str] = None) -> None:
        message = str(error) or GENERIC_FAILURE_MESSAGE
        logger.warning(f"Transaction failed: {message}")

        self._transition(
            status=TransactionStatus.FAILED,
            tx_id=tx_id,
            error=message,
        )

        if self._on_error:
            self._notify("on_error", self._on_error, error)

    def _transition(self, **changes: Any) -> None:
        self._state = TransactionState(**{**self._state.model_dump(), **changes})
        for listener in list(self._listeners):
            self._notify("listener", listener, self._state)

    def _notify(self, name: str, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Lifecycle {name} callback raised: {e}", exc_info=True)
