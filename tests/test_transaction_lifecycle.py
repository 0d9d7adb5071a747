"""Tests for the transaction lifecycle state machine."""
import asyncio

import pytest

from krishiraksha.exceptions import SubmitTimeoutError, TransactionInProgressError
from krishiraksha.models.transactions import TransactionStatus
from krishiraksha.services.confirmation import LedgerPollingConfirmations
from krishiraksha.services.transaction_lifecycle import TransactionLifecycleController

from .conftest import FakeSleep


def make_controller(fake_sleep, **kwargs):
    return TransactionLifecycleController(sleep=fake_sleep, **kwargs)


def resolving(tx_id="0xabc123", calls=None):
    async def submit():
        if calls is not None:
            calls.append(("submit",))
        return tx_id
    return submit


def failing(message="Transaction failed", calls=None):
    async def submit():
        if calls is not None:
            calls.append(("submit",))
        raise RuntimeError(message)
    return submit


def record_states(controller):
    seen = []
    controller.subscribe(lambda state: seen.append(state))
    return seen


class TestInitialState:

    def test_starts_idle(self, fake_sleep):
        controller = make_controller(fake_sleep)

        assert controller.state.status == TransactionStatus.IDLE
        assert controller.is_loading is False
        assert controller.can_retry is False
        assert controller.retry_count == 0
        assert controller.state.required_confirmations == 3

    def test_custom_required_confirmations(self, fake_sleep):
        controller = make_controller(fake_sleep, required_confirmations=5)
        assert controller.state.required_confirmations == 5

    @pytest.mark.parametrize("kwargs", [
        {"required_confirmations": 0},
        {"max_retries": -1},
        {"retry_delay": -0.5},
        {"submit_timeout": 0},
    ])
    def test_invalid_configuration(self, fake_sleep, kwargs):
        with pytest.raises(ValueError):
            make_controller(fake_sleep, **kwargs)


class TestExecute:

    @pytest.mark.asyncio
    async def test_success_state_sequence(self, fake_sleep):
        successes = []
        controller = make_controller(fake_sleep, required_confirmations=2, on_success=successes.append)
        seen = record_states(controller)

        await controller.execute(resolving("0xabc123"))

        assert [(s.status, s.confirmations) for s in seen] == [
            (TransactionStatus.PENDING, None),
            (TransactionStatus.CONFIRMING, 0),
            (TransactionStatus.CONFIRMING, 1),
            (TransactionStatus.CONFIRMING, 2),
            (TransactionStatus.SUCCESS, 2),
        ]
        assert controller.state.tx_id == "0xabc123"
        assert successes == ["0xabc123"]

    @pytest.mark.asyncio
    async def test_simulated_confirmations_wait_between_ticks(self, fake_sleep):
        controller = make_controller(fake_sleep, required_confirmations=3)

        await controller.execute(resolving())

        assert fake_sleep.delays == [1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_pending_is_set_before_submit_resolves(self, fake_sleep):
        release = asyncio.Event()

        async def submit():
            await release.wait()
            return "0xabc123"

        controller = make_controller(fake_sleep)
        task = asyncio.create_task(controller.execute(submit))
        await asyncio.sleep(0)

        assert controller.state.status == TransactionStatus.PENDING
        assert controller.is_loading is True

        release.set()
        await task
        assert controller.state.status == TransactionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_submit_failure_is_captured(self, fake_sleep):
        errors = []
        controller = make_controller(fake_sleep, on_error=errors.append)

        await controller.execute(failing("Transaction failed"))

        assert controller.state.status == TransactionStatus.FAILED
        assert controller.state.error == "Transaction failed"
        assert controller.can_retry is True
        assert controller.retry_count == 0
        assert len(errors) == 1
        assert str(errors[0]) == "Transaction failed"

    @pytest.mark.asyncio
    async def test_failure_without_message_uses_generic_text(self, fake_sleep):
        async def submit():
            raise RuntimeError()

        controller = make_controller(fake_sleep)
        await controller.execute(submit)

        assert controller.state.error == "Transaction failed"

    @pytest.mark.asyncio
    async def test_invalid_transaction_id_fails(self, fake_sleep):
        controller = make_controller(fake_sleep)
        await controller.execute(resolving(""))

        assert controller.state.status == TransactionStatus.FAILED
        assert "invalid transaction identifier" in controller.state.error

    @pytest.mark.asyncio
    async def test_confirmation_error_fails_and_keeps_tx_id(self, fake_sleep):
        async def poll(tx_id):
            raise ConnectionError("Ledger node unreachable")

        errors = []
        controller = make_controller(
            fake_sleep,
            confirmation_source=LedgerPollingConfirmations(poll, sleep=fake_sleep),
            on_error=errors.append,
        )
        await controller.execute(resolving("0xdef456"))

        assert controller.state.status == TransactionStatus.FAILED
        assert controller.state.tx_id == "0xdef456"
        assert controller.state.error == "Ledger node unreachable"
        assert isinstance(errors[0], ConnectionError)

    @pytest.mark.asyncio
    async def test_polled_jumps_are_emitted_one_at_a_time(self, fake_sleep):
        counts = iter([0, 2, 7])

        async def poll(tx_id):
            return next(counts)

        controller = make_controller(
            fake_sleep,
            required_confirmations=3,
            confirmation_source=LedgerPollingConfirmations(poll, sleep=fake_sleep),
        )
        seen = record_states(controller)
        await controller.execute(resolving())

        confirming = [s.confirmations for s in seen if s.status == TransactionStatus.CONFIRMING]
        assert confirming == [0, 1, 2, 3]
        assert controller.state.status == TransactionStatus.SUCCESS
        assert controller.state.confirmations == 3

    @pytest.mark.asyncio
    async def test_polled_regression_is_ignored(self, fake_sleep):
        counts = iter([2, 1, 3])

        async def poll(tx_id):
            return next(counts)

        controller = make_controller(
            fake_sleep,
            required_confirmations=3,
            confirmation_source=LedgerPollingConfirmations(poll, sleep=fake_sleep),
        )
        seen = record_states(controller)
        await controller.execute(resolving())

        confirming = [s.confirmations for s in seen if s.status == TransactionStatus.CONFIRMING]
        assert confirming == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_submit_timeout(self, fake_sleep):
        async def submit():
            await asyncio.Event().wait()

        errors = []
        controller = make_controller(fake_sleep, submit_timeout=0.01, on_error=errors.append)
        await controller.execute(submit)

        assert controller.state.status == TransactionStatus.FAILED
        assert "timed out" in controller.state.error
        assert isinstance(errors[0], SubmitTimeoutError)

    @pytest.mark.asyncio
    async def test_timeout_raised_by_submit_keeps_its_message(self, fake_sleep):
        async def submit():
            raise asyncio.TimeoutError("RPC gateway timeout")

        errors = []
        controller = make_controller(fake_sleep, submit_timeout=30, on_error=errors.append)
        await controller.execute(submit)

        assert controller.state.status == TransactionStatus.FAILED
        assert controller.state.error == "RPC gateway timeout"
        assert isinstance(errors[0], asyncio.TimeoutError)
        assert not isinstance(errors[0], SubmitTimeoutError)

    @pytest.mark.asyncio
    async def test_concurrent_execute_is_rejected(self, fake_sleep):
        release = asyncio.Event()

        async def submit():
            await release.wait()
            return "0xabc123"

        controller = make_controller(fake_sleep)
        task = asyncio.create_task(controller.execute(submit))
        await asyncio.sleep(0)

        with pytest.raises(TransactionInProgressError):
            await controller.execute(resolving())
        with pytest.raises(TransactionInProgressError):
            await controller.retry(resolving())

        release.set()
        await task
        assert controller.state.status == TransactionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_execute_again_after_failure(self, fake_sleep):
        controller = make_controller(fake_sleep, required_confirmations=1)
        await controller.execute(failing())
        await controller.execute(resolving("0x1"))

        assert controller.state.status == TransactionStatus.SUCCESS
        assert controller.state.error is None


class TestRetry:

    @pytest.mark.asyncio
    async def test_retry_waits_delay_then_succeeds(self):
        events = []
        fake_sleep = FakeSleep(events)
        attempts = iter([failing(calls=events), resolving("0xabc123", calls=events)])

        async def submit():
            return await next(attempts)()

        successes = []
        controller = make_controller(
            fake_sleep, required_confirmations=1, max_retries=3, on_success=successes.append
        )

        await controller.execute(submit)
        assert controller.can_retry is True

        await controller.retry(submit)

        assert events == [("submit",), ("sleep", 2.0), ("submit",), ("sleep", 1.0)]
        assert controller.state.status == TransactionStatus.SUCCESS
        assert controller.retry_count == 0
        assert successes == ["0xabc123"]

    @pytest.mark.asyncio
    async def test_retry_count_increments_per_retry(self, fake_sleep):
        controller = make_controller(fake_sleep, max_retries=3)

        await controller.execute(failing())
        await controller.retry(failing())
        await controller.retry(failing())

        assert controller.retry_count == 2
        assert controller.state.status == TransactionStatus.FAILED
        assert controller.can_retry is True

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, fake_sleep):
        calls = []
        controller = make_controller(fake_sleep, max_retries=2)

        await controller.execute(failing(calls=calls))
        await controller.retry(failing(calls=calls))
        await controller.retry(failing(calls=calls))
        await controller.retry(failing(calls=calls))

        assert len(calls) == 3
        assert controller.retry_count == 2
        assert controller.can_retry is False
        assert controller.state.status == TransactionStatus.FAILED
        assert "Maximum retry attempts" in controller.state.error

    @pytest.mark.asyncio
    async def test_exhaustion_does_not_call_on_error(self, fake_sleep):
        errors = []
        controller = make_controller(fake_sleep, max_retries=0, on_error=errors.append)

        await controller.execute(failing())
        await controller.retry(failing())

        assert len(errors) == 1
        assert controller.state.error == "Maximum retry attempts (0) exceeded"

    @pytest.mark.asyncio
    async def test_reset_during_retry_delay_abandons_retry(self, fake_sleep):
        calls = []
        controller = make_controller(fake_sleep, max_retries=3)
        await controller.execute(failing(calls=calls))

        async def reset_while_waiting(delay):
            controller.reset()

        controller._sleep = reset_while_waiting
        await controller.retry(failing(calls=calls))

        assert len(calls) == 1
        assert controller.state.status == TransactionStatus.IDLE
        assert controller.retry_count == 0


class TestReset:

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, fake_sleep):
        controller = make_controller(fake_sleep, max_retries=3)
        await controller.execute(failing())
        await controller.retry(failing())

        controller.reset()

        state = controller.state
        assert state.status == TransactionStatus.IDLE
        assert state.tx_id is None
        assert state.confirmations is None
        assert state.error is None
        assert controller.retry_count == 0

    def test_reset_is_idempotent(self, fake_sleep):
        controller = make_controller(fake_sleep)

        controller.reset()
        first = controller.state
        controller.reset()

        assert controller.state == first
        assert controller.state.status == TransactionStatus.IDLE

    @pytest.mark.asyncio
    async def test_stale_resolution_does_not_overwrite_newer_state(self, fake_sleep):
        release = asyncio.Event()

        async def slow_submit():
            await release.wait()
            return "0xstale"

        successes = []
        controller = make_controller(fake_sleep, required_confirmations=1, on_success=successes.append)

        stale = asyncio.create_task(controller.execute(slow_submit))
        await asyncio.sleep(0)

        controller.reset()
        await controller.execute(resolving("0xfresh"))

        release.set()
        await stale

        assert controller.state.status == TransactionStatus.SUCCESS
        assert controller.state.tx_id == "0xfresh"
        assert successes == ["0xfresh"]

        # the controller is free again
        controller.reset()
        await controller.execute(resolving("0xnext"))
        assert controller.state.tx_id == "0xnext"


class TestSubscribe:

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_notifications(self, fake_sleep):
        controller = make_controller(fake_sleep, required_confirmations=1)
        seen = []
        unsubscribe = controller.subscribe(seen.append)

        unsubscribe()
        await controller.execute(resolving())

        assert seen == []

    @pytest.mark.asyncio
    async def test_snapshots_are_immutable(self, fake_sleep):
        controller = make_controller(fake_sleep, required_confirmations=1)
        seen = record_states(controller)
        await controller.execute(resolving())

        assert seen[0].status == TransactionStatus.PENDING
        with pytest.raises(Exception):
            seen[0].status = TransactionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_raising_listener_does_not_break_lifecycle(self, fake_sleep):
        controller = make_controller(fake_sleep, required_confirmations=1)

        def broken(state):
            raise RuntimeError("listener bug")

        controller.subscribe(broken)
        seen = record_states(controller)
        await controller.execute(resolving())

        assert controller.state.status == TransactionStatus.SUCCESS
        assert seen[-1].status == TransactionStatus.SUCCESS


class TestCallbacks:

    @pytest.mark.asyncio
    async def test_raising_on_success_is_contained(self, fake_sleep):
        def on_success(tx_id):
            raise RuntimeError("notification service down")

        controller = make_controller(fake_sleep, required_confirmations=1, on_success=on_success)
        await controller.execute(resolving("0xabc123"))

        assert controller.state.status == TransactionStatus.SUCCESS
        assert controller.state.tx_id == "0xabc123"
        assert controller.is_loading is False

    @pytest.mark.asyncio
    async def test_raising_on_error_is_contained(self, fake_sleep):
        def on_error(error):
            raise RuntimeError("error reporter down")

        controller = make_controller(fake_sleep, on_error=on_error)
        await controller.execute(failing("Insufficient gas"))

        assert controller.state.status == TransactionStatus.FAILED
        assert controller.state.error == "Insufficient gas"
        assert controller.can_retry is True

    @pytest.mark.asyncio
    async def test_retry_survives_raising_on_error(self, fake_sleep):
        def on_error(error):
            raise RuntimeError("error reporter down")

        controller = make_controller(fake_sleep, on_error=on_error)
        await controller.execute(failing())
        await controller.retry(failing("Still failing"))

        assert controller.state.status == TransactionStatus.FAILED
        assert controller.state.error == "Still failing"
        assert controller.retry_count == 1
