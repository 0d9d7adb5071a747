"""Tests for the in-memory lifecycle registry."""
import pytest

from krishiraksha.config import settings
from krishiraksha.exceptions import LifecycleNotFoundError
from krishiraksha.models.transactions import TransactionStatus
from krishiraksha.services.lifecycle_registry import LifecycleRegistry


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "tx_retry_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "tx_confirmation_interval_seconds", 0.0)
    monkeypatch.setattr(settings, "tx_required_confirmations", 1)


def batch(batch_id):
    return {
        "batchId": batch_id,
        "cropType": "rice",
        "farmer": "Ramesh Kumar",
        "harvestDate": "2024-01-15",
        "location": "Punjab",
    }


def test_invalid_capacity():
    with pytest.raises(ValueError):
        LifecycleRegistry(max_entries=0)


class TestEviction:

    @pytest.mark.asyncio
    async def test_oldest_settled_entry_is_evicted(self):
        registry = LifecycleRegistry(max_entries=2)

        first = await registry.start(batch("KR1"))
        await first.task
        second = await registry.start(batch("KR2"))
        await second.task
        third = await registry.start(batch("KR3"))
        await third.task

        with pytest.raises(LifecycleNotFoundError):
            await registry.get(first.lifecycle_id)
        assert (await registry.get(second.lifecycle_id)) is second
        assert (await registry.get(third.lifecycle_id)).controller.state.status == TransactionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_running_entries_are_kept(self):
        registry = LifecycleRegistry(max_entries=1)

        first = await registry.start(batch("KR1"))
        second = await registry.start(batch("KR2"))

        assert (await registry.get(first.lifecycle_id)) is first
        assert (await registry.get(second.lifecycle_id)) is second

        await first.task
        await second.task
        third = await registry.start(batch("KR3"))

        with pytest.raises(LifecycleNotFoundError):
            await registry.get(first.lifecycle_id)
        with pytest.raises(LifecycleNotFoundError):
            await registry.get(second.lifecycle_id)
        assert (await registry.get(third.lifecycle_id)) is third
        await third.task

    @pytest.mark.asyncio
    async def test_failed_entries_are_evictable(self):
        registry = LifecycleRegistry(max_entries=1)

        failed = await registry.start(batch("FAIL_NETWORK"))
        await failed.task
        assert failed.controller.state.status == TransactionStatus.FAILED

        latest = await registry.start(batch("KR2"))
        await latest.task

        with pytest.raises(LifecycleNotFoundError):
            await registry.get(failed.lifecycle_id)
        assert (await registry.get(latest.lifecycle_id)) is latest
