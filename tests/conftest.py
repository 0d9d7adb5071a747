"""
Pytest configuration for Krishiraksha tests.
"""
from __future__ import annotations

import asyncio
import os

import pytest

# Set test environment before settings are loaded
os.environ.setdefault("QR_SIGNATURE_SECRET", "test-secret")
os.environ.setdefault("DEMO_MODE", "true")

from krishiraksha.services.qr_service import SignedPayloadCodec  # noqa: E402

DAY_MS = 24 * 60 * 60 * 1000
FIXED_NOW_MS = 1_705_300_000_000  # 2024-01-15


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = FIXED_NOW_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeSleep:
    """Records requested delays and yields to the loop without waiting."""

    def __init__(self, events: list | None = None):
        self.delays: list[float] = []
        self.events = events if events is not None else []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.events.append(("sleep", delay))
        await asyncio.sleep(0)


@pytest.fixture
def secret():
    return "test-secret"


@pytest.fixture
def farmer_record():
    """Complete farmer batch record."""
    return {
        "batchId": "KR12345",
        "cropType": "rice",
        "farmer": "Ramesh Kumar",
        "harvestDate": "2024-01-15",
        "location": "Punjab",
        "quantity": 100,
        "unit": "kg",
        "organicCertified": True,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec(clock):
    return SignedPayloadCodec(clock=clock)


@pytest.fixture
def fake_sleep():
    return FakeSleep()
