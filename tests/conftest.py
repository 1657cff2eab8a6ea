"""
Pytest Configuration and Fixtures.

Shared fixtures for every test module.
"""
import asyncio
import os
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient

# Test environment variables, set before settings are loaded
os.environ["ENVIRONMENT"] = "testing"
os.environ["STORE_BACKEND"] = "memory"
os.environ["SIMULATOR_ENABLED"] = "false"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["SENTRY_DSN"] = ""

from battery_monitor.main import create_application
from battery_monitor.modules.batteries.schemas import BatteryCreate
from battery_monitor.modules.realtime.broadcaster import ChangeBroadcaster
from battery_monitor.modules.realtime.events import decode_event
from battery_monitor.store.memory import InMemoryBatteryStore


class RecordingChannel:
    """Subscriber channel that keeps every message it is sent."""

    def __init__(self, fail: bool = False, delays: list[float] | None = None):
        self.fail = fail
        self.delays = list(delays or [])
        self.messages: list[str] = []

    async def send(self, message: str) -> None:
        if self.fail:
            raise ConnectionError("connection closed")
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        self.messages.append(message)

    @property
    def events(self):
        return [decode_event(message) for message in self.messages]


@pytest.fixture
def channel_factory():
    """Build ``RecordingChannel`` instances."""
    return RecordingChannel


@pytest.fixture
def battery_data():
    """Factory for ``BatteryCreate`` payloads."""
    def _make(**overrides) -> BatteryCreate:
        fields = {
            "name": "Battery #1",
            "serial_number": "BAT-001",
            "initial_capacity": 4000,
            "current_capacity": 3800,
            "health_percentage": 95.0,
            "cycle_count": 100,
            "expected_cycles": 1000,
            "initial_date": datetime(2024, 1, 15, tzinfo=timezone.utc),
            "degradation_rate": 0.5,
        }
        fields.update(overrides)
        return BatteryCreate(**fields)

    return _make


@pytest.fixture
def store():
    return InMemoryBatteryStore()


@pytest.fixture
def broadcaster(store):
    return ChangeBroadcaster(store)


@pytest.fixture
def app(store):
    return create_application(store=store, start_simulator=False, seed_demo=False)


@pytest.fixture
async def client(app):
    """HTTP client with the application lifespan running."""
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
