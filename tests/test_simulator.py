"""
Telemetry simulator tests: perturbation math, demo seed and tick behavior.
"""
import asyncio
import random

import pytest

from battery_monitor.core.exceptions import StoreUnavailableError
from battery_monitor.modules.batteries.health import BatteryStatus, capacity_for_health, derive_status
from battery_monitor.modules.batteries.schemas import BatteryRecord, utc_now
from battery_monitor.modules.realtime.broadcaster import ChangeBroadcaster
from battery_monitor.modules.realtime.events import RecordUpdatedEvent, SnapshotEvent
from battery_monitor.modules.simulator import SimulatorConfig, TelemetrySimulator, seed_demo_data
from battery_monitor.modules.simulator.perturbation import (
    apply_bulk_jump,
    apply_health_delta,
    draw_bulk_jump,
    draw_small_step,
)
from battery_monitor.modules.simulator.templates import RECOMMENDATION_TEMPLATES
from battery_monitor.store.memory import InMemoryBatteryStore


def _record(battery_data, **overrides) -> BatteryRecord:
    return BatteryRecord(id=1, last_updated=utc_now(), **battery_data(**overrides).model_dump())


class ChangeBroadcasterStub:
    """Accepts publishes without any subscribers."""

    def __init__(self):
        self.published = []

    async def publish_record_updated(self, battery, history=None):
        self.published.append((battery, history))
        return 0


class BrokenStore(InMemoryBatteryStore):
    async def list_batteries(self):
        raise StoreUnavailableError(self.backend_name, "connection refused")


class RecommendationRejectingStore(InMemoryBatteryStore):
    async def create_recommendation(self, data):
        raise StoreUnavailableError(self.backend_name, "write rejected")


# ============== Perturbation ==============

class TestPerturbation:
    def test_small_step_moves_capacity_with_health(self, battery_data):
        battery = _record(battery_data)

        result = apply_health_delta(battery, -0.2)

        assert result.health_percentage == 94.8
        assert result.current_capacity == 3792
        assert result.cycle_count == 100
        assert derive_status(result.health_percentage) is BatteryStatus.EXCELLENT

    def test_small_step_clamps_to_bounds(self, battery_data):
        top = _record(battery_data, current_capacity=3996, health_percentage=99.9)
        bottom = _record(battery_data, current_capacity=8, health_percentage=0.2)

        assert apply_health_delta(top, 0.2).health_percentage == 100.0
        assert apply_health_delta(top, 0.2).current_capacity == 4000
        assert apply_health_delta(bottom, -0.5).health_percentage == 0.0
        assert apply_health_delta(bottom, -0.5).current_capacity == 0

    def test_cycle_increment_is_added(self, battery_data):
        assert apply_health_delta(_record(battery_data), -0.1, 1).cycle_count == 101

    def test_bulk_jump_adds_when_subtraction_goes_negative(self, battery_data):
        battery = _record(battery_data, cycle_count=1500)

        result = apply_bulk_jump(battery, 3000, -1, 10.0, -1)

        assert result.cycle_count == 4500
        assert result.health_percentage == 85.0
        assert result.current_capacity == 3400

    def test_bulk_jump_subtracts_when_possible(self, battery_data):
        battery = _record(battery_data, cycle_count=5000)
        assert apply_bulk_jump(battery, 2000, -1, 0.0, 1).cycle_count == 3000

    def test_draws_stay_in_configured_bands(self):
        rng = random.Random(7)
        config = SimulatorConfig()
        for _ in range(500):
            delta, increment = draw_small_step(rng, config)
            assert -config.max_decrease <= delta <= config.max_recovery
            assert increment in (0, 1)

            cycle_jump, cycle_dir, health_jump, health_dir = draw_bulk_jump(rng, config)
            assert config.bulk_min_cycle_jump <= cycle_jump <= config.bulk_max_cycle_jump
            assert config.bulk_min_health_jump <= health_jump <= config.bulk_max_health_jump
            assert cycle_dir in (1, -1)
            assert health_dir in (1, -1)

    def test_templates_render_name_and_health(self):
        message = RECOMMENDATION_TEMPLATES[-1].render("Battery #4", 61.5)
        assert "Battery #4" in message
        assert "61.5%" in message


# ============== Seed ==============

class TestSeed:
    @pytest.mark.asyncio
    async def test_seed_populates_empty_store(self, store):
        created = await seed_demo_data(store, random.Random(1))

        assert [b.serial_number for b in created] == ["BAT-001", "BAT-002", "BAT-003", "BAT-004"]
        assert [b.status for b in created] == [
            BatteryStatus.EXCELLENT,
            BatteryStatus.GOOD,
            BatteryStatus.FAIR,
            BatteryStatus.POOR,
        ]
        for battery in created:
            assert len(await store.list_history(battery.id)) == 1
            assert len(await store.list_recommendations(battery.id)) == 1
        assert len(await store.list_recommendations(0)) == 1

    @pytest.mark.asyncio
    async def test_seed_skips_populated_store(self, store, battery_data):
        await store.create_battery(battery_data())

        assert await seed_demo_data(store) == []
        assert len(await store.list_batteries()) == 1


# ============== Ticks ==============

class TestTelemetrySimulator:
    @pytest.mark.asyncio
    async def test_tick_on_empty_store_is_skipped(self, store, broadcaster):
        simulator = TelemetrySimulator(store, broadcaster, rng=random.Random(1))
        assert await simulator.tick() is None

    @pytest.mark.asyncio
    async def test_tick_writes_history_then_broadcasts(self, store, broadcaster, channel_factory, battery_data):
        battery = await store.create_battery(battery_data())
        channel = channel_factory()
        await broadcaster.subscribe(channel)
        simulator = TelemetrySimulator(
            store,
            broadcaster,
            SimulatorConfig(recommendation_probability=0.0),
            rng=random.Random(3),
        )

        updated = await simulator.tick()

        history = await store.list_history(battery.id)
        assert len(history) == 1
        assert history[0].health_percentage == updated.health_percentage
        assert history[0].capacity == updated.current_capacity
        assert history[0].date == updated.last_updated

        snapshot, change = channel.events
        assert isinstance(snapshot, SnapshotEvent)
        assert isinstance(change, RecordUpdatedEvent)
        assert change.data.battery.id == battery.id
        assert change.data.history.id == history[0].id

    @pytest.mark.asyncio
    async def test_many_ticks_keep_records_consistent(self, store, broadcaster):
        await seed_demo_data(store, random.Random(1))
        simulator = TelemetrySimulator(store, broadcaster, rng=random.Random(42))

        for _ in range(200):
            await simulator.tick()

        total_history = 0
        for battery in await store.list_batteries():
            assert 0 <= battery.health_percentage <= 100
            assert battery.current_capacity == capacity_for_health(
                battery.initial_capacity,
                battery.health_percentage,
            )
            assert battery.status is derive_status(battery.health_percentage)
            total_history += len(await store.list_history(battery.id))
        # One seed sample per battery plus one per tick
        assert total_history == 4 + 200

    @pytest.mark.asyncio
    async def test_same_seed_same_walk(self):
        results = []
        for _ in range(2):
            store = InMemoryBatteryStore()
            await seed_demo_data(store, random.Random(1))
            simulator = TelemetrySimulator(store, ChangeBroadcasterStub(), rng=random.Random(9))
            for _ in range(25):
                await simulator.tick()
            results.append([(b.health_percentage, b.cycle_count) for b in await store.list_batteries()])

        assert results[0] == results[1]

    @pytest.mark.asyncio
    async def test_tick_recommends_when_probability_is_one(self, store, broadcaster, battery_data):
        battery = await store.create_battery(battery_data())
        simulator = TelemetrySimulator(
            store,
            broadcaster,
            SimulatorConfig(recommendation_probability=1.0),
            rng=random.Random(5),
        )

        await simulator.tick()

        recommendations = await store.list_recommendations(battery.id)
        assert len(recommendations) == 1
        assert recommendations[0].resolved is False

    @pytest.mark.asyncio
    async def test_failed_recommendation_still_broadcasts_update(self, channel_factory, battery_data):
        store = RecommendationRejectingStore()
        broadcaster = ChangeBroadcaster(store)
        battery = await store.create_battery(battery_data())
        channel = channel_factory()
        await broadcaster.subscribe(channel)
        simulator = TelemetrySimulator(
            store,
            broadcaster,
            SimulatorConfig(recommendation_probability=1.0),
            rng=random.Random(5),
        )

        updated = await simulator.tick()

        assert updated is not None
        assert len(await store.list_history(battery.id)) == 1
        assert [event.type for event in channel.events] == ["snapshot", "record_updated"]
        assert channel.events[-1].data.battery.health_percentage == updated.health_percentage

    @pytest.mark.asyncio
    async def test_failing_store_does_not_raise(self):
        store = BrokenStore()
        simulator = TelemetrySimulator(store, ChangeBroadcasterStub())

        assert await simulator.tick() is None
        assert await simulator.bulk_tick() == []

    @pytest.mark.asyncio
    async def test_bulk_tick_updates_every_battery(self, store, broadcaster):
        await seed_demo_data(store, random.Random(1))
        before = {b.id: b.cycle_count for b in await store.list_batteries()}
        simulator = TelemetrySimulator(
            store,
            broadcaster,
            SimulatorConfig(bulk_enabled=True, recommendation_probability=0.0),
            rng=random.Random(11),
        )

        updated = await simulator.bulk_tick()

        assert len(updated) == 4
        for battery in updated:
            assert 2000 <= abs(battery.cycle_count - before[battery.id]) <= 4000
            assert battery.cycle_count >= 0
            assert 0 <= battery.health_percentage <= 100
            assert len(await store.list_history(battery.id)) == 2

    @pytest.mark.asyncio
    async def test_no_tick_after_stop(self, store, broadcaster, battery_data):
        battery = await store.create_battery(battery_data())
        simulator = TelemetrySimulator(
            store,
            broadcaster,
            SimulatorConfig(tick_interval=0.01, recommendation_probability=0.0),
            rng=random.Random(2),
        )

        simulator.start()
        assert simulator.is_running
        await asyncio.sleep(0.1)
        await simulator.stop()
        assert not simulator.is_running

        ticked = len(await store.list_history(battery.id))
        assert ticked > 0
        await asyncio.sleep(0.05)
        assert len(await store.list_history(battery.id)) == ticked

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, store, broadcaster):
        simulator = TelemetrySimulator(store, broadcaster)
        await simulator.stop()
        assert not simulator.is_running
