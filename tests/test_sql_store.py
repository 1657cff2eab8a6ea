"""
SQL Record Store tests on a throwaway SQLite database (aiosqlite).
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from battery_monitor.core.database import init_db
from battery_monitor.core.exceptions import ConflictError, StoreUnavailableError, ValidationError
from battery_monitor.modules.batteries.schemas import (
    BatteryUpdate,
    HistorySampleCreate,
    RecommendationCreate,
    RecommendationType,
    UsagePatternUpdate,
)
from battery_monitor.store.sql import SqlBatteryStore

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def sql_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'batteries.db'}")
    await init_db(engine)
    store = SqlBatteryStore.from_engine(engine)
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_ping(sql_store):
    await sql_store.ping()


@pytest.mark.asyncio
async def test_unreachable_database_raises_store_unavailable(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")
    store = SqlBatteryStore.from_engine(engine)

    with pytest.raises(StoreUnavailableError):
        await store.ping()
    await store.close()


@pytest.mark.asyncio
async def test_create_and_read_back(sql_store, battery_data):
    created = await sql_store.create_battery(battery_data())

    fetched = await sql_store.get_battery(created.id)

    assert fetched == created
    assert fetched.initial_date == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert fetched.initial_date.tzinfo is not None
    assert fetched.status.value == "Excellent"


@pytest.mark.asyncio
async def test_duplicate_serial_conflicts(sql_store, battery_data):
    await sql_store.create_battery(battery_data())
    with pytest.raises(ConflictError):
        await sql_store.create_battery(battery_data(name="Other"))


@pytest.mark.asyncio
async def test_update_and_missing(sql_store, battery_data):
    battery = await sql_store.create_battery(battery_data())

    updated = await sql_store.update_battery(
        battery.id,
        BatteryUpdate(health_percentage=79.0, current_capacity=3160),
    )

    assert updated.status.value == "Fair"
    assert updated.current_capacity == 3160
    assert await sql_store.update_battery(999, BatteryUpdate(name="x")) is None
    with pytest.raises(ValidationError):
        await sql_store.update_battery(battery.id, BatteryUpdate(current_capacity=5000))


@pytest.mark.asyncio
async def test_history_ordering_and_bounds(sql_store, battery_data):
    battery = await sql_store.create_battery(battery_data())
    for minutes in (20, 0, 10):
        await sql_store.append_history(
            HistorySampleCreate(
                battery_id=battery.id,
                date=T0 + timedelta(minutes=minutes),
                capacity=3700,
                health_percentage=92.5,
                cycle_count=110,
            )
        )

    history = await sql_store.list_history(battery.id)
    assert [h.date for h in history] == [T0, T0 + timedelta(minutes=10), T0 + timedelta(minutes=20)]

    bounded = await sql_store.list_history(battery.id, start=T0 + timedelta(minutes=10))
    assert len(bounded) == 2


@pytest.mark.asyncio
async def test_delete_cascades(sql_store, battery_data):
    battery = await sql_store.create_battery(battery_data())
    await sql_store.append_history(
        HistorySampleCreate(
            battery_id=battery.id,
            date=T0,
            capacity=3800,
            health_percentage=95.0,
            cycle_count=100,
        )
    )
    await sql_store.create_recommendation(
        RecommendationCreate(battery_id=battery.id, type=RecommendationType.WARNING, message="hot")
    )
    general = await sql_store.create_recommendation(
        RecommendationCreate(battery_id=0, type=RecommendationType.INFO, message="general")
    )

    assert await sql_store.delete_battery(battery.id) is True
    assert await sql_store.delete_battery(battery.id) is False

    assert await sql_store.get_battery(battery.id) is None
    assert await sql_store.list_history(battery.id) == []
    assert await sql_store.list_recommendations(battery.id) == []
    assert [r.id for r in await sql_store.list_recommendations(0)] == [general.id]


@pytest.mark.asyncio
async def test_usage_pattern_upsert(sql_store, battery_data):
    battery = await sql_store.create_battery(battery_data())

    with pytest.raises(ValidationError):
        await sql_store.upsert_usage_pattern(battery.id, UsagePatternUpdate(charge_duration=60))

    _, created = await sql_store.upsert_usage_pattern(
        battery.id,
        UsagePatternUpdate(
            charging_frequency=2,
            discharge_depth=60,
            charge_duration=60,
            operating_temperature=24,
        ),
    )
    pattern, created_again = await sql_store.upsert_usage_pattern(
        battery.id,
        UsagePatternUpdate(discharge_depth=80),
    )

    assert created is True
    assert created_again is False
    assert pattern.discharge_depth == 80
    assert pattern.charge_duration == 60


@pytest.mark.asyncio
async def test_resolve_recommendation(sql_store):
    recommendation = await sql_store.create_recommendation(
        RecommendationCreate(battery_id=0, type=RecommendationType.SUCCESS, message="ok")
    )

    resolved = await sql_store.resolve_recommendation(recommendation.id)

    assert resolved.resolved is True
    assert resolved.type is RecommendationType.SUCCESS
    assert resolved.created_at.tzinfo is not None
    assert await sql_store.resolve_recommendation(999) is None
