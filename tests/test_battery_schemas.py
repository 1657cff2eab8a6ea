"""
Battery schema and health derivation tests.
"""
import pytest
from pydantic import ValidationError

from battery_monitor.modules.batteries.health import (
    BatteryStatus,
    capacity_for_health,
    clamp_health,
    derive_status,
    health_for_capacity,
)
from battery_monitor.modules.batteries.schemas import BatteryRecord, utc_now


@pytest.mark.parametrize(
    "health, expected",
    [
        (100.0, BatteryStatus.EXCELLENT),
        (90.0, BatteryStatus.EXCELLENT),
        (89.99, BatteryStatus.GOOD),
        (80.0, BatteryStatus.GOOD),
        (79.99, BatteryStatus.FAIR),
        (70.0, BatteryStatus.FAIR),
        (69.99, BatteryStatus.POOR),
        (0.0, BatteryStatus.POOR),
    ],
)
def test_derive_status_thresholds(health, expected):
    assert derive_status(health) is expected


def test_clamp_health_bounds_and_rounding():
    assert clamp_health(-3.2) == 0.0
    assert clamp_health(104.0) == 100.0
    assert clamp_health(94.80000000001) == 94.8


def test_capacity_follows_health():
    assert capacity_for_health(4000, 94.8) == 3792
    assert capacity_for_health(5000, 100.0) == 5000
    assert capacity_for_health(5000, 0.0) == 0


def test_health_for_capacity():
    assert health_for_capacity(5000, 4850) == 97.0


def test_create_derives_health_when_omitted(battery_data):
    data = battery_data(initial_capacity=5000, current_capacity=4100, health_percentage=None)
    assert data.health_percentage == 82.0


def test_create_rejects_capacity_above_initial(battery_data):
    with pytest.raises(ValidationError):
        battery_data(initial_capacity=3000, current_capacity=3500)


def test_record_status_is_derived_on_read(battery_data):
    record = BatteryRecord(id=1, last_updated=utc_now(), **battery_data(health_percentage=81.5).model_dump())
    assert record.status is BatteryStatus.GOOD

    degraded = record.model_copy(update={"health_percentage": 65.0})
    assert degraded.status is BatteryStatus.POOR
    assert degraded.model_dump(mode="json")["status"] == "Poor"
