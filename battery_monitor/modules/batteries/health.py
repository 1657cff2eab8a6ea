"""
Battery health derivations.

Status is never stored: it is a pure function of health percentage.
"""
import math
from enum import Enum


class BatteryStatus(str, Enum):
    """Battery condition bucket derived from health percentage."""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


STATUS_THRESHOLDS: tuple[tuple[float, BatteryStatus], ...] = (
    (90.0, BatteryStatus.EXCELLENT),
    (80.0, BatteryStatus.GOOD),
    (70.0, BatteryStatus.FAIR),
)


def derive_status(health_percentage: float) -> BatteryStatus:
    """Map health to status: >=90 Excellent, >=80 Good, >=70 Fair, else Poor."""
    for threshold, status in STATUS_THRESHOLDS:
        if health_percentage >= threshold:
            return status
    return BatteryStatus.POOR


def clamp_health(value: float) -> float:
    """Clamp to [0, 100] and keep two decimals."""
    return round(min(100.0, max(0.0, value)), 2)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def capacity_for_health(initial_capacity: int, health_percentage: float) -> int:
    """Current capacity (mAh) implied by ``health_percentage`` of ``initial_capacity``."""
    capacity = round_half_up(initial_capacity * health_percentage / 100)
    return min(initial_capacity, max(0, capacity))


def health_for_capacity(initial_capacity: int, current_capacity: int) -> float:
    return clamp_health(current_capacity / initial_capacity * 100)
