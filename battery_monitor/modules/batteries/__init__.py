"""
Batteries Module - Battery records and their derived health status.
"""
from battery_monitor.modules.batteries.health import BatteryStatus, derive_status
from battery_monitor.modules.batteries.schemas import (
    GENERAL_RECOMMENDATION_ID,
    BatteryCreate,
    BatteryRecord,
    BatteryUpdate,
    HistorySample,
    Recommendation,
    RecommendationType,
    UsagePattern,
)

__all__ = [
    "GENERAL_RECOMMENDATION_ID",
    "BatteryCreate",
    "BatteryRecord",
    "BatteryStatus",
    "BatteryUpdate",
    "HistorySample",
    "Recommendation",
    "RecommendationType",
    "UsagePattern",
    "derive_status",
]
