"""
Batteries Module - Business Logic Service
Direct API writes go through here so viewers see them like simulator changes.
"""
from datetime import datetime

from battery_monitor.core.exceptions import NotFoundError, StoreUnavailableError
from battery_monitor.core.logging import get_logger
from battery_monitor.core.metrics import record_recommendation
from battery_monitor.modules.batteries.schemas import (
    GENERAL_RECOMMENDATION_ID,
    BatteryCreate,
    BatteryRecord,
    BatteryUpdate,
    HistorySample,
    HistorySampleCreate,
    HistorySampleInput,
    Recommendation,
    RecommendationCreate,
    UsagePattern,
    UsagePatternUpdate,
)
from battery_monitor.modules.realtime.broadcaster import ChangeBroadcaster
from battery_monitor.store.base import BatteryStore

logger = get_logger(__name__)

# Maximum recommendations shown per battery
RECOMMENDATION_LIMIT = 3


class BatteryService:
    """Battery CRUD, history, usage and recommendations."""

    def __init__(self, store: BatteryStore, broadcaster: ChangeBroadcaster):
        self.store = store
        self.broadcaster = broadcaster

    # ============== Batteries ==============

    async def list_batteries(self) -> list[BatteryRecord]:
        return await self.store.list_batteries()

    async def get_battery(self, battery_id: int) -> BatteryRecord:
        battery = await self.store.get_battery(battery_id)
        if battery is None:
            raise NotFoundError("Battery", battery_id)
        return battery

    async def create_battery(self, data: BatteryCreate) -> BatteryRecord:
        battery = await self.store.create_battery(data)
        await self.broadcaster.publish_record_created(battery)
        logger.info("Battery created", battery_id=battery.id, serial=battery.serial_number)
        return battery

    async def update_battery(self, battery_id: int, data: BatteryUpdate) -> BatteryRecord:
        battery = await self.store.update_battery(battery_id, data)
        if battery is None:
            raise NotFoundError("Battery", battery_id)
        await self.broadcaster.publish_record_updated(battery)
        return battery

    async def delete_battery(self, battery_id: int) -> None:
        if not await self.store.delete_battery(battery_id):
            raise NotFoundError("Battery", battery_id)
        # Viewers drop the record on the next snapshot
        try:
            await self.broadcaster.publish_snapshot()
        except StoreUnavailableError as e:
            logger.warning("Snapshot after delete failed", battery_id=battery_id, error=e.message)
        logger.info("Battery deleted", battery_id=battery_id)

    # ============== History ==============

    async def list_history(
        self,
        battery_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistorySample]:
        await self.get_battery(battery_id)
        return await self.store.list_history(battery_id, start, end)

    async def add_history(self, battery_id: int, data: HistorySampleInput) -> HistorySample:
        await self.get_battery(battery_id)
        return await self.store.append_history(
            HistorySampleCreate(battery_id=battery_id, **data.model_dump())
        )

    # ============== Usage patterns ==============

    async def get_usage_pattern(self, battery_id: int) -> UsagePattern:
        await self.get_battery(battery_id)
        pattern = await self.store.get_usage_pattern(battery_id)
        if pattern is None:
            raise NotFoundError("Usage pattern", battery_id)
        return pattern

    async def upsert_usage_pattern(
        self,
        battery_id: int,
        data: UsagePatternUpdate,
    ) -> tuple[UsagePattern, bool]:
        await self.get_battery(battery_id)
        return await self.store.upsert_usage_pattern(battery_id, data)

    # ============== Recommendations ==============

    async def list_recommendations(self, battery_id: int) -> list[Recommendation]:
        """Battery specific and general recommendations, newest first, at most three."""
        await self.get_battery(battery_id)
        recommendations = await self.store.list_recommendations(battery_id)
        recommendations += await self.store.list_recommendations(GENERAL_RECOMMENDATION_ID)
        recommendations.sort(key=lambda r: r.created_at, reverse=True)
        return recommendations[:RECOMMENDATION_LIMIT]

    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation:
        if data.battery_id != GENERAL_RECOMMENDATION_ID:
            await self.get_battery(data.battery_id)
        recommendation = await self.store.create_recommendation(data)
        record_recommendation(recommendation.type.value)
        return recommendation

    async def resolve_recommendation(self, recommendation_id: int, resolved: bool) -> Recommendation:
        recommendation = await self.store.resolve_recommendation(recommendation_id, resolved)
        if recommendation is None:
            raise NotFoundError("Recommendation", recommendation_id)
        return recommendation
