"""
In-memory Record Store.

Dict-backed implementation used for local runs and tests. All methods are
coroutines so the store is a drop-in replacement for the networked backends.
"""
from datetime import datetime

from battery_monitor.core.exceptions import ConflictError
from battery_monitor.core.logging import get_logger
from battery_monitor.modules.batteries.schemas import (
    BatteryCreate,
    BatteryRecord,
    BatteryUpdate,
    HistorySample,
    HistorySampleCreate,
    Recommendation,
    RecommendationCreate,
    UsagePattern,
    UsagePatternUpdate,
    utc_now,
)
from battery_monitor.store.base import (
    BatteryStore,
    battery_changes,
    check_resolution,
    new_usage_pattern_fields,
)

logger = get_logger(__name__)


class InMemoryBatteryStore(BatteryStore):
    """Battery records, history, usage patterns and recommendations in dicts."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._batteries: dict[int, BatteryRecord] = {}
        self._history: dict[int, HistorySample] = {}
        self._usage: dict[int, UsagePattern] = {}
        self._recommendations: dict[int, Recommendation] = {}

        self._battery_seq = 0
        self._history_seq = 0
        self._usage_seq = 0
        self._recommendation_seq = 0

    async def ping(self) -> None:
        return None

    # ============== Batteries ==============

    async def list_batteries(self) -> list[BatteryRecord]:
        return [self._batteries[key].model_copy() for key in sorted(self._batteries)]

    async def get_battery(self, battery_id: int) -> BatteryRecord | None:
        battery = self._batteries.get(battery_id)
        return battery.model_copy() if battery else None

    async def create_battery(self, data: BatteryCreate) -> BatteryRecord:
        if any(b.serial_number == data.serial_number for b in self._batteries.values()):
            raise ConflictError(f"Battery with serial '{data.serial_number}' already exists")

        self._battery_seq += 1
        battery = BatteryRecord(
            id=self._battery_seq,
            last_updated=utc_now(),
            **data.model_dump(),
        )
        self._batteries[battery.id] = battery
        logger.debug("Battery stored", battery_id=battery.id, backend=self.backend_name)
        return battery.model_copy()

    async def update_battery(self, battery_id: int, data: BatteryUpdate) -> BatteryRecord | None:
        current = self._batteries.get(battery_id)
        if current is None:
            return None
        updated = current.model_copy(update=battery_changes(current, data))
        self._batteries[battery_id] = updated
        return updated.model_copy()

    async def delete_battery(self, battery_id: int) -> bool:
        if self._batteries.pop(battery_id, None) is None:
            return False

        self._history = {k: h for k, h in self._history.items() if h.battery_id != battery_id}
        self._usage = {k: u for k, u in self._usage.items() if u.battery_id != battery_id}
        self._recommendations = {
            k: r for k, r in self._recommendations.items() if r.battery_id != battery_id
        }
        return True

    # ============== History ==============

    async def append_history(self, data: HistorySampleCreate) -> HistorySample:
        self._history_seq += 1
        sample = HistorySample(id=self._history_seq, **data.model_dump())
        self._history[sample.id] = sample
        return sample.model_copy()

    async def list_history(
        self,
        battery_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistorySample]:
        samples = [
            h for h in self._history.values()
            if h.battery_id == battery_id
            and (start is None or h.date >= start)
            and (end is None or h.date <= end)
        ]
        # Stable on id so equal timestamps keep append order
        samples.sort(key=lambda h: (h.date, h.id))
        return [h.model_copy() for h in samples]

    # ============== Usage patterns ==============

    async def get_usage_pattern(self, battery_id: int) -> UsagePattern | None:
        for pattern in self._usage.values():
            if pattern.battery_id == battery_id:
                return pattern.model_copy()
        return None

    async def upsert_usage_pattern(
        self,
        battery_id: int,
        data: UsagePatternUpdate,
    ) -> tuple[UsagePattern, bool]:
        existing = await self.get_usage_pattern(battery_id)
        if existing is None:
            self._usage_seq += 1
            pattern = UsagePattern(
                id=self._usage_seq,
                battery_id=battery_id,
                last_updated=utc_now(),
                **new_usage_pattern_fields(data),
            )
            self._usage[pattern.id] = pattern
            return pattern.model_copy(), True

        changes = data.model_dump(exclude_none=True)
        changes["last_updated"] = utc_now()
        pattern = existing.model_copy(update=changes)
        self._usage[pattern.id] = pattern
        return pattern.model_copy(), False

    # ============== Recommendations ==============

    async def list_recommendations(self, battery_id: int) -> list[Recommendation]:
        return [
            r.model_copy()
            for key, r in sorted(self._recommendations.items())
            if r.battery_id == battery_id
        ]

    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation:
        self._recommendation_seq += 1
        recommendation = Recommendation(id=self._recommendation_seq, **data.model_dump())
        self._recommendations[recommendation.id] = recommendation
        return recommendation.model_copy()

    async def resolve_recommendation(
        self,
        recommendation_id: int,
        resolved: bool = True,
    ) -> Recommendation | None:
        check_resolution(resolved)
        current = self._recommendations.get(recommendation_id)
        if current is None:
            return None
        updated = current.model_copy(update={"resolved": True})
        self._recommendations[recommendation_id] = updated
        return updated.model_copy()
