"""
Record Store contract.

Every backend (memory, SQL, remote REST) implements this interface. Missing
records are reported as ``None`` / ``False``; backend outages raise
``StoreUnavailableError``.
"""
from abc import ABC, abstractmethod
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError

from battery_monitor.core.exceptions import ValidationError
from battery_monitor.modules.batteries.schemas import (
    BatteryCreate,
    BatteryRecord,
    BatteryUpdate,
    HistorySample,
    HistorySampleCreate,
    Recommendation,
    RecommendationCreate,
    UsagePattern,
    UsagePatternCreate,
    UsagePatternUpdate,
    utc_now,
)


class BatteryStore(ABC):
    """Authoritative battery state, consumed by the simulator and the API."""

    backend_name: str = "store"

    @abstractmethod
    async def ping(self) -> None:
        """Raise ``StoreUnavailableError`` if the backend cannot be reached."""

    # ============== Batteries ==============

    @abstractmethod
    async def list_batteries(self) -> list[BatteryRecord]:
        """All batteries ordered by id."""

    @abstractmethod
    async def get_battery(self, battery_id: int) -> BatteryRecord | None:
        ...

    @abstractmethod
    async def create_battery(self, data: BatteryCreate) -> BatteryRecord:
        """Insert a battery and assign the next id. Duplicate serials raise ``ConflictError``."""

    @abstractmethod
    async def update_battery(self, battery_id: int, data: BatteryUpdate) -> BatteryRecord | None:
        """Apply the fields set on ``data``; ``last_updated`` is refreshed when not given."""

    @abstractmethod
    async def delete_battery(self, battery_id: int) -> bool:
        """Delete a battery with its history, usage pattern and recommendations."""

    # ============== History ==============

    @abstractmethod
    async def append_history(self, data: HistorySampleCreate) -> HistorySample:
        ...

    @abstractmethod
    async def list_history(
        self,
        battery_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistorySample]:
        """Samples ascending by date, optionally bounded (inclusive)."""

    # ============== Usage patterns ==============

    @abstractmethod
    async def get_usage_pattern(self, battery_id: int) -> UsagePattern | None:
        ...

    @abstractmethod
    async def upsert_usage_pattern(
        self,
        battery_id: int,
        data: UsagePatternUpdate,
    ) -> tuple[UsagePattern, bool]:
        """Create the pattern if absent, else apply a partial update. Returns (pattern, created)."""

    # ============== Recommendations ==============

    @abstractmethod
    async def list_recommendations(self, battery_id: int) -> list[Recommendation]:
        ...

    @abstractmethod
    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation:
        ...

    @abstractmethod
    async def resolve_recommendation(
        self,
        recommendation_id: int,
        resolved: bool = True,
    ) -> Recommendation | None:
        """Mark resolved. Resolution is one-way: ``resolved=False`` raises ``ValidationError``."""

    async def close(self) -> None:
        """Release backend resources."""


def battery_changes(current: BatteryRecord, data: BatteryUpdate) -> dict:
    """Fields to write for ``data`` on top of ``current``, with invariants checked."""
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    changes.setdefault("last_updated", utc_now())
    capacity = changes.get("current_capacity", current.current_capacity)
    if capacity > current.initial_capacity:
        raise ValidationError(
            "current_capacity cannot exceed initial_capacity",
            details={"initial_capacity": current.initial_capacity, "current_capacity": capacity},
        )
    return changes


def new_usage_pattern_fields(data: UsagePatternUpdate) -> dict:
    """Validate that ``data`` is complete enough to create a usage pattern."""
    try:
        return UsagePatternCreate(**data.model_dump(exclude_none=True)).model_dump()
    except PydanticValidationError as e:
        raise ValidationError(
            "Usage pattern does not exist yet; all fields are required",
            details={"missing": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
        ) from e


def check_resolution(resolved: bool) -> None:
    if not resolved:
        raise ValidationError("Recommendations can only be marked as resolved")
