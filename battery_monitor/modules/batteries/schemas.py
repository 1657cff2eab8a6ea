"""
Batteries Module - Pydantic Schemas (DTOs)
"""
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from battery_monitor.modules.batteries.health import BatteryStatus, derive_status, health_for_capacity

# Recommendation.battery_id value meaning "applies to all batteries"
GENERAL_RECOMMENDATION_ID = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============== Battery Schemas ==============

class BatteryCreate(BaseModel):
    """Schema for creating a battery."""
    name: str = Field(..., min_length=1, max_length=255)
    serial_number: str = Field(..., min_length=1, max_length=100)
    initial_capacity: int = Field(..., gt=0, description="Rated capacity (mAh)")
    current_capacity: int = Field(..., ge=0, description="Measured capacity (mAh)")
    health_percentage: float | None = Field(
        None,
        ge=0,
        le=100,
        description="Defaults to current/initial x 100",
    )
    cycle_count: int = Field(default=0, ge=0)
    expected_cycles: int = Field(..., gt=0)
    initial_date: datetime = Field(default_factory=utc_now)
    degradation_rate: float = Field(default=0.0, ge=0, description="% per month")

    @model_validator(mode="after")
    def _check_capacity(self) -> "BatteryCreate":
        if self.current_capacity > self.initial_capacity:
            raise ValueError("current_capacity cannot exceed initial_capacity")
        if self.health_percentage is None:
            self.health_percentage = health_for_capacity(self.initial_capacity, self.current_capacity)
        return self


class BatteryUpdate(BaseModel):
    """Schema for updating a battery. Capacity rating and serial are immutable."""
    name: str | None = Field(None, min_length=1, max_length=255)
    current_capacity: int | None = Field(None, ge=0)
    health_percentage: float | None = Field(None, ge=0, le=100)
    cycle_count: int | None = Field(None, ge=0)
    expected_cycles: int | None = Field(None, gt=0)
    initial_date: datetime | None = None
    degradation_rate: float | None = Field(None, ge=0)
    last_updated: datetime | None = None


class BatteryRecord(BaseModel):
    """Current authoritative state of one battery."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    serial_number: str
    initial_capacity: int
    current_capacity: int
    health_percentage: float
    cycle_count: int
    expected_cycles: int
    initial_date: datetime
    last_updated: datetime
    degradation_rate: float

    @computed_field
    @property
    def status(self) -> BatteryStatus:
        return derive_status(self.health_percentage)


# ============== History Schemas ==============

class HistorySampleInput(BaseModel):
    """History sample body posted for a battery given in the URL."""
    date: datetime = Field(default_factory=utc_now)
    capacity: int = Field(..., ge=0)
    health_percentage: float = Field(..., ge=0, le=100)
    cycle_count: int = Field(..., ge=0)


class HistorySampleCreate(HistorySampleInput):
    """Schema for appending a history sample."""
    battery_id: int = Field(..., gt=0)


class HistorySample(BaseModel):
    """Point-in-time snapshot of a battery, append-only."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    battery_id: int
    date: datetime
    capacity: int
    health_percentage: float
    cycle_count: int


# ============== Usage Pattern Schemas ==============

class UsagePatternUpdate(BaseModel):
    """Partial usage pattern; every field optional."""
    charging_frequency: float | None = Field(None, ge=0, description="Charges per day")
    discharge_depth: float | None = Field(None, ge=0, le=100, description="%")
    charge_duration: int | None = Field(None, ge=0, description="Minutes")
    operating_temperature: float | None = Field(None, description="Celsius")


class UsagePatternCreate(BaseModel):
    """Full usage pattern required when none exists yet."""
    charging_frequency: float = Field(..., ge=0)
    discharge_depth: float = Field(..., ge=0, le=100)
    charge_duration: int = Field(..., ge=0)
    operating_temperature: float


class UsagePattern(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    battery_id: int
    charging_frequency: float
    discharge_depth: float
    charge_duration: int
    operating_temperature: float
    last_updated: datetime


# ============== Recommendation Schemas ==============

class RecommendationType(str, Enum):
    """Recommendation severity."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class RecommendationInput(BaseModel):
    """Recommendation body posted for a battery given in the URL."""
    type: RecommendationType
    message: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)


class RecommendationCreate(RecommendationInput):
    """Schema for creating a recommendation. battery_id 0 targets every battery."""
    battery_id: int = Field(..., ge=GENERAL_RECOMMENDATION_ID)


class RecommendationResolve(BaseModel):
    """Resolving is one-way: only ``true`` is accepted."""
    resolved: bool


class Recommendation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    battery_id: int
    type: RecommendationType
    message: str
    created_at: datetime
    resolved: bool = False
