"""
Record Store - Database Models
Battery, BatteryHistory, UsagePattern and Recommendation tables.
"""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from battery_monitor.core.models import Base, utc_now


class BatteryRow(Base):
    """
    Battery model.
    Current authoritative state; status is derived on read, never stored.
    """
    __tablename__ = "battery"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    initial_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    health_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    cycle_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expected_cycles: Mapped[int] = mapped_column(Integer, nullable=False)
    initial_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    degradation_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


class BatteryHistoryRow(Base):
    """Append-only snapshot of a battery (charting)."""
    __tablename__ = "battery_history"

    battery_id: Mapped[int] = mapped_column(
        ForeignKey("battery.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    health_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    cycle_count: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_battery_history_battery_date", "battery_id", "date"),
    )


class UsagePatternRow(Base):
    """At most one usage pattern per battery."""
    __tablename__ = "usage_pattern"

    battery_id: Mapped[int] = mapped_column(
        ForeignKey("battery.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    charging_frequency: Mapped[float] = mapped_column(Float, nullable=False)
    discharge_depth: Mapped[float] = mapped_column(Float, nullable=False)
    charge_duration: Mapped[int] = mapped_column(Integer, nullable=False)
    operating_temperature: Mapped[float] = mapped_column(Float, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )


class RecommendationRow(Base):
    """
    Recommendation model.
    battery_id 0 targets every battery, so it carries no foreign key;
    the store deletes a battery's recommendations explicitly.
    """
    __tablename__ = "recommendation"

    battery_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
