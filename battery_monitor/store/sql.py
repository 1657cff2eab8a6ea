"""
SQL Record Store.
SQLAlchemy 2.0 async ORM; asyncpg in production, aiosqlite in tests.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy import delete, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from battery_monitor.core.database import close_db, create_session_maker
from battery_monitor.core.exceptions import ConflictError, StoreUnavailableError
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
from battery_monitor.store.orm import (
    BatteryHistoryRow,
    BatteryRow,
    RecommendationRow,
    UsagePatternRow,
)

logger = get_logger(__name__)

_DATETIME_FIELDS = ("initial_date", "last_updated", "date", "created_at")


def _as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_model(model, row):
    obj = model.model_validate(row)
    updates = {
        name: _as_utc(getattr(obj, name))
        for name in _DATETIME_FIELDS
        if name in model.model_fields
    }
    return obj.model_copy(update=updates)


class SqlBatteryStore(BatteryStore):
    """Record Store on a relational database."""

    backend_name = "sql"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ):
        self._session_maker = session_maker
        self._engine = engine

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "SqlBatteryStore":
        return cls(create_session_maker(engine), engine)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Session that commits on success and maps driver errors to store errors."""
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(str(e.orig)) from e
            except (DBAPIError, OSError) as e:
                await session.rollback()
                logger.warning("SQL store error", error=str(e))
                raise StoreUnavailableError(self.backend_name, str(getattr(e, "orig", e))) from e
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        if self._engine is not None:
            await close_db(self._engine)

    # ============== Batteries ==============

    async def list_batteries(self) -> list[BatteryRecord]:
        async with self._session() as session:
            result = await session.execute(select(BatteryRow).order_by(BatteryRow.id))
            return [_to_model(BatteryRecord, row) for row in result.scalars().all()]

    async def get_battery(self, battery_id: int) -> BatteryRecord | None:
        async with self._session() as session:
            row = await session.get(BatteryRow, battery_id)
            return _to_model(BatteryRecord, row) if row else None

    async def create_battery(self, data: BatteryCreate) -> BatteryRecord:
        async with self._session() as session:
            stmt = select(BatteryRow.id).where(BatteryRow.serial_number == data.serial_number)
            if (await session.execute(stmt)).scalar_one_or_none() is not None:
                raise ConflictError(f"Battery with serial '{data.serial_number}' already exists")

            row = BatteryRow(last_updated=utc_now(), **data.model_dump())
            session.add(row)
            await session.flush()
            await session.refresh(row)
            battery = _to_model(BatteryRecord, row)

        logger.info("Battery created", battery_id=battery.id, serial=battery.serial_number)
        return battery

    async def update_battery(self, battery_id: int, data: BatteryUpdate) -> BatteryRecord | None:
        async with self._session() as session:
            row = await session.get(BatteryRow, battery_id)
            if row is None:
                return None

            current = _to_model(BatteryRecord, row)
            for field, value in battery_changes(current, data).items():
                setattr(row, field, value)
            await session.flush()
            await session.refresh(row)
            return _to_model(BatteryRecord, row)

    async def delete_battery(self, battery_id: int) -> bool:
        async with self._session() as session:
            row = await session.get(BatteryRow, battery_id)
            if row is None:
                return False

            # Explicit so SQLite without foreign key enforcement cascades too
            await session.execute(
                delete(BatteryHistoryRow).where(BatteryHistoryRow.battery_id == battery_id)
            )
            await session.execute(
                delete(UsagePatternRow).where(UsagePatternRow.battery_id == battery_id)
            )
            await session.execute(
                delete(RecommendationRow).where(RecommendationRow.battery_id == battery_id)
            )
            await session.delete(row)

        logger.info("Battery deleted", battery_id=battery_id)
        return True

    # ============== History ==============

    async def append_history(self, data: HistorySampleCreate) -> HistorySample:
        async with self._session() as session:
            row = BatteryHistoryRow(**data.model_dump())
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return _to_model(HistorySample, row)

    async def list_history(
        self,
        battery_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistorySample]:
        stmt = select(BatteryHistoryRow).where(BatteryHistoryRow.battery_id == battery_id)
        if start is not None:
            stmt = stmt.where(BatteryHistoryRow.date >= start)
        if end is not None:
            stmt = stmt.where(BatteryHistoryRow.date <= end)
        stmt = stmt.order_by(BatteryHistoryRow.date, BatteryHistoryRow.id)

        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_model(HistorySample, row) for row in result.scalars().all()]

    # ============== Usage patterns ==============

    async def _usage_row(self, session: AsyncSession, battery_id: int) -> UsagePatternRow | None:
        stmt = select(UsagePatternRow).where(UsagePatternRow.battery_id == battery_id)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def get_usage_pattern(self, battery_id: int) -> UsagePattern | None:
        async with self._session() as session:
            row = await self._usage_row(session, battery_id)
            return _to_model(UsagePattern, row) if row else None

    async def upsert_usage_pattern(
        self,
        battery_id: int,
        data: UsagePatternUpdate,
    ) -> tuple[UsagePattern, bool]:
        async with self._session() as session:
            row = await self._usage_row(session, battery_id)
            created = row is None
            if created:
                row = UsagePatternRow(
                    battery_id=battery_id,
                    last_updated=utc_now(),
                    **new_usage_pattern_fields(data),
                )
                session.add(row)
            else:
                for field, value in data.model_dump(exclude_none=True).items():
                    setattr(row, field, value)
                row.last_updated = utc_now()

            await session.flush()
            await session.refresh(row)
            return _to_model(UsagePattern, row), created

    # ============== Recommendations ==============

    async def list_recommendations(self, battery_id: int) -> list[Recommendation]:
        stmt = (
            select(RecommendationRow)
            .where(RecommendationRow.battery_id == battery_id)
            .order_by(RecommendationRow.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_model(Recommendation, row) for row in result.scalars().all()]

    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation:
        async with self._session() as session:
            row = RecommendationRow(
                battery_id=data.battery_id,
                type=data.type.value,
                message=data.message,
                created_at=data.created_at,
            )
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return _to_model(Recommendation, row)

    async def resolve_recommendation(
        self,
        recommendation_id: int,
        resolved: bool = True,
    ) -> Recommendation | None:
        check_resolution(resolved)
        async with self._session() as session:
            row = await session.get(RecommendationRow, recommendation_id)
            if row is None:
                return None
            row.resolved = True
            await session.flush()
            await session.refresh(row)
            return _to_model(Recommendation, row)
