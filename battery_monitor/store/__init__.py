"""
Record Store backends.
``create_store`` picks the implementation named by ``settings.store_backend``.
"""
from sqlalchemy.exc import DBAPIError

from battery_monitor.core.config import Settings
from battery_monitor.core.database import create_engine, init_db
from battery_monitor.core.exceptions import StoreUnavailableError
from battery_monitor.store.base import BatteryStore
from battery_monitor.store.memory import InMemoryBatteryStore
from battery_monitor.store.rest import RestBatteryStore
from battery_monitor.store.sql import SqlBatteryStore


async def create_store(settings: Settings) -> BatteryStore:
    """Build the configured store; SQL tables are created when ``run_db_init`` is set."""
    if settings.store_backend == "sql":
        engine = create_engine(settings)
        if settings.run_db_init:
            try:
                await init_db(engine)
            except (DBAPIError, OSError) as e:
                await engine.dispose()
                raise StoreUnavailableError("sql", str(e)) from e
        return SqlBatteryStore.from_engine(engine)

    if settings.store_backend == "rest":
        if not settings.rest_store_url:
            raise StoreUnavailableError("rest", "REST_STORE_URL is not configured")
        return RestBatteryStore(
            settings.rest_store_url,
            settings.rest_store_key,
            timeout=settings.rest_store_timeout,
        )

    return InMemoryBatteryStore()


__all__ = [
    "BatteryStore",
    "InMemoryBatteryStore",
    "RestBatteryStore",
    "SqlBatteryStore",
    "create_store",
]
