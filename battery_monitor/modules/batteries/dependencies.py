"""
Batteries Module - FastAPI Dependencies
"""
from typing import Annotated

from fastapi import Depends, Request

from battery_monitor.modules.batteries.service import BatteryService
from battery_monitor.modules.realtime.broadcaster import ChangeBroadcaster
from battery_monitor.modules.realtime.dependencies import get_broadcaster
from battery_monitor.store.base import BatteryStore


def get_store(request: Request) -> BatteryStore:
    """Record store created by the application lifespan."""
    return request.app.state.store


async def get_battery_service(
    store: Annotated[BatteryStore, Depends(get_store)],
    broadcaster: Annotated[ChangeBroadcaster, Depends(get_broadcaster)],
) -> BatteryService:
    return BatteryService(store, broadcaster)


# Type aliases
BatteryServiceDep = Annotated[BatteryService, Depends(get_battery_service)]
