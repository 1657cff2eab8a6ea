"""
Realtime Module - Dependencies
"""
from fastapi import Request

from battery_monitor.modules.realtime.broadcaster import ChangeBroadcaster


def get_broadcaster(request: Request) -> ChangeBroadcaster:
    """Broadcaster created by the application lifespan."""
    return request.app.state.broadcaster
