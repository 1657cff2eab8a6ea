"""
Realtime Module - Change broadcaster and client reconciler.

Events: SnapshotEvent, RecordUpdatedEvent, RecordCreatedEvent
"""
from battery_monitor.modules.realtime.broadcaster import (
    ChangeBroadcaster,
    QueueChannel,
    Subscription,
    WebSocketChannel,
)
from battery_monitor.modules.realtime.client import BatteryFeedClient
from battery_monitor.modules.realtime.events import (
    BatteryEvent,
    RecordCreatedEvent,
    RecordUpdatedEvent,
    SnapshotEvent,
    decode_event,
    encode_event,
)
from battery_monitor.modules.realtime.reconciler import BatteryCache, reconcile

__all__ = [
    "BatteryCache",
    "BatteryEvent",
    "BatteryFeedClient",
    "ChangeBroadcaster",
    "QueueChannel",
    "RecordCreatedEvent",
    "RecordUpdatedEvent",
    "SnapshotEvent",
    "Subscription",
    "WebSocketChannel",
    "decode_event",
    "encode_event",
    "reconcile",
]
