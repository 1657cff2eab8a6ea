"""
Change Broadcaster.

Fans battery events out to every connected subscriber. Delivery is
at-most-once: a subscriber whose channel fails is dropped, never retried,
and resynchronizes from the snapshot it receives when it reconnects.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from fastapi import WebSocket

from battery_monitor.core.logging import get_logger
from battery_monitor.core.metrics import (
    record_delivery_failure,
    record_event_published,
    set_subscriber_count,
)
from battery_monitor.modules.batteries.schemas import BatteryRecord, HistorySample
from battery_monitor.modules.realtime.events import (
    BatteryEvent,
    RecordCreatedEvent,
    RecordUpdate,
    RecordUpdatedEvent,
    SnapshotEvent,
    encode_event,
)
from battery_monitor.store.base import BatteryStore

logger = get_logger(__name__)


class ChannelClosedError(Exception):
    """Raised by a channel that can no longer accept messages."""


class SubscriberChannel(Protocol):
    """Transport to one subscriber."""

    async def send(self, message: str) -> None:
        ...


class QueueChannel:
    """
    Bounded in-process buffer drained by a streaming response.

    A full buffer means the reader is not keeping up; the send fails and the
    broadcaster drops the subscriber.
    """

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def send(self, message: str) -> None:
        if self.closed:
            raise ChannelClosedError("channel closed")
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull as e:
            raise ChannelClosedError("subscriber buffer full") from e

    async def receive(self) -> str | None:
        """Next message, or ``None`` once the channel is closed and drained."""
        if self.closed and self.queue.empty():
            return None
        return await self.queue.get()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # A full queue means the reader is not blocked in get()
        if not self.queue.full():
            self.queue.put_nowait(None)


class WebSocketChannel:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, message: str) -> None:
        await self.websocket.send_text(message)


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``subscribe``."""
    channel: SubscriberChannel
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    # Serializes deliveries to this subscriber in publish order
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ChangeBroadcaster:
    """
    Registry of live subscribers.

    Usage:
        broadcaster = ChangeBroadcaster(store)
        handle = await broadcaster.subscribe(QueueChannel())
        await broadcaster.publish_record_created(battery)
        broadcaster.unsubscribe(handle)
    """

    def __init__(self, store: BatteryStore, send_timeout: float = 5.0):
        self._store = store
        self._send_timeout = send_timeout
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def is_subscribed(self, handle: Subscription) -> bool:
        return handle.id in self._subscriptions

    async def subscribe(self, channel: SubscriberChannel) -> Subscription:
        """
        Register ``channel`` and send it a snapshot of every battery.

        The snapshot is sent while holding the subscription lock, so events
        published meanwhile are delivered after it, never before.
        """
        handle = Subscription(channel=channel)
        async with handle.lock:
            self._subscriptions[handle.id] = handle
            set_subscriber_count(self.subscriber_count)
            try:
                batteries = await self._store.list_batteries()
            except Exception:
                self.unsubscribe(handle)
                raise
            await self._send(handle, encode_event(SnapshotEvent(data=batteries)))

        logger.info(
            "Subscriber connected",
            subscriber_id=handle.id,
            subscribers=self.subscriber_count,
        )
        return handle

    def unsubscribe(self, handle: Subscription) -> None:
        """Remove a subscriber. Unknown or already removed handles are ignored."""
        if self._subscriptions.pop(handle.id, None) is None:
            return
        set_subscriber_count(self.subscriber_count)
        if isinstance(handle.channel, QueueChannel):
            handle.channel.close()
        logger.info(
            "Subscriber disconnected",
            subscriber_id=handle.id,
            subscribers=self.subscriber_count,
        )

    async def publish(self, event: BatteryEvent) -> int:
        """
        Send ``event`` to every current subscriber concurrently.

        Returns the number of subscribers that accepted it.
        """
        message = encode_event(event)
        record_event_published(event.type)

        handles = list(self._subscriptions.values())
        if not handles:
            return 0

        delivered = await asyncio.gather(*(self._deliver(h, message) for h in handles))
        return sum(delivered)

    async def publish_snapshot(self) -> int:
        batteries = await self._store.list_batteries()
        return await self.publish(SnapshotEvent(data=batteries))

    async def publish_record_updated(
        self,
        battery: BatteryRecord,
        history: HistorySample | None = None,
    ) -> int:
        return await self.publish(
            RecordUpdatedEvent(data=RecordUpdate(battery=battery, history=history))
        )

    async def publish_record_created(self, battery: BatteryRecord) -> int:
        return await self.publish(RecordCreatedEvent(data=battery))

    async def close(self) -> None:
        """Disconnect every subscriber."""
        for handle in list(self._subscriptions.values()):
            self.unsubscribe(handle)

    async def _deliver(self, handle: Subscription, message: str) -> bool:
        async with handle.lock:
            if not self.is_subscribed(handle):
                return False
            return await self._send(handle, message)

    async def _send(self, handle: Subscription, message: str) -> bool:
        """Send under the handle lock; a failing channel is dropped."""
        try:
            await asyncio.wait_for(handle.channel.send(message), timeout=self._send_timeout)
        except Exception as e:
            logger.warning(
                "Dropping subscriber after failed send",
                subscriber_id=handle.id,
                error=repr(e),
            )
            record_delivery_failure()
            self.unsubscribe(handle)
            return False
        return True
