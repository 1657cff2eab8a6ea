"""
Change broadcaster and SSE framing tests.
"""
import asyncio
import json

import pytest

from battery_monitor.core.exceptions import StoreUnavailableError
from battery_monitor.modules.realtime.broadcaster import (
    ChangeBroadcaster,
    ChannelClosedError,
    QueueChannel,
)
from battery_monitor.modules.realtime.events import (
    RecordCreatedEvent,
    RecordUpdatedEvent,
    SnapshotEvent,
    decode_event,
)
from battery_monitor.modules.realtime.router import KEEPALIVE_FRAME, sse_frames
from battery_monitor.store.memory import InMemoryBatteryStore


class BrokenStore(InMemoryBatteryStore):
    async def list_batteries(self):
        raise StoreUnavailableError(self.backend_name, "connection refused")


@pytest.mark.asyncio
async def test_subscribe_sends_snapshot_first(store, broadcaster, channel_factory, battery_data):
    battery = await store.create_battery(battery_data())
    channel = channel_factory()

    handle = await broadcaster.subscribe(channel)

    assert broadcaster.is_subscribed(handle)
    assert broadcaster.subscriber_count == 1
    (snapshot,) = channel.events
    assert isinstance(snapshot, SnapshotEvent)
    assert [b.id for b in snapshot.data] == [battery.id]


@pytest.mark.asyncio
async def test_subscribe_fails_cleanly_when_store_is_down(channel_factory):
    broadcaster = ChangeBroadcaster(BrokenStore())

    with pytest.raises(StoreUnavailableError):
        await broadcaster.subscribe(channel_factory())

    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_failing_subscriber_is_dropped_others_still_receive(
    store, broadcaster, channel_factory, battery_data
):
    healthy = channel_factory()
    flaky = channel_factory()
    await broadcaster.subscribe(healthy)
    flaky_handle = await broadcaster.subscribe(flaky)
    flaky.fail = True

    battery = await store.create_battery(battery_data())
    delivered = await broadcaster.publish_record_created(battery)

    assert delivered == 1
    assert not broadcaster.is_subscribed(flaky_handle)
    assert broadcaster.subscriber_count == 1
    assert isinstance(healthy.events[-1], RecordCreatedEvent)


@pytest.mark.asyncio
async def test_per_subscriber_order_is_publish_order(store, broadcaster, channel_factory, battery_data):
    battery = await store.create_battery(battery_data())
    # Snapshot immediate, first update slow, second fast
    slow = channel_factory(delays=[0, 0.05, 0])
    fast = channel_factory()
    await broadcaster.subscribe(slow)
    await broadcaster.subscribe(fast)

    first = battery.model_copy(update={"health_percentage": 94.0})
    second = battery.model_copy(update={"health_percentage": 93.0})
    await asyncio.gather(
        broadcaster.publish_record_updated(first),
        broadcaster.publish_record_updated(second),
    )

    for channel in (slow, fast):
        updates = [e.data.battery.health_percentage for e in channel.events[1:]]
        assert updates == [94.0, 93.0]


@pytest.mark.asyncio
async def test_slow_subscriber_times_out_and_is_dropped(store, channel_factory):
    broadcaster = ChangeBroadcaster(store, send_timeout=0.01)
    stuck = channel_factory(delays=[0, 1.0])
    handle = await broadcaster.subscribe(stuck)

    delivered = await broadcaster.publish_snapshot()

    assert delivered == 0
    assert not broadcaster.is_subscribed(handle)


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent(broadcaster, channel_factory):
    handle = await broadcaster.subscribe(channel_factory())

    broadcaster.unsubscribe(handle)
    broadcaster.unsubscribe(handle)

    assert broadcaster.subscriber_count == 0
    assert await broadcaster.publish_snapshot() == 0


@pytest.mark.asyncio
async def test_record_updated_without_history_omits_field(store, broadcaster, channel_factory, battery_data):
    battery = await store.create_battery(battery_data())
    channel = channel_factory()
    await broadcaster.subscribe(channel)

    await broadcaster.publish_record_updated(battery)

    payload = json.loads(channel.messages[-1])
    assert payload["type"] == "record_updated"
    assert "history" not in payload["data"]
    assert payload["data"]["battery"]["status"] == "Excellent"
    event = decode_event(channel.messages[-1])
    assert isinstance(event, RecordUpdatedEvent)
    assert event.data.history is None


@pytest.mark.asyncio
async def test_close_disconnects_everyone(broadcaster, channel_factory):
    await broadcaster.subscribe(channel_factory())
    await broadcaster.subscribe(channel_factory())

    await broadcaster.close()

    assert broadcaster.subscriber_count == 0


# ============== Queue channel ==============

@pytest.mark.asyncio
async def test_full_queue_drops_subscriber(broadcaster):
    channel = QueueChannel(maxsize=1)
    handle = await broadcaster.subscribe(channel)

    assert await broadcaster.publish_snapshot() == 0
    assert not broadcaster.is_subscribed(handle)
    assert channel.closed


@pytest.mark.asyncio
async def test_closed_queue_rejects_sends():
    channel = QueueChannel()
    channel.close()

    with pytest.raises(ChannelClosedError):
        await channel.send("{}")
    assert await channel.receive() is None


@pytest.mark.asyncio
async def test_sse_frames_data_keepalive_and_end(broadcaster):
    channel = QueueChannel()
    handle = await broadcaster.subscribe(channel)
    frames = sse_frames(channel, keepalive=0.01)

    first = await frames.__anext__()
    assert first.startswith("data: ")
    assert first.endswith("\n\n")
    assert isinstance(decode_event(first[len("data: "):].strip()), SnapshotEvent)

    assert await frames.__anext__() == KEEPALIVE_FRAME

    broadcaster.unsubscribe(handle)
    with pytest.raises(StopAsyncIteration):
        await frames.__anext__()
