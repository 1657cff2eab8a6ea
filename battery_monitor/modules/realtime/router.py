"""
Realtime Module - Router

Live battery events over Server-Sent Events or WebSocket. Every new
connection starts with a ``snapshot`` event, followed by ``record_updated``
and ``record_created`` events as they happen.
"""
import asyncio
from typing import AsyncGenerator, AsyncIterator

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import StreamingResponse

from battery_monitor.core.config import settings
from battery_monitor.core.exceptions import StoreUnavailableError
from battery_monitor.core.logging import get_logger
from battery_monitor.modules.realtime.broadcaster import (
    ChangeBroadcaster,
    QueueChannel,
    Subscription,
    WebSocketChannel,
)
from battery_monitor.modules.realtime.dependencies import get_broadcaster

logger = get_logger(__name__)

router = APIRouter(prefix="/realtime", tags=["Realtime"])

KEEPALIVE_FRAME = ": keepalive\n\n"


async def sse_frames(channel: QueueChannel, keepalive: float) -> AsyncIterator[str]:
    """
    Turn queued event messages into SSE frames.

    Format: data: {json}\\n\\n, plus a comment frame after ``keepalive``
    seconds of silence. Ends when the channel is closed.
    """
    while True:
        try:
            message = await asyncio.wait_for(channel.receive(), timeout=keepalive)
        except asyncio.TimeoutError:
            yield KEEPALIVE_FRAME
            continue
        if message is None:
            return
        yield f"data: {message}\n\n"


async def event_generator(
    request: Request,
    broadcaster: ChangeBroadcaster,
    channel: QueueChannel,
    handle: Subscription,
) -> AsyncGenerator[str, None]:
    try:
        async for frame in sse_frames(channel, settings.sse_keepalive_seconds):
            if await request.is_disconnected():
                logger.info("SSE client disconnected", subscriber_id=handle.id)
                break
            yield frame
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled", subscriber_id=handle.id)
        raise
    finally:
        broadcaster.unsubscribe(handle)


@router.get("/stream")
async def battery_stream(
    request: Request,
    broadcaster: ChangeBroadcaster = Depends(get_broadcaster),
):
    """
    SSE stream of battery events.

    Usage:
    ```javascript
    const source = new EventSource('/api/v1/realtime/stream');
    source.onmessage = (event) => {
        const message = JSON.parse(event.data);
        switch (message.type) {
            case 'snapshot': replaceAll(message.data); break;
            case 'record_updated': upsert(message.data.battery); break;
            case 'record_created': insert(message.data); break;
        }
    };
    ```
    """
    channel = QueueChannel(maxsize=settings.subscriber_queue_size)
    handle = await broadcaster.subscribe(channel)
    logger.info("SSE stream started", subscriber_id=handle.id)

    return StreamingResponse(
        event_generator(request, broadcaster, channel, handle),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.websocket("/ws")
async def battery_socket(websocket: WebSocket):
    """WebSocket variant of the stream; client messages are ignored."""
    broadcaster: ChangeBroadcaster = websocket.app.state.broadcaster
    await websocket.accept()

    try:
        handle = await broadcaster.subscribe(WebSocketChannel(websocket))
    except StoreUnavailableError as e:
        logger.warning("WebSocket subscribe failed", error=e.message)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected", subscriber_id=handle.id)
    finally:
        broadcaster.unsubscribe(handle)
