"""
Battery feed client.

Hosts a ``BatteryCache`` for a consumer of the API: follows the SSE stream,
reconnects after failures and polls the battery list on a separate interval
as a fallback for a silently dead stream.

Usage:
    async with BatteryFeedClient("http://localhost:5000") as feed:
        feed.add_listener(lambda cache, event: render(cache.records))
        ...
        if feed.is_stale:
            show_stale_banner()
"""
import asyncio
import time
from typing import Callable

import httpx
from pydantic import ValidationError as PydanticValidationError

from battery_monitor.core.logging import get_logger
from battery_monitor.modules.batteries.schemas import BatteryRecord
from battery_monitor.modules.realtime.events import BatteryEvent, SnapshotEvent, decode_event
from battery_monitor.modules.realtime.reconciler import BatteryCache, reconcile

logger = get_logger(__name__)

Listener = Callable[[BatteryCache, BatteryEvent], None]


class BatteryFeedClient:
    """Client-side reconciler host for the realtime battery feed."""

    def __init__(
        self,
        base_url: str,
        api_prefix: str = "/api/v1",
        poll_interval: float = 10.0,
        reconnect_delay: float = 3.0,
        stale_after: float = 30.0,
        track_history: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix
        self.poll_interval = poll_interval
        self.reconnect_delay = reconnect_delay
        self.stale_after = stale_after
        self.cache = BatteryCache(track_history=track_history)

        self._transport = transport
        self._clock = clock
        self._client: httpx.AsyncClient | None = None
        self._listeners: list[Listener] = []
        self._last_sync: float | None = None
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def __aenter__(self) -> "BatteryFeedClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ============== Cache ==============

    @property
    def batteries(self) -> tuple[BatteryRecord, ...]:
        return self.cache.records

    @property
    def is_stale(self) -> bool:
        """True when nothing was synced within ``stale_after`` seconds."""
        if self._last_sync is None:
            return True
        return self._clock() - self._last_sync > self.stale_after

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def apply(self, event: BatteryEvent) -> BatteryCache:
        """Merge one event into the cache and notify listeners."""
        self.cache = reconcile(self.cache, event)
        self._mark_synced()
        for listener in self._listeners:
            listener(self.cache, event)
        return self.cache

    def _mark_synced(self) -> None:
        self._last_sync = self._clock()

    # ============== Transport ==============

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url + self.api_prefix,
                transport=self._transport,
                timeout=httpx.Timeout(10.0, read=None),
            )
        return self._client

    async def poll_once(self) -> bool:
        """Fetch the full battery list and merge it as a snapshot."""
        client = self._get_client()
        try:
            response = await client.get("/batteries")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Battery poll failed", error=str(e))
            return False

        try:
            batteries = [BatteryRecord.model_validate(item) for item in response.json()]
        except (ValueError, TypeError, PydanticValidationError) as e:
            logger.warning("Ignoring malformed battery list", error=str(e))
            return False
        self.apply(SnapshotEvent(data=batteries))
        return True

    async def consume_stream(self) -> None:
        """Apply events from one SSE connection until the server closes it."""
        client = self._get_client()
        async with client.stream(
            "GET",
            "/realtime/stream",
            headers={"Accept": "text/event-stream"},
        ) as response:
            response.raise_for_status()
            logger.info("Battery stream connected")

            data_lines: list[str] = []
            async for line in response.aiter_lines():
                if line.startswith(":"):
                    # Keep-alive comment
                    self._mark_synced()
                elif line.startswith("data:"):
                    data_lines.append(line[5:].lstrip())
                elif not line and data_lines:
                    self._handle_message("\n".join(data_lines))
                    data_lines = []

    def _handle_message(self, payload: str) -> None:
        try:
            event = decode_event(payload)
        except PydanticValidationError as e:
            logger.warning("Ignoring malformed battery event", error=str(e))
            return
        self.apply(event)

    # ============== Lifecycle ==============

    async def start(self) -> None:
        if self._tasks:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._stream_loop(), name="battery-feed-stream"),
            asyncio.create_task(self._poll_loop(), name="battery-feed-poll"),
        ]

    async def stop(self) -> None:
        self._stopping.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _sleep(self, seconds: float) -> bool:
        """Wait ``seconds`` unless stopped first; returns False when stopping."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def _stream_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.consume_stream()
                logger.info("Battery stream closed by server")
            except (httpx.HTTPError, httpx.StreamError) as e:
                logger.warning("Battery stream failed", error=str(e))
            if not await self._sleep(self.reconnect_delay):
                return

    async def _poll_loop(self) -> None:
        while await self._sleep(self.poll_interval):
            await self.poll_once()
