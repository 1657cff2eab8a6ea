"""
Telemetry Simulator.

Emulates hardware drift without real sensors. Two independent cadences:

- record tick: one random battery takes a small random-walk step
- bulk tick (demo mode, off by default): every battery jumps by a large
  synthetic amount; not a physical model

Every step writes the battery back to the store and appends its history
sample before the change is broadcast.
"""
import asyncio
import random
from datetime import datetime
from typing import Awaitable, Callable

from battery_monitor.core.logging import get_logger
from battery_monitor.core.metrics import record_recommendation, record_tick
from battery_monitor.modules.batteries.schemas import (
    BatteryRecord,
    HistorySample,
    HistorySampleCreate,
    RecommendationCreate,
    utc_now,
)
from battery_monitor.modules.realtime.broadcaster import ChangeBroadcaster
from battery_monitor.modules.simulator.perturbation import (
    Perturbation,
    SimulatorConfig,
    apply_bulk_jump,
    apply_health_delta,
    draw_bulk_jump,
    draw_small_step,
)
from battery_monitor.modules.simulator.templates import RECOMMENDATION_TEMPLATES
from battery_monitor.store.base import BatteryStore

logger = get_logger(__name__)


class TelemetrySimulator:
    """
    Periodic battery mutation, started and stopped with the application.

    Usage:
        simulator = TelemetrySimulator(store, broadcaster, SimulatorConfig())
        simulator.start()
        ...
        await simulator.stop()
    """

    def __init__(
        self,
        store: BatteryStore,
        broadcaster: ChangeBroadcaster,
        config: SimulatorConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.config = config or SimulatorConfig()
        self.rng = rng or random.Random()
        self._clock = clock
        # Record and bulk ticks must not interleave their read-modify-write
        self._step_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    # ============== Lifecycle ==============

    def start(self) -> None:
        if self.is_running:
            return
        self._stopping.clear()
        self._tasks.append(
            asyncio.create_task(
                self._run("record", self.config.tick_interval, self.tick),
                name="simulator-record-tick",
            )
        )
        if self.config.bulk_enabled:
            self._tasks.append(
                asyncio.create_task(
                    self._run("bulk", self.config.bulk_interval, self.bulk_tick),
                    name="simulator-bulk-tick",
                )
            )
        logger.info(
            "Simulator started",
            tick_interval=self.config.tick_interval,
            bulk_enabled=self.config.bulk_enabled,
            bulk_interval=self.config.bulk_interval,
        )

    async def stop(self) -> None:
        """
        Stop both cadences.

        A tick that already fired runs to completion; none fires after this
        returns.
        """
        if not self.is_running:
            return
        self._stopping.set()
        await asyncio.gather(*self._tasks)
        self._tasks = []
        logger.info("Simulator stopped")

    async def _run(
        self,
        kind: str,
        interval: float,
        step: Callable[[], Awaitable[object]],
    ) -> None:
        while True:
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            await step()

    # ============== Ticks ==============

    async def tick(self) -> BatteryRecord | None:
        """Small step on one random battery. Errors are logged, never raised."""
        async with self._step_lock:
            try:
                updated = await self._record_step()
            except Exception as e:
                logger.warning("Simulator tick failed", kind="record", error=str(e))
                record_tick("record", "failed")
                return None

        record_tick("record", "ok" if updated else "skipped")
        return updated

    async def bulk_tick(self) -> list[BatteryRecord]:
        """Demo jump on every battery; one failing battery does not stop the rest."""
        async with self._step_lock:
            try:
                batteries = await self.store.list_batteries()
            except Exception as e:
                logger.warning("Simulator tick failed", kind="bulk", error=str(e))
                record_tick("bulk", "failed")
                return []

            updated: list[BatteryRecord] = []
            for battery in batteries:
                cycle_jump, cycle_direction, health_jump, health_direction = draw_bulk_jump(
                    self.rng,
                    self.config,
                )
                perturbation = apply_bulk_jump(
                    battery,
                    cycle_jump,
                    cycle_direction,
                    health_jump,
                    health_direction,
                )
                try:
                    result = await self._commit(battery, perturbation, append_history=True)
                except Exception as e:
                    logger.warning(
                        "Simulator bulk update failed",
                        battery_id=battery.id,
                        error=str(e),
                    )
                    record_tick("bulk", "failed")
                    continue
                if result is not None:
                    updated.append(result)

        record_tick("bulk", "ok" if updated else "skipped")
        logger.info("Bulk jump applied", batteries=len(updated))
        return updated

    async def _record_step(self) -> BatteryRecord | None:
        batteries = await self.store.list_batteries()
        if not batteries:
            return None

        battery = self.rng.choice(batteries)
        delta, cycle_increment = draw_small_step(self.rng, self.config)
        perturbation = apply_health_delta(battery, delta, cycle_increment)
        append_history = self.rng.random() < self.config.history_probability
        return await self._commit(battery, perturbation, append_history=append_history)

    async def _commit(
        self,
        battery: BatteryRecord,
        perturbation: Perturbation,
        append_history: bool,
    ) -> BatteryRecord | None:
        """Write, record history, broadcast, then maybe recommend."""
        now = self._clock()
        updated = await self.store.update_battery(battery.id, perturbation.to_update(now))
        if updated is None:
            logger.info("Battery removed before update", battery_id=battery.id)
            return None

        history: HistorySample | None = None
        if append_history:
            history = await self.store.append_history(
                HistorySampleCreate(
                    battery_id=updated.id,
                    date=now,
                    capacity=updated.current_capacity,
                    health_percentage=updated.health_percentage,
                    cycle_count=updated.cycle_count,
                )
            )

        await self.broadcaster.publish_record_updated(updated, history)
        logger.debug(
            "Battery updated",
            battery_id=updated.id,
            health=updated.health_percentage,
            cycles=updated.cycle_count,
        )

        if self.rng.random() < self.config.recommendation_probability:
            try:
                await self._recommend(updated, now)
            except Exception as e:
                logger.warning("Recommendation failed", battery_id=updated.id, error=str(e))
        return updated

    async def _recommend(self, battery: BatteryRecord, now: datetime) -> None:
        template = self.rng.choice(RECOMMENDATION_TEMPLATES)
        await self.store.create_recommendation(
            RecommendationCreate(
                battery_id=battery.id,
                type=template.type,
                message=template.render(battery.name, battery.health_percentage),
                created_at=now,
            )
        )
        record_recommendation(template.type.value)
        logger.info("Recommendation generated", battery_id=battery.id, type=template.type.value)
