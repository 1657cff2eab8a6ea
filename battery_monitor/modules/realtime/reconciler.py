"""
Client Reconciler.

Pure merge of broadcaster events into a client-side battery cache. Events may
arrive out of order or twice; every merge is an upsert and never raises for
an unknown battery id.
"""
from dataclasses import dataclass, field, replace
from typing import Mapping

from battery_monitor.modules.batteries.schemas import BatteryRecord, HistorySample
from battery_monitor.modules.realtime.events import (
    BatteryEvent,
    RecordCreatedEvent,
    RecordUpdatedEvent,
    SnapshotEvent,
)


@dataclass(frozen=True)
class BatteryCache:
    """
    Immutable client view: batteries in display order plus optional history.

    ``history`` is only maintained when ``track_history`` is set.
    """
    records: tuple[BatteryRecord, ...] = ()
    history: Mapping[int, tuple[HistorySample, ...]] = field(default_factory=dict)
    track_history: bool = False

    def get(self, battery_id: int) -> BatteryRecord | None:
        for record in self.records:
            if record.id == battery_id:
                return record
        return None

    def history_for(self, battery_id: int) -> tuple[HistorySample, ...]:
        return self.history.get(battery_id, ())

    @property
    def ids(self) -> list[int]:
        return [record.id for record in self.records]


def _upsert(records: tuple[BatteryRecord, ...], battery: BatteryRecord) -> tuple[BatteryRecord, ...]:
    """Replace in place when the id is known, else append."""
    for index, record in enumerate(records):
        if record.id == battery.id:
            return records[:index] + (battery,) + records[index + 1:]
    return records + (battery,)


def _append_history(
    history: Mapping[int, tuple[HistorySample, ...]],
    sample: HistorySample,
) -> dict[int, tuple[HistorySample, ...]]:
    samples = history.get(sample.battery_id, ())
    if any(existing.id == sample.id for existing in samples):
        return dict(history)
    return {**history, sample.battery_id: samples + (sample,)}


def reconcile(cache: BatteryCache, event: BatteryEvent) -> BatteryCache:
    """Return the cache that results from applying ``event`` to ``cache``."""
    if isinstance(event, SnapshotEvent):
        records = tuple(event.data)
        kept = {record.id for record in records}
        history = {k: v for k, v in cache.history.items() if k in kept}
        return replace(cache, records=records, history=history)

    if isinstance(event, RecordUpdatedEvent):
        battery = event.data.battery
        records = _upsert(cache.records, battery)
        history = cache.history
        sample = event.data.history
        if cache.track_history and sample is not None:
            history = _append_history(history, sample)
        return replace(cache, records=records, history=history)

    if isinstance(event, RecordCreatedEvent):
        if cache.get(event.data.id) is not None:
            return cache
        return replace(cache, records=cache.records + (event.data,))

    raise TypeError(f"Unsupported battery event: {type(event).__name__}")
