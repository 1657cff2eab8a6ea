"""
Realtime Module - Event Schemas

Wire shape: ``{"type": "snapshot" | "record_updated" | "record_created", "data": ...}``
"""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from battery_monitor.modules.batteries.schemas import BatteryRecord, HistorySample


class SnapshotEvent(BaseModel):
    """Full record list, sent on (re)connect and after deletes."""
    type: Literal["snapshot"] = "snapshot"
    data: list[BatteryRecord]


class RecordUpdate(BaseModel):
    battery: BatteryRecord
    history: HistorySample | None = None


class RecordUpdatedEvent(BaseModel):
    """One battery changed, with the history sample appended for the change."""
    type: Literal["record_updated"] = "record_updated"
    data: RecordUpdate


class RecordCreatedEvent(BaseModel):
    type: Literal["record_created"] = "record_created"
    data: BatteryRecord


BatteryEvent = Annotated[
    Union[SnapshotEvent, RecordUpdatedEvent, RecordCreatedEvent],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[BatteryEvent] = TypeAdapter(BatteryEvent)


def encode_event(event: BatteryEvent) -> str:
    """Serialize an event to its JSON wire form."""
    return event.model_dump_json(exclude_none=True)


def decode_event(payload: str | bytes) -> BatteryEvent:
    """Parse a JSON wire message; raises ``pydantic.ValidationError`` on unknown shapes."""
    return _event_adapter.validate_json(payload)
