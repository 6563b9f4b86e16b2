"""Canonical data model for smart home events and ingest documents.

The controller's long-polling API emits loosely typed JSON objects that are
discriminated only by their ``@type`` field. These Pydantic models give the
known event shapes a typed view while :class:`UnknownEvent` keeps the raw
mapping for anything else, so classification stays total: every record parses
into exactly one model.

Models allow extra fields because the controller adds attributes between
firmware releases and the ingest pipeline must not reject them.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class BaseEvent(BaseModel):
    """Fields shared by all controller events.

    Attributes
    ----------
    event_type: str
        The ``@type`` discriminator.
    time: Optional[Any]
        Timestamp added by the collector when the event was received, normally
        an ISO 8601 string. Carried into the document as-is.
    id: Optional[Any]
        Entity identifier; its meaning depends on the event type.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    event_type: str = Field(..., alias="@type")
    time: Optional[Any] = None
    id: Optional[Any] = None


class DeviceServiceDataEvent(BaseEvent):
    """Sensor reading or device state update.

    ``id`` names the service (e.g. "HumidityLevel", "ValveTappet") and
    ``state`` holds the service state with its own ``@type``.
    Only ``deviceId`` is strictly typed: it keys the registry lookup. The other
    payload fields are kept loose so a malformed one does not cost the record
    its enrichment.
    """

    event_type: Literal["DeviceServiceData"] = Field(..., alias="@type")
    device_id: Optional[str] = Field(None, alias="deviceId")
    path: Optional[Any] = None
    state: Optional[Any] = None


class DeviceEvent(BaseEvent):
    """Device metadata and configuration update."""

    event_type: Literal["device"] = Field(..., alias="@type")
    name: Optional[Any] = None
    room_id: Optional[Any] = Field(None, alias="roomId")


class RoomEvent(BaseEvent):
    """Room metadata update, often carrying aggregated sensor values."""

    event_type: Literal["room"] = Field(..., alias="@type")
    name: Optional[Any] = None
    icon_id: Optional[Any] = Field(None, alias="iconId")
    ext_properties: Optional[Any] = Field(None, alias="extProperties")


class MessageEvent(BaseEvent):
    """System message, notification or device error."""

    event_type: Literal["message"] = Field(..., alias="@type")


class ClientEvent(BaseEvent):
    """Paired client application (mobile app, integration)."""

    event_type: Literal["client"] = Field(..., alias="@type")


class LightEvent(BaseEvent):
    """Light control update."""

    event_type: Literal["light"] = Field(..., alias="@type")


class UnknownEvent(BaseModel):
    """Any record whose ``@type`` is not recognized.

    Attributes
    ----------
    event_type: str
        The raw ``@type`` value rendered as a string ("unknown" if absent).
    raw: Dict[str, Any]
        The original record, untouched.
    validation_errors: int
        Number of field errors when the ``@type`` is known but the record did
        not validate against its model; 0 for genuinely unknown types.
    """

    model_config = ConfigDict(frozen=True)

    event_type: str
    raw: Dict[str, Any]
    validation_errors: int = 0


KnownEvent = Union[
    DeviceServiceDataEvent,
    DeviceEvent,
    RoomEvent,
    MessageEvent,
    ClientEvent,
    LightEvent,
]
SmartHomeEvent = Union[KnownEvent, UnknownEvent]

EVENT_MODELS: Dict[str, Type[BaseEvent]] = {
    "DeviceServiceData": DeviceServiceDataEvent,
    "device": DeviceEvent,
    "room": RoomEvent,
    "message": MessageEvent,
    "client": ClientEvent,
    "light": LightEvent,
}

KNOWN_EVENT_TYPES = frozenset(EVENT_MODELS)


def is_known_event_type(event_type: object) -> bool:
    """Return True if ``event_type`` is one of the modelled ``@type`` values."""
    return isinstance(event_type, str) and event_type in KNOWN_EVENT_TYPES


def parse_event(raw: Mapping[str, Any]) -> SmartHomeEvent:
    """Classify a raw record into its typed model.

    Never raises. A known ``@type`` whose fields do not validate (e.g. a
    numeric ``deviceId``) is treated as unknown so the caller can still index
    it with basic field extraction.
    """
    event_type = raw.get("@type")
    model = EVENT_MODELS.get(event_type) if isinstance(event_type, str) else None
    errors = 0
    if model is not None:
        try:
            return model.model_validate(dict(raw))
        except ValidationError as exc:
            errors = exc.error_count()
    return UnknownEvent(
        event_type=str(event_type) if event_type is not None else "unknown",
        raw=dict(raw),
        validation_errors=errors,
    )


# ---------------- Device registry ----------------


class DeviceInfo(BaseModel):
    """Device metadata from the registry snapshot."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    type: Optional[str] = None
    room_id: Optional[str] = Field(None, alias="roomId")


class RoomInfo(BaseModel):
    """Room metadata from the registry snapshot."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    icon_id: Optional[str] = Field(None, alias="iconId")


class DeviceRegistry(BaseModel):
    """Immutable snapshot of the controller's devices and rooms.

    Attributes
    ----------
    fetched_at: str
        When the snapshot was fetched from the controller.
    devices: Dict[str, DeviceInfo]
        Device identifier to metadata.
    rooms: Dict[str, RoomInfo]
        Room identifier to metadata.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    fetched_at: str = Field(..., alias="fetchedAt")
    devices: Dict[str, DeviceInfo] = Field(default_factory=dict)
    rooms: Dict[str, RoomInfo] = Field(default_factory=dict)


# ---------------- Ingest documents ----------------


class Metric(BaseModel):
    """Normalized numeric reading, e.g. ``{"name": "humidity", "value": 42.7}``."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float


class DeviceField(BaseModel):
    """Device block of an indexed document."""

    name: str
    type: Optional[str] = None


class RoomField(BaseModel):
    """Room block of an indexed document."""

    id: str
    name: str


class TransformedEvent(BaseModel):
    """Enriched document ready for indexing.

    Serialize with :meth:`to_document` so aliases (``@timestamp``, ``@type``)
    are used and absent optional blocks are omitted.
    """

    model_config = ConfigDict(populate_by_name=True)

    timestamp: Optional[Any] = Field(None, alias="@timestamp")
    event_type: Optional[str] = Field(None, alias="@type")
    id: Optional[str] = None
    device_id: Optional[str] = Field(None, alias="deviceId")
    path: Optional[str] = None
    device: Optional[DeviceField] = None
    room: Optional[RoomField] = None
    metric: Optional[Metric] = None

    def to_document(self) -> Dict[str, Any]:
        """Return the JSON-ready document body."""
        return self.model_dump(by_alias=True, exclude_none=True)
