"""Event transformation for Elasticsearch indexing.

Turns raw controller events into enriched documents with device and room
names from the registry snapshot. Both delivery modes (bulk import and watch
mode) use the same :class:`EventTransformer`, so a record produces an identical
document whichever path indexes it.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Tuple

from ..domain.models import (
    DeviceField,
    DeviceServiceDataEvent,
    RoomEvent,
    RoomField,
    TransformedEvent,
    UnknownEvent,
    is_known_event_type,
    parse_event,
)
from .metrics import extract_metric
from .registry import RegistryCache

logger = logging.getLogger(__name__)


def _string_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


class EventTransformer:
    """Enrich raw events using an optional registry cache.

    Parameters
    ----------
    registry: Optional[RegistryCache]
        Source of device/room names. Without one, documents carry only the
        fields present in the event itself.
    """

    def __init__(self, registry: Optional[RegistryCache] = None) -> None:
        self._registry = registry

    @property
    def registry(self) -> Optional[RegistryCache]:
        return self._registry

    def transform(self, record: Mapping[str, Any]) -> TransformedEvent:
        """Transform one raw record. Never raises.

        Unknown event types are indexed with basic field extraction (time,
        type, id, deviceId, metric) and logged at warning level.
        """
        event = parse_event(record)
        if isinstance(event, UnknownEvent):
            return self._transform_unknown(event)

        result = TransformedEvent(
            timestamp=event.time,
            event_type=event.event_type,
            id=_string_or_none(event.id),
        )

        if isinstance(event, DeviceServiceDataEvent):
            result.device_id = event.device_id
            result.path = _string_or_none(event.path)
            if event.device_id:
                result.device, result.room = self._enrich_device(event.device_id)
        elif isinstance(event, RoomEvent):
            room_id = _string_or_none(event.id)
            if room_id:
                result.room = self._enrich_room(room_id)
        # device, message, client and light events carry no enrichable keys

        result.metric = extract_metric(record)
        return result

    def _transform_unknown(self, event: UnknownEvent) -> TransformedEvent:
        raw = event.raw
        if event.validation_errors and is_known_event_type(event.event_type):
            logger.warning(
                "Malformed %s event (%d invalid fields). Indexing with basic "
                "field extraction only.",
                event.event_type,
                event.validation_errors,
                extra={"event_type": event.event_type, "event_id": raw.get("id")},
            )
        else:
            logger.warning(
                "Unknown event type encountered: %s. Indexing with basic field "
                "extraction only.",
                event.event_type,
                extra={"event_type": event.event_type, "event_id": raw.get("id")},
            )
        return TransformedEvent(
            timestamp=raw.get("time"),
            event_type=event.event_type,
            id=_string_or_none(raw.get("id")),
            device_id=_string_or_none(raw.get("deviceId")),
            metric=extract_metric(raw),
        )

    def _enrich_device(
        self, device_id: str
    ) -> Tuple[Optional[DeviceField], Optional[RoomField]]:
        """Resolve device and room blocks independently of each other."""
        if self._registry is None:
            return None, None
        info = self._registry.lookup_device(device_id)
        if info is None:
            return None, None

        device = DeviceField(name=info.name, type=info.type)
        room = self._enrich_room(info.room_id) if info.room_id else None
        return device, room

    def _enrich_room(self, room_id: str) -> Optional[RoomField]:
        if self._registry is None:
            return None
        info = self._registry.lookup_room(room_id)
        if info is None:
            return None
        return RoomField(id=room_id, name=info.name)


def transform_event(
    record: Mapping[str, Any], registry: Optional[RegistryCache] = None
) -> TransformedEvent:
    """Functional shorthand for ``EventTransformer(registry).transform(record)``."""
    return EventTransformer(registry).transform(record)
