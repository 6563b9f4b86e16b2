"""Deterministic document identifiers.

Documents are indexed under an id derived purely from event content, so
importing the same file twice (or tailing a line that a batch import already
covered) overwrites the existing document instead of creating a duplicate.
"""

from __future__ import annotations

from typing import Any, Mapping

import orjson

from ..domain.models import is_known_event_type

SEPARATOR = "-"
_MISSING = "unknown"


class MissingTimestampError(ValueError):
    """Raised when a record has no ``time``; such records cannot be ingested."""


def _as_text(value: Any) -> str:
    """Render an id component; non-strings become compact JSON."""
    if value is None or value == "":
        return _MISSING
    if isinstance(value, str):
        return value
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS).decode()


def generate_doc_id(record: Mapping[str, Any]) -> str:
    """Build ``{@type}-{primary key}-{time}`` for a raw event record.

    The primary key is ``deviceId`` plus the service ``id`` for device service
    data, the record ``id`` for the other known types, and ``id`` (then
    ``deviceId``) for unknown types.

    Raises
    ------
    MissingTimestampError
        If the record has no ``time`` value.

    Examples
    --------
    >>> generate_doc_id({
    ...     "@type": "DeviceServiceData",
    ...     "deviceId": "hdm:ZigBee:001",
    ...     "id": "HumidityLevel",
    ...     "time": "2025-12-15T10:00:00Z",
    ... })
    'DeviceServiceData-hdm:ZigBee:001-HumidityLevel-2025-12-15T10:00:00Z'
    """
    timestamp = record.get("time")
    if timestamp is None or timestamp == "":
        raise MissingTimestampError(
            f"event of type {record.get('@type')!r} has no 'time' field"
        )

    event_type = record.get("@type")
    if event_type == "DeviceServiceData":
        key_parts = [record.get("deviceId"), record.get("id")]
    elif is_known_event_type(event_type):
        key_parts = [record.get("id")]
    else:
        entity_id = record.get("id") or record.get("deviceId")
        key_parts = [entity_id]

    parts = [_as_text(event_type), *(_as_text(p) for p in key_parts), _as_text(timestamp)]
    return SEPARATOR.join(parts)
