"""Metric extraction from smart home event payloads.

A record carries at most one metric: the sensor reading worth charting in
Kibana. Device service events keep it in the nested ``state`` object (numbers),
room events in ``extProperties`` (numbers serialized as strings).
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, Mapping, Optional, Tuple

from ..domain.models import Metric

# Preferred readings, in priority order. A payload containing several numeric
# fields reports the first one listed here.
METRIC_FIELDS: Tuple[str, ...] = (
    "humidity",
    "temperature",
    "setpointTemperature",
    "position",
    "valvePosition",
    "level",
    "batteryLevel",
    "illuminance",
    "powerConsumption",
    "energyConsumption",
    "brightness",
    "co2",
)

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(value: Any) -> Optional[float]:
    """Interpret a payload value as a finite number.

    Numbers are taken as-is (booleans excluded). Strings are read like
    JavaScript's ``parseFloat``: the leading numeric prefix is used and
    trailing units are ignored, so ``"42.71 %"`` yields ``42.71``.

    Examples
    --------
    >>> parse_number("21.5")
    21.5
    >>> parse_number(True) is None
    True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    return number if math.isfinite(number) else None


def _numeric_fields(
    payload: Mapping[str, Any], *, allow_strings: bool
) -> Iterable[Tuple[str, float]]:
    for key, raw in payload.items():
        if not isinstance(key, str) or key.startswith("@"):
            continue
        if isinstance(raw, str) and not allow_strings:
            continue
        number = parse_number(raw)
        if number is not None:
            yield key.strip(), number


def _pick(fields: Iterable[Tuple[str, float]]) -> Optional[Metric]:
    candidates = list(fields)
    if not candidates:
        return None
    by_name = dict(candidates)
    for name in METRIC_FIELDS:
        if name in by_name:
            return Metric(name=name, value=by_name[name])
    name, value = candidates[0]
    return Metric(name=name, value=value)


def extract_metric(record: Mapping[str, Any]) -> Optional[Metric]:
    """Extract the record's metric from ``state`` or ``extProperties``.

    Extraction is shape-based rather than type-based so unrecognized event
    types still contribute readings. Returns None when neither block holds a
    numeric field.
    """
    state = record.get("state")
    if isinstance(state, Mapping):
        metric = _pick(_numeric_fields(state, allow_strings=False))
        if metric is not None:
            return metric

    ext_properties = record.get("extProperties")
    if isinstance(ext_properties, Mapping):
        return _pick(_numeric_fields(ext_properties, allow_strings=True))

    return None
