"""Pure helpers shared by the batch and watch ingestion paths.

Index naming lives here so that a daily file resolves to the same index no
matter which delivery mode reads it.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import orjson

logger = logging.getLogger(__name__)

EVENTS_FILE_GLOB = "events-*.ndjson"
_EVENTS_FILE = re.compile(r"events-(\d{4}-\d{2}-\d{2})\.ndjson")
_PREVIEW_CHARS = 100


def utc_today() -> date:
    """Current date in UTC, the calendar the collector names its files by."""
    return datetime.now(timezone.utc).date()


def index_name(prefix: str, date_iso: str) -> str:
    """Return the daily index name, e.g. ``smart-home-events-2025-12-10``."""
    return f"{prefix}-{date_iso}"


def daily_file(data_dir: Union[str, Path], day: date) -> Path:
    """Return the path of the events file for ``day``."""
    return Path(data_dir) / f"events-{day.isoformat()}.ndjson"


def date_from_filename(path: Union[str, Path]) -> str:
    """Extract ``YYYY-MM-DD`` from an ``events-YYYY-MM-DD.ndjson`` filename.

    Falls back to today's date (UTC) when the name does not follow the
    pattern; this is unexpected for collector output and logged as a warning.
    """
    name = Path(path).name
    match = _EVENTS_FILE.search(name)
    if match:
        return match.group(1)
    fallback = utc_today().isoformat()
    logger.warning(
        "File name %s does not embed a date; using %s",
        name,
        fallback,
        extra={"file_path": str(path)},
    )
    return fallback


def parse_line(line: str) -> Optional[Dict[str, Any]]:
    """Parse one NDJSON line into an event mapping.

    Returns None for blank lines, malformed JSON and JSON values that are not
    objects. Some log writers emit ``{,"key": ...}``; the stray comma is
    removed before parsing.
    """
    stripped = line.strip()
    if not stripped:
        return None
    if stripped.startswith("{,"):
        stripped = "{" + stripped[2:]
    try:
        parsed = orjson.loads(stripped)
    except orjson.JSONDecodeError as exc:
        logger.error(
            "Failed to parse NDJSON line: %s",
            exc,
            extra={"line_preview": line[:_PREVIEW_CHARS]},
        )
        return None
    if not isinstance(parsed, dict):
        logger.error(
            "Skipping NDJSON line that is not a JSON object",
            extra={"line_preview": line[:_PREVIEW_CHARS]},
        )
        return None
    return parsed
