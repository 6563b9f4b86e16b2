"""Pytest configuration and shared fixtures.

Ensures the project root is on ``sys.path`` so ``import shc2es`` resolves to
the local sources regardless of the working directory pytest chooses, and
provides an in-memory document store plus registry/event file helpers.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pytest


def _ensure_project_root_on_syspath() -> None:
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        # Prepend to prefer local sources over site-packages
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_syspath()

from shc2es.adapters import (  # noqa: E402
    BulkResponse,
    DocumentRejectedError,
    DocumentStoreConnectionError,
)

REGISTRY = {
    "fetchedAt": "2025-12-10T08:00:00Z",
    "devices": {
        "hdm:ZigBee:001": {
            "name": "WZ Thermostat",
            "type": "TRV_GEN2",
            "roomId": "hz_1",
        },
        "hdm:ZigBee:002": {"name": "Orphan Sensor", "roomId": "hz_gone"},
        "hdm:ZigBee:003": {"name": "Hallway Motion"},
    },
    "rooms": {
        "hz_1": {"name": "Living Room", "iconId": "icon_room_living_room"},
        "hz_2": {"name": "Kitchen"},
    },
}


class FakeDocumentStore:
    """In-memory stand-in for :class:`ElasticsearchClient`.

    Documents whose id is in ``reject_ids`` fail (per item in bulk requests,
    with :class:`DocumentRejectedError` for single index calls). Setting
    ``connection_down`` makes every call raise a connection error.
    """

    def __init__(self, reject_ids: Optional[Set[str]] = None) -> None:
        self.reject_ids: Set[str] = set(reject_ids or ())
        self.connection_down = False
        self.documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.bulk_calls: List[Dict[str, Any]] = []
        self.index_calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.pinged = False
        self.closed = False

    def _check_connection(self) -> None:
        if self.connection_down:
            raise DocumentStoreConnectionError("connection refused")

    async def ping(self) -> None:
        self._check_connection()
        self.pinged = True

    async def index(self, index: str, doc_id: str, document: Dict[str, Any]) -> None:
        self._check_connection()
        self.index_calls.append((index, doc_id, document))
        if doc_id in self.reject_ids:
            raise DocumentRejectedError("mapper_parsing_exception", status_code=400)
        self.documents[(index, doc_id)] = document

    async def bulk(
        self, operations: Sequence[Dict[str, Any]], refresh: bool = False
    ) -> BulkResponse:
        self._check_connection()
        self.bulk_calls.append({"operations": list(operations), "refresh": refresh})
        items = []
        for action, source in zip(operations[0::2], operations[1::2]):
            meta = action["index"]
            if meta["_id"] in self.reject_ids:
                items.append(
                    {
                        "index": {
                            "_index": meta["_index"],
                            "_id": meta["_id"],
                            "status": 400,
                            "error": {
                                "type": "mapper_parsing_exception",
                                "reason": "failed to parse field [metric.value]",
                            },
                        }
                    }
                )
                continue
            self.documents[(meta["_index"], meta["_id"])] = source
            items.append(
                {
                    "index": {
                        "_index": meta["_index"],
                        "_id": meta["_id"],
                        "status": 201,
                        "result": "created",
                    }
                }
            )
        return BulkResponse(
            errors=any("error" in item["index"] for item in items), items=items
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def registry_file(tmp_path: Path) -> Path:
    """Write the sample registry snapshot and return its path."""
    path = tmp_path / "device-registry.json"
    path.write_text(json.dumps(REGISTRY), encoding="utf-8")
    return path


def write_events(path: Path, records: Iterable[Any]) -> Path:
    """Write records (dicts are JSON-encoded, strings written verbatim)."""
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path


def humidity_event(
    time: str = "2025-12-10T10:00:00Z", device_id: str = "hdm:ZigBee:001"
) -> Dict[str, Any]:
    return {
        "@type": "DeviceServiceData",
        "id": "HumidityLevel",
        "deviceId": device_id,
        "path": f"/devices/{device_id}/services/HumidityLevel",
        "state": {"@type": "humidityLevelState", "humidity": 42.71},
        "time": time,
    }
