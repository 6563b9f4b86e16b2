"""Device registry cache for event enrichment.

Loads the device/room snapshot written by the registry fetcher and serves
synchronous lookups. The cache object is created once by the entry point and
handed to the transformer, so tests can build isolated caches against
temporary files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import orjson
from pydantic import ValidationError

from ..domain.models import DeviceInfo, DeviceRegistry, RoomInfo

logger = logging.getLogger(__name__)


class RegistryCache:
    """Lazily loaded, process-lifetime view of the device registry file.

    Parameters
    ----------
    path: Union[str, Path]
        Location of ``device-registry.json``.

    Notes
    -----
    The file is read at most once per cache lifetime. A missing or malformed
    file is cached as "no registry" too, so enrichment silently degrades
    instead of re-reading the disk on every event. Call :meth:`invalidate` to
    force a reload.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._registry: Optional[DeviceRegistry] = None
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def loaded(self) -> bool:
        """True once a load attempt has been made since the last invalidation."""
        return self._loaded

    def load(self) -> Optional[DeviceRegistry]:
        """Read and cache the registry snapshot.

        Returns
        -------
        Optional[DeviceRegistry]
            The snapshot, or None when the file is absent or unreadable.
        """
        if self._loaded:
            return self._registry
        self._loaded = True
        self._registry = self._read()
        return self._registry

    def _read(self) -> Optional[DeviceRegistry]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            logger.warning(
                "Registry file not found at %s. Events will be indexed without "
                "device/room names.",
                self._path,
                extra={"file_path": str(self._path)},
            )
            return None
        except OSError as exc:
            logger.warning(
                "registry.read_failed",
                extra={"file_path": str(self._path), "error": str(exc)},
            )
            return None

        try:
            registry = DeviceRegistry.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as exc:
            logger.warning(
                "Failed to load device registry from %s: %s. Events will be "
                "indexed without device/room names.",
                self._path,
                exc,
            )
            return None

        logger.info(
            "Loaded device registry: %d devices, %d rooms (fetched at %s)",
            len(registry.devices),
            len(registry.rooms),
            registry.fetched_at,
        )
        return registry

    def lookup_device(self, device_id: str) -> Optional[DeviceInfo]:
        """Return device metadata or None if unknown (or no registry)."""
        registry = self.load()
        if registry is None:
            return None
        return registry.devices.get(device_id)

    def lookup_room(self, room_id: str) -> Optional[RoomInfo]:
        """Return room metadata or None if unknown (or no registry)."""
        registry = self.load()
        if registry is None:
            return None
        return registry.rooms.get(room_id)

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next lookup reads the file again."""
        self._registry = None
        self._loaded = False
