"""Tests for the device registry cache."""

import json
import logging

from shc2es.ingest.registry import RegistryCache


def test_load_and_lookup(registry_file, caplog):
    cache = RegistryCache(registry_file)
    with caplog.at_level(logging.INFO):
        registry = cache.load()
    assert registry is not None
    assert registry.fetched_at == "2025-12-10T08:00:00Z"
    assert "3 devices, 2 rooms" in caplog.text

    device = cache.lookup_device("hdm:ZigBee:001")
    assert device is not None
    assert device.name == "WZ Thermostat"
    assert device.type == "TRV_GEN2"
    assert device.room_id == "hz_1"

    room = cache.lookup_room("hz_1")
    assert room is not None
    assert room.name == "Living Room"
    assert room.icon_id == "icon_room_living_room"

    assert cache.lookup_device("nope") is None
    assert cache.lookup_room("nope") is None


def test_lookup_triggers_lazy_load(registry_file):
    cache = RegistryCache(registry_file)
    assert not cache.loaded
    assert cache.lookup_room("hz_2").name == "Kitchen"
    assert cache.loaded


def test_missing_file_is_not_an_error(tmp_path, caplog):
    cache = RegistryCache(tmp_path / "device-registry.json")
    with caplog.at_level(logging.WARNING):
        assert cache.load() is None
    assert "Registry file not found" in caplog.text
    assert cache.lookup_device("hdm:ZigBee:001") is None


def test_malformed_file_degrades_to_no_registry(tmp_path, caplog):
    path = tmp_path / "device-registry.json"
    path.write_text("{not json", encoding="utf-8")
    cache = RegistryCache(path)
    with caplog.at_level(logging.WARNING):
        assert cache.load() is None
    assert "Failed to load device registry" in caplog.text


def test_wrong_shape_degrades_to_no_registry(tmp_path):
    path = tmp_path / "device-registry.json"
    path.write_text(json.dumps({"devices": []}), encoding="utf-8")
    assert RegistryCache(path).load() is None


def test_file_is_read_once_until_invalidated(registry_file):
    cache = RegistryCache(registry_file)
    assert cache.lookup_room("hz_2").name == "Kitchen"

    data = json.loads(registry_file.read_text(encoding="utf-8"))
    data["rooms"]["hz_2"]["name"] = "Kueche"
    registry_file.write_text(json.dumps(data), encoding="utf-8")

    assert cache.lookup_room("hz_2").name == "Kitchen"
    cache.invalidate()
    assert cache.lookup_room("hz_2").name == "Kueche"


def test_absence_is_cached_until_invalidated(tmp_path, registry_file):
    missing = tmp_path / "later.json"
    cache = RegistryCache(missing)
    assert cache.load() is None

    missing.write_text(registry_file.read_text(encoding="utf-8"), encoding="utf-8")
    assert cache.lookup_room("hz_1") is None

    cache.invalidate()
    assert cache.lookup_room("hz_1").name == "Living Room"
