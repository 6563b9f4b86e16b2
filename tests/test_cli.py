"""Tests for the ingest command-line entry point."""

import argparse
import asyncio
import logging

import pytest

from shc2es.adapters import DocumentStoreConnectionError
from shc2es.config.models import ConfigError, IngestSettings
from shc2es.ingest import cli

from conftest import FakeDocumentStore, humidity_event, write_events


@pytest.fixture
def settings(tmp_path, registry_file):
    return IngestSettings(
        _env_file=None,
        es_node="https://es:9200",
        es_password="pw",
        es_index_prefix="sh",
        data_dir=tmp_path,
        watch_poll_interval=0.01,
    )


def test_parser_modes_are_exclusive():
    parser = cli.build_parser()
    assert parser.parse_args([]).watch is False
    assert parser.parse_args(["--pattern", "events-*.ndjson"]).pattern == "events-*.ndjson"
    with pytest.raises(SystemExit):
        parser.parse_args(["--watch", "--pattern", "x"])


@pytest.mark.asyncio
async def test_run_ingest_batch(settings, tmp_path):
    write_events(tmp_path / "events-2025-12-10.ndjson", [humidity_event()])
    store = FakeDocumentStore()
    args = argparse.Namespace(watch=False, pattern=None)

    await cli.run_ingest(args, settings, client_factory=lambda s: store)

    assert store.pinged
    assert store.closed
    (doc,) = store.documents.values()
    assert doc["device"]["name"] == "WZ Thermostat"


@pytest.mark.asyncio
async def test_run_ingest_watch_stops_on_event(settings):
    store = FakeDocumentStore()
    stop = asyncio.Event()
    args = argparse.Namespace(watch=True, pattern=None)
    task = asyncio.create_task(
        cli.run_ingest(args, settings, client_factory=lambda s: store, stop_event=stop)
    )
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, 2.0)
    assert store.closed


@pytest.mark.asyncio
async def test_run_ingest_closes_client_on_connection_error(settings):
    store = FakeDocumentStore()
    store.connection_down = True
    args = argparse.Namespace(watch=False, pattern=None)
    with pytest.raises(DocumentStoreConnectionError):
        await cli.run_ingest(args, settings, client_factory=lambda s: store)
    assert store.closed


def test_main_returns_1_on_config_error(monkeypatch, caplog):
    def broken(**overrides):
        raise ConfigError("Invalid ingest configuration:\n  ES_NODE: Field required")

    monkeypatch.setattr(cli, "load_settings", broken)
    with caplog.at_level(logging.CRITICAL):
        assert cli.main([]) == 1
    assert "ES_NODE" in caplog.text


def test_main_returns_1_when_store_unreachable(monkeypatch, settings):
    store = FakeDocumentStore()
    store.connection_down = True
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(
        cli.ElasticsearchClient, "from_settings", classmethod(lambda cls, s: store)
    )
    assert cli.main(["--log-level", "DEBUG"]) == 1
    assert store.closed


def test_main_batch_success(monkeypatch, settings, tmp_path):
    write_events(tmp_path / "events-2025-12-10.ndjson", [humidity_event()])
    store = FakeDocumentStore()
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(
        cli.ElasticsearchClient, "from_settings", classmethod(lambda cls, s: store)
    )
    assert cli.main([]) == 0
    assert len(store.documents) == 1
