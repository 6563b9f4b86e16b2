"""Tests for the Elasticsearch HTTP client using httpx.MockTransport."""

import json
import logging
from urllib.parse import unquote

import httpx
import pytest

from shc2es.adapters import DocumentRejectedError, DocumentStoreConnectionError
from shc2es.adapters.elasticsearch import ElasticsearchClient

NODE = "https://es.local:9200"


def make_client(handler, **kwargs) -> ElasticsearchClient:
    client = ElasticsearchClient(NODE, "elastic", "changeme", backoff_initial_ms=0, **kwargs)
    client.inject_http_client_for_testing(
        httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=NODE)
    )
    return client


@pytest.mark.asyncio
async def test_ping_success(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/"
        return httpx.Response(200, json={"version": {"number": "8.15.0"}})

    client = make_client(handler)
    with caplog.at_level(logging.INFO):
        await client.ping()
    await client.aclose()
    assert f"Connected to Elasticsearch at {NODE}" in caplog.text


@pytest.mark.asyncio
async def test_ping_unauthorized_is_connection_error():
    client = make_client(lambda request: httpx.Response(401, text="unauthorized"))
    with pytest.raises(DocumentStoreConnectionError):
        await client.ping()


@pytest.mark.asyncio
async def test_connect_error_is_retried_then_raised(caplog):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler, max_retries=2)
    with caplog.at_level(logging.WARNING):
        with pytest.raises(DocumentStoreConnectionError) as exc_info:
            await client.ping()
    assert len(calls) == 3
    assert "es.local" in str(exc_info.value)
    assert sum("elasticsearch.http.retry" in r.getMessage() for r in caplog.records) == 2


@pytest.mark.asyncio
async def test_transient_failure_recovers():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={"result": "created"})

    client = make_client(handler, max_retries=1)
    await client.index("sh-2025-12-10", "abc", {"a": 1})
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_index_puts_document_by_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.raw_path.decode()
        seen["body"] = json.loads(request.content)
        seen["content_type"] = request.headers["content-type"]
        return httpx.Response(201, json={"result": "created"})

    client = make_client(handler)
    await client.index(
        "sh-2025-12-10", "2025-12-10T10:00:00Z-DeviceServiceData-x/y", {"@type": "room"}
    )
    assert seen["method"] == "PUT"
    assert "%2F" in seen["path"]
    assert unquote(seen["path"]) == (
        "/sh-2025-12-10/_doc/2025-12-10T10:00:00Z-DeviceServiceData-x/y"
    )
    assert seen["body"] == {"@type": "room"}
    assert seen["content_type"] == "application/json"


@pytest.mark.asyncio
async def test_index_rejection_carries_status_and_preview():
    client = make_client(
        lambda request: httpx.Response(400, text="x" * 2000)
    )
    with pytest.raises(DocumentRejectedError) as exc_info:
        await client.index("sh", "id", {})
    assert exc_info.value.status_code == 400
    assert exc_info.value.body_preview.endswith("...")
    assert len(exc_info.value.body_preview) == 503


@pytest.mark.asyncio
async def test_bulk_sends_ndjson_and_parses_items():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["content_type"] = request.headers["content-type"]
        seen["lines"] = request.content.decode().splitlines()
        return httpx.Response(
            200,
            json={
                "took": 5,
                "errors": True,
                "items": [
                    {"index": {"_id": "a", "status": 201}},
                    {
                        "index": {
                            "_id": "b",
                            "status": 400,
                            "error": {"type": "mapper_parsing_exception"},
                        }
                    },
                ],
            },
        )

    client = make_client(handler)
    response = await client.bulk(
        [
            {"index": {"_index": "sh", "_id": "a"}},
            {"v": 1},
            {"index": {"_index": "sh", "_id": "b"}},
            {"v": "bad"},
        ],
        refresh=True,
    )
    assert seen["path"] == "/_bulk"
    assert seen["params"] == {"refresh": "true"}
    assert seen["content_type"] == "application/x-ndjson"
    assert [json.loads(line) for line in seen["lines"]][1] == {"v": 1}
    assert len(seen["lines"]) == 4
    assert response.took == 5
    assert response.failed_count == 1
    assert response.succeeded_count == 1
    assert response.failed_items()[0]["_id"] == "b"


@pytest.mark.asyncio
async def test_bulk_with_no_operations_sends_nothing():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    response = await make_client(handler).bulk([])
    assert response.items == []
    assert response.failed_count == 0


@pytest.mark.asyncio
async def test_bulk_unparseable_response():
    client = make_client(lambda request: httpx.Response(200, text="<html>proxy</html>"))
    with pytest.raises(DocumentRejectedError):
        await client.bulk([{"index": {"_index": "sh", "_id": "a"}}, {}])


def test_from_settings(tmp_path):
    from shc2es.config.models import IngestSettings

    settings = IngestSettings(
        _env_file=None,
        es_node=NODE,
        es_password="secret",
        es_tls_verify=False,
        es_timeout_seconds=5,
        data_dir=tmp_path,
    )
    client = ElasticsearchClient.from_settings(settings)
    assert client.node == NODE
