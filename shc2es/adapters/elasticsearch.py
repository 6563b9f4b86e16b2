"""Elasticsearch document store client.

A thin async client over the Elasticsearch REST API covering exactly what the
ingest pipeline uses: ``GET /`` (ping), ``PUT /{index}/_doc/{id}`` (single
document upsert) and ``POST /_bulk``. It encapsulates transport concerns
(base URL, basic auth, TLS verification, timeouts and connect retries) and
maps failures onto :mod:`shc2es.adapters` error types.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence, Union
from urllib.parse import quote

import httpx
import orjson

from . import BulkResponse, DocumentRejectedError, DocumentStoreConnectionError

if TYPE_CHECKING:
    from ..config.models import IngestSettings

logger = logging.getLogger(__name__)

_JSON = "application/json"
_NDJSON = "application/x-ndjson"
_BODY_PREVIEW_CHARS = 500


def _body_preview(response: httpx.Response) -> str:
    try:
        text = response.text
    except Exception:  # pragma: no cover - undecodable body
        return "(unavailable)"
    if len(text) <= _BODY_PREVIEW_CHARS:
        return text
    return text[:_BODY_PREVIEW_CHARS] + "..."


class ElasticsearchClient:
    """Async Elasticsearch client used by batch and watch ingestion.

    Parameters
    ----------
    node: str
        Base URL of the cluster (e.g., "https://localhost:9200").
    username: str
        Basic auth user.
    password: Optional[str]
        Basic auth password; no auth header is sent when omitted.
    ca_cert: Optional[Path]
        CA bundle used to verify the server certificate.
    verify: bool
        Set False to skip certificate verification (development clusters).
    timeout: int
        Request timeout in seconds.
    max_retries: int
        Extra attempts after a connect error or timeout.

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client configured with base URL, auth and TLS settings.
    """

    def __init__(
        self,
        node: str,
        username: str = "elastic",
        password: Optional[str] = None,
        *,
        ca_cert: Optional[Path] = None,
        verify: bool = True,
        timeout: int = 30,
        max_retries: int = 1,
        backoff_initial_ms: int = 200,
        backoff_multiplier: float = 2.0,
    ) -> None:
        self._node = node
        tls: Union[bool, ssl.SSLContext] = verify
        if verify and ca_cert is not None:
            tls = ssl.create_default_context(cafile=str(ca_cert))
            logger.debug("elasticsearch.tls.custom_ca", extra={"ca_cert": str(ca_cert)})
        elif not verify:
            logger.debug("elasticsearch.tls.verify_disabled")
        self._client = httpx.AsyncClient(
            base_url=node,
            auth=(username, password) if password else None,
            verify=tls,
            timeout=timeout,
            headers={"Accept": _JSON},
        )
        self._max_retries = max(0, int(max_retries))
        self._backoff_initial_ms = max(0, int(backoff_initial_ms))
        self._backoff_multiplier = max(1.0, float(backoff_multiplier))
        logger.info(
            "elasticsearch.client.init",
            extra={"node": node, "timeout_seconds": timeout},
        )

    @classmethod
    def from_settings(cls, settings: "IngestSettings") -> "ElasticsearchClient":
        """Build a client from validated ingest settings."""
        return cls(
            settings.es_node,
            settings.es_user,
            settings.es_password,
            ca_cert=settings.es_ca_cert,
            verify=settings.es_tls_verify,
            timeout=settings.es_timeout_seconds,
            max_retries=settings.es_max_retries,
        )

    @property
    def node(self) -> str:
        return self._node

    def inject_http_client_for_testing(self, client: Any) -> None:
        """Replace underlying HTTP client (testing only).

        Typically an ``httpx.AsyncClient`` built on ``httpx.MockTransport``.
        """
        self._client = client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        content: Optional[bytes] = None,
        content_type: str = _JSON,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Send a request, retrying transport failures with backoff.

        Raises
        ------
        DocumentStoreConnectionError
            When the cluster stays unreachable after all retries.
        DocumentRejectedError
            On a non-2xx response.
        """
        headers = {"Content-Type": content_type} if content is not None else None
        attempt = 0
        while True:
            try:
                resp = await self._client.request(
                    method, path, content=content, headers=headers, params=params
                )
                break
            except httpx.TransportError as exc:
                if attempt >= self._max_retries:
                    raise DocumentStoreConnectionError(
                        f"Cannot reach Elasticsearch at {self._node}: "
                        f"{type(exc).__name__}: {exc}"
                    ) from exc
                delay = (self._backoff_initial_ms / 1000.0) * (
                    self._backoff_multiplier**attempt
                )
                logger.warning(
                    "elasticsearch.http.retry",
                    extra={
                        "method": method,
                        "path": path,
                        "attempt": attempt + 1,
                        "max_retries": self._max_retries,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                )
                await asyncio.sleep(delay)
                attempt += 1

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            preview = _body_preview(exc.response)
            raise DocumentRejectedError(
                f"{method} {path} failed with HTTP {exc.response.status_code}: "
                f"{preview}",
                status_code=exc.response.status_code,
                body_preview=preview,
            ) from exc
        return resp

    async def ping(self) -> None:
        """Check the cluster answers ``GET /`` with valid credentials.

        Raises
        ------
        DocumentStoreConnectionError
            If the cluster is unreachable or rejects the request.
        """
        try:
            resp = await self._request("GET", "/")
        except DocumentRejectedError as exc:
            raise DocumentStoreConnectionError(
                f"Failed to connect to Elasticsearch at {self._node}: {exc}"
            ) from exc
        try:
            version = resp.json().get("version", {}).get("number")
        except ValueError:
            version = None
        logger.info(
            "Connected to Elasticsearch at %s",
            self._node,
            extra={"node": self._node, "version": version},
        )

    async def index(self, index: str, doc_id: str, document: Dict[str, Any]) -> None:
        """Create or overwrite ``document`` under ``doc_id`` in ``index``."""
        path = f"/{quote(index, safe='')}/_doc/{quote(doc_id, safe='')}"
        await self._request("PUT", path, content=orjson.dumps(document))

    async def bulk(
        self, operations: Sequence[Dict[str, Any]], refresh: bool = False
    ) -> BulkResponse:
        """Submit ``operations`` (alternating action and source lines).

        Returns
        -------
        BulkResponse
            Per-item results; item failures do not raise.
        """
        if not operations:
            return BulkResponse()
        body = b"".join(orjson.dumps(op) + b"\n" for op in operations)
        params = {"refresh": "true"} if refresh else None
        resp = await self._request(
            "POST", "/_bulk", content=body, content_type=_NDJSON, params=params
        )
        try:
            return BulkResponse.model_validate(resp.json())
        except ValueError as exc:
            raise DocumentRejectedError(
                f"Unparseable bulk response: {exc}",
                status_code=resp.status_code,
                body_preview=_body_preview(resp),
            ) from exc

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
