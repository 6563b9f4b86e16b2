"""Document store interfaces and shared error types.

The ingest pipeline talks to its document store through the small
:class:`DocumentStore` protocol so tests can substitute an in-memory fake and
the Elasticsearch transport stays isolated in :mod:`.elasticsearch`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field


class DocumentStoreError(RuntimeError):
    """Base class for document store failures."""


class DocumentStoreConnectionError(DocumentStoreError):
    """The store cannot be reached at all (DNS, refused, TLS, timeout).

    No per-document recovery is meaningful while the transport is down, so
    this error propagates out of batch imports and stops watch mode.
    """


class DocumentRejectedError(DocumentStoreError):
    """The store answered but refused a request (non-2xx status).

    Attributes
    ----------
    status_code: int
        HTTP status returned by the store.
    body_preview: str
        Truncated response body for diagnostics.
    """

    def __init__(self, message: str, status_code: int, body_preview: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body_preview = body_preview


class BulkResponse(BaseModel):
    """Parsed ``_bulk`` response.

    Attributes
    ----------
    errors: bool
        True if at least one item failed.
    took: Optional[int]
        Server-side processing time in milliseconds.
    items: List[Dict[str, Any]]
        One entry per operation, keyed by action (``{"index": {...}}``).
    """

    errors: bool = False
    took: Optional[int] = None
    items: List[Dict[str, Any]] = Field(default_factory=list)

    @staticmethod
    def _result(item: Dict[str, Any]) -> Dict[str, Any]:
        # Each item has exactly one action key (index/create/update/delete).
        for value in item.values():
            if isinstance(value, dict):
                return value
        return {}

    def failed_items(self) -> List[Dict[str, Any]]:
        """Return item results that carry an ``error`` payload."""
        results = (self._result(item) for item in self.items)
        return [result for result in results if result.get("error")]

    @property
    def failed_count(self) -> int:
        return len(self.failed_items())

    @property
    def succeeded_count(self) -> int:
        return len(self.items) - self.failed_count


class DocumentStore(Protocol):
    """Operations the ingest pipeline needs from a document store."""

    async def ping(self) -> None:
        """Raise :class:`DocumentStoreConnectionError` if unreachable."""
        raise NotImplementedError

    async def index(self, index: str, doc_id: str, document: Dict[str, Any]) -> None:
        """Create or overwrite one document under ``doc_id``."""
        raise NotImplementedError

    async def bulk(
        self, operations: Sequence[Dict[str, Any]], refresh: bool = False
    ) -> BulkResponse:
        """Submit action/document pairs in one request."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources."""
        raise NotImplementedError


__all__ = [
    "BulkResponse",
    "DocumentRejectedError",
    "DocumentStore",
    "DocumentStoreConnectionError",
    "DocumentStoreError",
]
