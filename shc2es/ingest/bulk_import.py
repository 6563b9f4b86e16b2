"""Bulk import of NDJSON event files to Elasticsearch.

Each file becomes one ``_bulk`` request against its daily index. Files are
processed one after another in chronological (sorted filename) order.
"""

from __future__ import annotations

import asyncio
import glob
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..adapters import DocumentStore
from ..config.models import DEFAULT_DATA_DIR
from .identity import MissingTimestampError, generate_doc_id
from .transform import EventTransformer
from .utils import EVENTS_FILE_GLOB, date_from_filename, index_name, parse_line

logger = logging.getLogger(__name__)

# Number of failed bulk items whose error payloads are logged per file.
MAX_LOGGED_ERRORS = 3


@dataclass
class PreparedDocument:
    """Transformed document paired with its deterministic id."""

    doc_id: str
    document: Dict[str, Any]


def read_documents(
    path: Union[str, Path], transformer: EventTransformer
) -> List[PreparedDocument]:
    """Stream ``path`` line by line and prepare indexable documents.

    Malformed lines and records without a timestamp are logged and skipped;
    they never abort the file.
    """
    documents: List[PreparedDocument] = []
    skipped = 0
    with open(path, encoding="utf-8", errors="replace") as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            record = parse_line(line)
            if record is None:
                skipped += 1
                continue
            try:
                doc_id = generate_doc_id(record)
            except MissingTimestampError as exc:
                logger.error(
                    "Skipping event without timestamp: %s",
                    exc,
                    extra={"file_path": str(path), "line": line_no},
                )
                skipped += 1
                continue
            documents.append(
                PreparedDocument(
                    doc_id=doc_id,
                    document=transformer.transform(record).to_document(),
                )
            )
    if skipped:
        logger.warning(
            "ingest.bulk.lines_skipped",
            extra={"file_path": str(path), "skipped": skipped},
        )
    return documents


async def import_file(
    client: DocumentStore,
    path: Union[str, Path],
    index_prefix: str,
    *,
    transformer: Optional[EventTransformer] = None,
) -> int:
    """Import one NDJSON file with a single bulk request.

    Parameters
    ----------
    client: DocumentStore
        Connected document store.
    path: Union[str, Path]
        NDJSON file, normally named ``events-YYYY-MM-DD.ndjson``.
    index_prefix: str
        Prefix of the daily index; the date comes from the filename.
    transformer: Optional[EventTransformer]
        Enrichment to apply; defaults to one without a registry.

    Returns
    -------
    int
        Number of documents the store accepted. Partial bulk failures are
        logged and reduce the count rather than raising.

    Raises
    ------
    DocumentStoreConnectionError
        If the store is unreachable.
    """
    transformer = transformer or EventTransformer()
    target = index_name(index_prefix, date_from_filename(path))
    logger.info(
        "Importing %s to index %s",
        path,
        target,
        extra={"file_path": str(path), "index": target},
    )

    documents = await asyncio.to_thread(read_documents, path, transformer)
    if not documents:
        logger.info(
            "ingest.bulk.empty_file", extra={"file_path": str(path), "index": target}
        )
        return 0

    operations: List[Dict[str, Any]] = []
    for prepared in documents:
        operations.append({"index": {"_index": target, "_id": prepared.doc_id}})
        operations.append(prepared.document)

    response = await client.bulk(operations, refresh=True)

    failures = response.failed_items()
    if failures:
        logger.error(
            "Failed to index %d documents to %s",
            len(failures),
            target,
            extra={
                "index": target,
                "error_count": len(failures),
                "errors": [item.get("error") for item in failures[:MAX_LOGGED_ERRORS]],
            },
        )

    indexed = len(response.items) - len(failures)
    logger.info(
        "Indexed %d documents to %s",
        indexed,
        target,
        extra={"index": target, "document_count": len(documents), "indexed": indexed},
    )
    return indexed


def resolve_pattern(pattern: Optional[str], data_dir: Union[str, Path]) -> str:
    """Turn a user pattern into an absolute-or-relative glob.

    A bare pattern (no path separator) is looked up in ``data_dir``.
    """
    if not pattern:
        return str(Path(data_dir) / EVENTS_FILE_GLOB)
    if os.sep in pattern or "/" in pattern:
        return pattern
    return str(Path(data_dir) / pattern)


async def import_files(
    client: DocumentStore,
    index_prefix: str,
    pattern: Optional[str] = None,
    *,
    data_dir: Optional[Union[str, Path]] = None,
    transformer: Optional[EventTransformer] = None,
) -> int:
    """Import every file matching ``pattern`` in sorted order.

    Files are processed sequentially: file N+1 is read only after file N's
    bulk request returned. An empty match set is not an error.

    Returns
    -------
    int
        Total number of documents indexed across all files.
    """
    data_dir = data_dir if data_dir is not None else DEFAULT_DATA_DIR
    glob_pattern = resolve_pattern(pattern, data_dir)
    logger.info(
        "Starting batch import with pattern: %s",
        glob_pattern,
        extra={"pattern": glob_pattern},
    )

    files = sorted(glob.glob(glob_pattern))
    if not files:
        logger.info(
            "No NDJSON files found matching %s",
            glob_pattern,
            extra={"data_dir": str(data_dir)},
        )
        return 0

    logger.info("Found %d files to import", len(files), extra={"file_count": len(files)})

    transformer = transformer or EventTransformer()
    total = 0
    for file_path in files:
        total += await import_file(
            client, file_path, index_prefix, transformer=transformer
        )

    logger.info(
        "Batch import complete: indexed %d documents from %d files",
        total,
        len(files),
        extra={"document_count": total, "file_count": len(files)},
    )
    return total
