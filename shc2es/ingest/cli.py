"""Command-line interface for Elasticsearch ingestion.

Loads configuration, connects to Elasticsearch, loads the device registry and
then either imports existing event files (default) or tails today's file.

Usage
-----
    shc2es-ingest                         # import all events-*.ndjson files
    shc2es-ingest --pattern "events-2025-12-*.ndjson"
    shc2es-ingest --watch                 # real-time ingestion, Ctrl+C to stop
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import Callable, Optional, Sequence

from ..adapters import DocumentStore, DocumentStoreError
from ..adapters.elasticsearch import ElasticsearchClient
from ..config.models import ConfigError, IngestSettings, load_settings
from ..observability import setup_logging
from .bulk_import import import_files
from .registry import RegistryCache
from .transform import EventTransformer
from .watch import start_watch_mode

logger = logging.getLogger(__name__)

ClientFactory = Callable[[IngestSettings], DocumentStore]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shc2es-ingest",
        description="Ingest smart home event logs into Elasticsearch",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--watch",
        action="store_true",
        help="Tail today's events file and index new events as they arrive",
    )
    mode.add_argument(
        "--pattern",
        help="Glob of files to import (default: events-*.ndjson in the data dir)",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=[
            "CRITICAL",
            "ERROR",
            "WARNING",
            "INFO",
            "DEBUG",
        ],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    return parser


async def run_ingest(
    args: argparse.Namespace,
    settings: IngestSettings,
    client_factory: Optional[ClientFactory] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """Connect, then dispatch to batch import or watch mode.

    Raises
    ------
    DocumentStoreConnectionError
        If Elasticsearch cannot be reached.
    """
    client_factory = client_factory or ElasticsearchClient.from_settings
    registry = RegistryCache(settings.registry_file)
    transformer = EventTransformer(registry)
    client = client_factory(settings)
    try:
        await client.ping()
        registry.load()
        if args.watch:
            await start_watch_mode(
                client,
                settings.es_index_prefix,
                stop_event,
                data_dir=settings.data_dir,
                transformer=transformer,
                poll_interval=settings.watch_poll_interval,
                queue_size=settings.watch_queue_size,
            )
        else:
            await import_files(
                client,
                settings.es_index_prefix,
                args.pattern,
                data_dir=settings.data_dir,
                transformer=transformer,
            )
    finally:
        await client.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entrypoint; returns the process exit status."""
    args = build_parser().parse_args(argv)

    # Apply early so configuration errors are reported with the requested level
    env_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    setup_logging(args.log_level or ("DEBUG" if args.verbose > 0 else env_level))

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.critical("%s", exc)
        return 1

    if not args.log_level and not args.verbose:
        setup_logging(settings.log_level)

    try:
        asyncio.run(run_ingest(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except (DocumentStoreError, OSError) as exc:
        logger.critical("Ingestion failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
