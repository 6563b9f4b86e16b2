"""Real-time tailing of the daily events file.

Watch mode follows ``events-<today>.ndjson`` and indexes every appended line
as its own document. It is a small state machine driven by a polling loop::

    WAITING_FOR_FILE --(file appears)--> TAILING
    TAILING --(file removed, replaced or day rollover)--> WAITING_FOR_FILE
    any state --(stop requested)--> CANCELLED

Lines read by the poller go through a bounded queue to a single indexing
task. Indexing is therefore serialized: documents reach the store in file
order, and a slow store pauses the reader instead of piling up requests.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from ..adapters import DocumentRejectedError, DocumentStore, DocumentStoreError
from ..config.models import DEFAULT_DATA_DIR
from .identity import MissingTimestampError, generate_doc_id
from .transform import EventTransformer
from .utils import daily_file, date_from_filename, index_name, parse_line, utc_today

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_QUEUE_SIZE = 1000
_READ_CHUNK = 1024 * 1024


class WatchState(str, Enum):
    """Lifecycle states of :class:`WatchPipeline`."""

    WAITING_FOR_FILE = "waiting_for_file"
    TAILING = "tailing"
    CANCELLED = "cancelled"


class TailStatus(str, Enum):
    """Outcome of checking a tailed file against the path it came from."""

    ACTIVE = "active"
    REMOVED = "removed"
    REPLACED = "replaced"


class FileTail:
    """Follow one file, returning complete lines appended after an offset.

    Parameters
    ----------
    path: Union[str, Path]
        File to follow. It must exist when the tail is created.
    from_beginning: bool
        Start at offset 0 instead of the current end of file.
    """

    def __init__(self, path: Union[str, Path], *, from_beginning: bool = False) -> None:
        self._path = Path(path)
        st = os.stat(self._path)
        self._identity = (st.st_dev, st.st_ino)
        self._offset = 0 if from_beginning else st.st_size
        self._partial = b""

    @property
    def path(self) -> Path:
        return self._path

    @property
    def offset(self) -> int:
        return self._offset

    def check(self) -> TailStatus:
        """Detect removal, replacement (rotation) or truncation of the file."""
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            return TailStatus.REMOVED
        if (st.st_dev, st.st_ino) != self._identity:
            return TailStatus.REPLACED
        if st.st_size < self._offset:
            logger.info(
                "File %s was truncated; reading from the start",
                self._path,
                extra={"file_path": str(self._path)},
            )
            self._offset = 0
            self._partial = b""
        return TailStatus.ACTIVE

    def poll(self) -> Tuple[TailStatus, List[str]]:
        """Check the file, then read new lines if it is still the same file.

        Blocking; the pipeline runs it in a worker thread.
        """
        status = self.check()
        if status is not TailStatus.ACTIVE:
            return status, []
        return status, self.read_lines()

    def read_lines(self) -> List[str]:
        """Return complete lines appended since the last read.

        A trailing line without newline is buffered until it is completed.
        """
        with open(self._path, "rb") as handle:
            handle.seek(self._offset)
            chunk = handle.read(_READ_CHUNK)
        if not chunk:
            return []
        self._offset += len(chunk)
        data = self._partial + chunk
        *complete, self._partial = data.split(b"\n")
        return [
            raw.rstrip(b"\r").decode("utf-8", errors="replace")
            for raw in complete
            if raw.strip()
        ]


@dataclass
class WatchStats:
    """Counters for one watch-mode run."""

    indexed: int = 0
    failed: int = 0
    skipped: int = 0


class WatchPipeline:
    """Tail today's events file into daily indices until stopped.

    Parameters
    ----------
    client: DocumentStore
        Connected document store.
    index_prefix: str
        Daily index prefix; the date comes from the watched file name.
    data_dir: Union[str, Path]
        Directory the collector writes ``events-YYYY-MM-DD.ndjson`` into.
    transformer: Optional[EventTransformer]
        Enrichment to apply; defaults to one without a registry.
    poll_interval: float
        Seconds between file checks.
    queue_size: int
        Maximum lines buffered between the reader and the indexer.
    clock: Callable[[], date]
        Returns "today"; injectable for tests.
    follow_rollover: bool
        Switch to the next day's file when the date changes. When False the
        file and index chosen at start are kept for the whole run.
    """

    def __init__(
        self,
        client: DocumentStore,
        index_prefix: str,
        *,
        data_dir: Union[str, Path] = DEFAULT_DATA_DIR,
        transformer: Optional[EventTransformer] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        clock: Callable[[], date] = utc_today,
        follow_rollover: bool = True,
    ) -> None:
        self._client = client
        self._index_prefix = index_prefix
        self._data_dir = Path(data_dir)
        self._transformer = transformer or EventTransformer()
        self._poll_interval = poll_interval
        self._queue: "asyncio.Queue[Tuple[str, str]]" = asyncio.Queue(maxsize=queue_size)
        self._clock = clock
        self._follow_rollover = follow_rollover

        self._state = WatchState.WAITING_FOR_FILE
        self._tail: Optional[FileTail] = None
        self._in_flight: Optional["asyncio.Future[None]"] = None
        self.stats = WatchStats()

        self._day = clock()
        self._path = daily_file(self._data_dir, self._day)
        self._index = index_name(index_prefix, date_from_filename(self._path))

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def watched_path(self) -> Path:
        return self._path

    @property
    def index_name(self) -> str:
        """Index the current file's lines are written to."""
        return self._index

    # ---------------- lifecycle ----------------

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set or the store becomes unreachable.

        On return the poller is stopped, the tail is closed and any in-flight
        index call has completed. Lines still queued are dropped.

        Raises
        ------
        DocumentStoreConnectionError
            If the store cannot be reached while indexing.
        """
        if self._state is WatchState.CANCELLED:
            raise RuntimeError("watch pipeline already stopped; create a new one")

        logger.info(
            "Starting watch mode for %s -> %s",
            self._path,
            self._index,
            extra={"file_path": str(self._path), "index": self._index},
        )
        consumer = asyncio.create_task(self._consume(), name="watch-indexer")
        poller = asyncio.create_task(self._poll_loop(), name="watch-poller")
        stopper = asyncio.create_task(stop_event.wait(), name="watch-stop")
        logger.info("Watch mode active for real-time ingestion. Press Ctrl+C to stop.")
        try:
            done, _ = await asyncio.wait(
                {consumer, poller, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            await self._shutdown(consumer, poller, stopper)

        for task in (consumer, poller):
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

    async def _shutdown(self, *tasks: "asyncio.Task[object]") -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        in_flight = self._in_flight
        if in_flight is not None and not in_flight.done():
            try:
                await in_flight
            except DocumentStoreError as exc:
                logger.error("In-flight index call failed during shutdown: %s", exc)

        self._stop_tail("watch mode stopped")
        self._state = WatchState.CANCELLED
        logger.info(
            "Shutting down watch mode",
            extra={
                "indexed": self.stats.indexed,
                "failed": self.stats.failed,
                "skipped": self.stats.skipped,
            },
        )

    # ---------------- producer: file polling ----------------

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> None:
        """Advance the state machine by one file check."""
        if self._follow_rollover:
            today = self._clock()
            if today != self._day:
                await self._rollover(today)

        if self._tail is None:
            await self._start_tail()
            return

        try:
            status, lines = await asyncio.to_thread(self._tail.poll)
        except OSError as exc:
            logger.error(
                "Tail error for %s: %s",
                self._path,
                exc,
                extra={"file_path": str(self._path)},
            )
            self._stop_tail("read error")
            return
        if status is not TailStatus.ACTIVE:
            self._stop_tail(f"file {status.value}")
            return
        await self._enqueue(lines)

    async def _rollover(self, today: date) -> None:
        """Drain the previous day's file, then switch to ``today``'s."""
        if self._tail is not None:
            try:
                _, lines = await asyncio.to_thread(self._tail.poll)
                await self._enqueue(lines)
            except OSError as exc:
                logger.error("Failed to drain %s before rollover: %s", self._path, exc)
            self._stop_tail("day rollover")

        self._day = today
        self._path = daily_file(self._data_dir, today)
        self._index = index_name(self._index_prefix, date_from_filename(self._path))
        logger.info(
            "Day changed; now watching %s -> %s",
            self._path,
            self._index,
            extra={"file_path": str(self._path), "index": self._index},
        )

    async def _start_tail(self) -> None:
        if not await asyncio.to_thread(self._path.is_file):
            return
        try:
            self._tail = await asyncio.to_thread(FileTail, self._path)
        except FileNotFoundError:
            return
        self._state = WatchState.TAILING
        logger.info(
            "Tailing %s to index %s",
            self._path,
            self._index,
            extra={"file_path": str(self._path), "index": self._index},
        )

    def _stop_tail(self, reason: str) -> None:
        if self._tail is None:
            return
        logger.info(
            "Stopped tailing %s (%s)",
            self._tail.path,
            reason,
            extra={"file_path": str(self._tail.path)},
        )
        self._tail = None
        self._state = WatchState.WAITING_FOR_FILE

    async def _enqueue(self, lines: List[str]) -> None:
        for line in lines:
            await self._queue.put((line, self._index))

    # ---------------- consumer: indexing ----------------

    async def _consume(self) -> None:
        while True:
            line, target = await self._queue.get()
            try:
                self._in_flight = asyncio.ensure_future(self._index_line(line, target))
                # A stop request must not abort the request already sent.
                await asyncio.shield(self._in_flight)
            finally:
                self._queue.task_done()

    async def _index_line(self, line: str, target: str) -> None:
        record = parse_line(line)
        if record is None:
            self.stats.skipped += 1
            return
        try:
            doc_id = generate_doc_id(record)
        except MissingTimestampError as exc:
            logger.error("Skipping event without timestamp: %s", exc)
            self.stats.skipped += 1
            return

        document = self._transformer.transform(record).to_document()
        try:
            await self._client.index(target, doc_id, document)
        except DocumentRejectedError as exc:
            self.stats.failed += 1
            logger.error(
                "Failed to index event: %s",
                exc,
                extra={"index": target, "doc_id": doc_id, "status_code": exc.status_code},
            )
            return

        self.stats.indexed += 1
        device_id = document.get("deviceId")
        logger.debug(
            "Indexed %s event%s to %s",
            document.get("@type"),
            f" from device {device_id}" if device_id else "",
            target,
            extra={"index": target, "doc_id": doc_id},
        )


async def start_watch_mode(
    client: DocumentStore,
    index_prefix: str,
    stop_event: Optional[asyncio.Event] = None,
    *,
    data_dir: Union[str, Path] = DEFAULT_DATA_DIR,
    transformer: Optional[EventTransformer] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    queue_size: int = DEFAULT_QUEUE_SIZE,
    clock: Callable[[], date] = utc_today,
    follow_rollover: bool = True,
) -> None:
    """Run watch mode until cancelled.

    Parameters
    ----------
    stop_event: Optional[asyncio.Event]
        Set it to stop the pipeline. Without one, SIGINT and SIGTERM stop it
        (where the event loop supports signal handlers; elsewhere Ctrl+C
        cancels the surrounding ``asyncio.run``).

    Returns once the watcher and tail are closed.
    """
    pipeline = WatchPipeline(
        client,
        index_prefix,
        data_dir=data_dir,
        transformer=transformer,
        poll_interval=poll_interval,
        queue_size=queue_size,
        clock=clock,
        follow_rollover=follow_rollover,
    )
    if stop_event is not None:
        await pipeline.run(stop_event)
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(sig)
    try:
        await pipeline.run(stop_event)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
