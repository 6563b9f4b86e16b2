"""Event ingestion: enrichment, batch import and watch mode.

The three entry points a CLI or scheduler invokes are :func:`import_file`,
:func:`import_files` and :func:`start_watch_mode`.
"""

from .bulk_import import import_file, import_files
from .identity import MissingTimestampError, generate_doc_id
from .registry import RegistryCache
from .transform import EventTransformer, transform_event
from .utils import date_from_filename, index_name, parse_line
from .watch import WatchPipeline, WatchState, start_watch_mode

__all__ = [
    "EventTransformer",
    "MissingTimestampError",
    "RegistryCache",
    "WatchPipeline",
    "WatchState",
    "date_from_filename",
    "generate_doc_id",
    "import_file",
    "import_files",
    "index_name",
    "parse_line",
    "start_watch_mode",
    "transform_event",
]
