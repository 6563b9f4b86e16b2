"""Config models and loader.

This module defines the Pydantic settings model for the ingest commands.
Values come from the process environment and from `.env` files: the per-user
file in ``~/.shc2es/.env`` is read first and a local ``.env`` in the working
directory overrides it, which keeps development checkouts independent from an
installed setup.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_DIR = Path.home() / ".shc2es"
USER_ENV_FILE = CONFIG_DIR / ".env"
DEFAULT_DATA_DIR = CONFIG_DIR / "data"
REGISTRY_FILENAME = "device-registry.json"

_URL_SCHEME = re.compile(r"^https?://")


class ConfigError(ValueError):
    """Raised when the ingest configuration is missing or invalid."""


def _validate_url(name: str, value: str) -> str:
    """Check URL shape and reject trailing slashes on a path component."""
    trimmed = value.strip()
    if not _URL_SCHEME.match(trimmed):
        raise ValueError(
            f"{name} must start with http:// or https:// (got: {trimmed})"
        )
    parsed = urlparse(trimmed)
    if not parsed.netloc:
        raise ValueError(f"{name} is not a valid URL (got: {trimmed})")
    if trimmed.endswith("/") and parsed.path not in ("", "/"):
        raise ValueError(f"{name} should not have a trailing slash (got: {trimmed})")
    return trimmed


class IngestSettings(BaseSettings):
    """Environment-driven settings for batch and watch ingestion.

    Attributes
    ----------
    es_node: str
        Elasticsearch base URL (``ES_NODE``), e.g. "https://localhost:9200".
    es_password: str
        Password for basic auth (``ES_PASSWORD``).
    es_user: str
        Username for basic auth (``ES_USER``). Defaults to "elastic".
    es_ca_cert: Optional[Path]
        Custom CA bundle used to verify the cluster certificate.
    es_tls_verify: bool
        Disable to skip certificate verification (development clusters).
    es_index_prefix: str
        Prefix for the daily indices, e.g. "smart-home-events".
    kibana_node: Optional[str]
        Kibana base URL. Not used by ingestion itself; validated when present.
    log_level: str
        Logging level name. Defaults to "INFO".
    data_dir: Path
        Directory holding ``events-YYYY-MM-DD.ndjson`` files and the registry.
    """

    model_config = SettingsConfigDict(
        env_file=(USER_ENV_FILE, ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    es_node: str = Field(..., description="Elasticsearch URL")
    es_password: str = Field(..., min_length=1, description="Elasticsearch password")
    es_user: str = Field("elastic", description="Elasticsearch user")
    es_ca_cert: Optional[Path] = Field(None, description="Custom CA certificate")
    es_tls_verify: bool = Field(True, description="Verify TLS certificates")
    es_index_prefix: str = Field("smart-home-events", min_length=1)
    es_timeout_seconds: int = Field(30, ge=1)
    es_max_retries: int = Field(1, ge=0, description="Retries on connect errors")
    kibana_node: Optional[str] = None
    log_level: str = Field("INFO")
    data_dir: Path = Field(
        default=DEFAULT_DATA_DIR,
        validation_alias=AliasChoices("SHC2ES_DATA_DIR", "data_dir"),
    )
    watch_poll_interval: float = Field(
        0.5, gt=0.0, description="Seconds between file checks in watch mode"
    )
    watch_queue_size: int = Field(
        1000, ge=1, description="Lines buffered between tail and indexer"
    )

    @field_validator("es_node")
    @classmethod
    def _check_es_node(cls, value: str) -> str:
        return _validate_url("ES_NODE", value)

    @field_validator("kibana_node", mode="before")
    @classmethod
    def _check_kibana_node(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not str(value).strip():
            return None
        return _validate_url("KIBANA_NODE", str(value))

    @field_validator("es_ca_cert", mode="before")
    @classmethod
    def _check_ca_cert(cls, value: object) -> Optional[Path]:
        if value is None or not str(value).strip():
            return None
        path = Path(str(value).strip()).expanduser()
        if not path.is_file():
            raise ValueError(f"ES_CA_CERT file not found: {path}")
        return path

    @field_validator("data_dir")
    @classmethod
    def _expand_data_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"LOG_LEVEL must be a logging level name (got: {value})")
        return level

    @property
    def registry_file(self) -> Path:
        """Path of the device registry snapshot inside ``data_dir``."""
        return self.data_dir / REGISTRY_FILENAME


def load_settings(**overrides: object) -> IngestSettings:
    """Build settings from the environment, wrapping validation failures.

    Raises
    ------
    ConfigError
        With one line per invalid or missing variable and a hint on where to
        set it.
    """
    try:
        return IngestSettings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        problems = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err["loc"]) or "settings"
            problems.append(f"{loc.upper()}: {err['msg']}")
        raise ConfigError(
            "Invalid ingest configuration:\n  "
            + "\n  ".join(problems)
            + f"\nSet variables in {USER_ENV_FILE} or a local .env file."
        ) from exc
