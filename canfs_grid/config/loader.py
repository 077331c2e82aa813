from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/grid.yml``)
- Validate against the packaged JSON schema
- Apply defaults (timezone=UTC, page_size=10, debounce_ms=300, ...)
- Resolve the database DSN: environment (after .env) first, config second
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_TIMEZONE = "UTC"
DEFAULT_PAGE_SIZE = 10
DEFAULT_DEBOUNCE_MS = 300
DEFAULT_MIN_WIDTH = 60
DEFAULT_MAX_WIDTH = 800
DEFAULT_EXPORT_DIRECTORY = "./exports"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None

    def resolve_dsn(self) -> str:
        """Connection string with env precedence.

        1. DATABASE_URL / PGDSN (whole DSN)
        2. this section's ``dsn``
        3. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, falling back
           to the individual fields of this section
        """
        dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or self.dsn
        if dsn:
            return dsn
        host = os.getenv("PGHOST", self.host or "localhost")
        port = os.getenv("PGPORT", str(self.port) if self.port else "5432")
        user = os.getenv("PGUSER", self.user or "postgres")
        password = os.getenv("PGPASSWORD", self.password or "")
        database = os.getenv("PGDATABASE", self.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"
        return dsn


@dataclass(frozen=True)
class GridConfig:
    timezone: str = DEFAULT_TIMEZONE
    page_size: int = DEFAULT_PAGE_SIZE
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    discard_stale_responses: bool = True
    min_column_width: int = DEFAULT_MIN_WIDTH
    max_column_width: int = DEFAULT_MAX_WIDTH
    export_directory: str = DEFAULT_EXPORT_DIRECTORY
    notice_log_dir: str | None = None
    database: DatabaseConfig = DatabaseConfig()

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the packaged JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def parse_config(data: dict[str, Any]) -> GridConfig:
    _validate_config_schema(data)

    tz = data.get("timezone", DEFAULT_TIMEZONE)
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown timezone: {tz}") from e

    widths = data.get("column_width") or {}
    min_w = widths.get("min", DEFAULT_MIN_WIDTH)
    max_w = widths.get("max", DEFAULT_MAX_WIDTH)
    if min_w > max_w:
        raise ConfigError(f"column_width.min ({min_w}) exceeds column_width.max ({max_w})")

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return GridConfig(
        timezone=tz,
        page_size=data.get("page_size", DEFAULT_PAGE_SIZE),
        debounce_ms=data.get("debounce_ms", DEFAULT_DEBOUNCE_MS),
        discard_stale_responses=data.get("discard_stale_responses", True),
        min_column_width=min_w,
        max_column_width=max_w,
        export_directory=data.get("export_directory", DEFAULT_EXPORT_DIRECTORY),
        notice_log_dir=data.get("notice_log_dir"),
        database=db,
    )


def load_config(path: Path) -> GridConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")
    return parse_config(data)
