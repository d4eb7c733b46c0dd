from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/ingest.yml``)
- Validate it against ``config_schema.json`` shipped next to this module
- Apply defaults for every key left out
- Resolve the database DSN (environment first, then the config section)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/ingest.yml")

DEFAULT_BATCH_SIZE = 25
DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_UNDO_LIMIT = 50


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None

    def resolve_dsn(self) -> str:
        """DATABASE_URL / PGDSN, else PG* variables with this config as fallback."""
        dsn_env = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or self.dsn
        if dsn_env:
            return dsn_env
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
class IngestConfig:
    batch_size: int = DEFAULT_BATCH_SIZE  # bulk-create chunk size
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS  # grid save debounce
    undo_limit: int = DEFAULT_UNDO_LIMIT  # undo frames kept
    logs_dir: str = "./logs"
    table: str = "requirements"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def default_config() -> IngestConfig:
    return IngestConfig()


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

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


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> IngestConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return IngestConfig(
        batch_size=data.get("batch_size", DEFAULT_BATCH_SIZE),
        debounce_seconds=float(data.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS)),
        undo_limit=data.get("undo_limit", DEFAULT_UNDO_LIMIT),
        logs_dir=data.get("logs_dir", "./logs"),
        table=data.get("table", "requirements"),
        database=db,
    )
