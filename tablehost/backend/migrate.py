"""Create or upgrade the PostgreSQL tables behind the stores."""

from __future__ import annotations

import logging
from pathlib import Path

from tablehost.backend.config import configure_logging, load_settings
from tablehost.backend.db import PostgresBackend

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def migrate(backend: PostgresBackend, schema_path: Path = SCHEMA_PATH) -> None:
    backend.apply_schema(schema_path.read_text(encoding="utf-8"))
    logger.info("Applied %s", schema_path.name)


def main() -> int:
    settings = load_settings()
    configure_logging(settings)
    if not settings.database_url:
        logger.error("TABLEHOST_DATABASE_URL is required for migration")
        return 1
    migrate(PostgresBackend(database_url=settings.database_url))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
