"""Configuration helpers for backend runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class BackendSettings:
    database_url: str | None
    host: str
    port: int
    log_level: str
    admin_ids: frozenset[str]


def load_settings() -> BackendSettings:
    port_raw = os.getenv("TABLEHOST_PORT", "8000")
    admin_raw = os.getenv("TABLEHOST_ADMIN_IDS", "")
    return BackendSettings(
        database_url=os.getenv("TABLEHOST_DATABASE_URL"),
        host=os.getenv("TABLEHOST_HOST", "127.0.0.1"),
        port=int(port_raw),
        log_level=os.getenv("TABLEHOST_LOG_LEVEL", "INFO").upper(),
        admin_ids=frozenset(item.strip() for item in admin_raw.split(",") if item.strip()),
    )


def configure_logging(settings: BackendSettings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
