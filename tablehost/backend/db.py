"""Shared psycopg connection handling for the Postgres stores."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
import logging
from typing import Any, Iterator

from tablehost.backend.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


def iso(value: Any) -> str:
    return value if isinstance(value, str) else value.isoformat()


@dataclass
class PostgresBackend:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[Any]:
        """Yield a cursor inside one transaction; driver errors become UpstreamUnavailable."""
        import psycopg

        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
        except psycopg.Error as exc:
            logger.exception("%s query failed", type(self).__name__)
            raise UpstreamUnavailable() from exc

    def apply_schema(self, schema_sql: str) -> None:
        with self._cursor() as cur:
            cur.execute(schema_sql)
