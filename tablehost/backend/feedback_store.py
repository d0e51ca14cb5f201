"""Persistence interfaces and implementations for feedback records."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import threading
from typing import Any, Iterable, Protocol

from tablehost.backend.db import PostgresBackend, iso
from tablehost.backend.errors import AlreadyFlagged, DuplicateFeedback, FeedbackNotFound, InvalidInput
from tablehost.backend.models import FeedbackFlag, FeedbackRecord, FlagResolution

logger = logging.getLogger(__name__)


class FeedbackStore(Protocol):
    def insert_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        """Insert a record; raises DuplicateFeedback when its unique key exists."""

    def get_feedback(self, feedback_id: str) -> FeedbackRecord | None:
        """Return a record by id."""

    def find_feedback(
        self, rater_id: str, target_id: str, session_id: str, session_type: str
    ) -> FeedbackRecord | None:
        """Return the record for a unique key, if any."""

    def list_for_targets(self, target_ids: Iterable[str]) -> list[FeedbackRecord]:
        """Return every record about any of the targets."""

    def list_flagged(self) -> list[FeedbackRecord]:
        """Return records carrying an active flag."""

    def set_flag(self, feedback_id: str, flag: FeedbackFlag) -> FeedbackRecord:
        """Attach a flag unless one is already active."""

    def resolve_flag(self, feedback_id: str, resolution: FlagResolution) -> FeedbackRecord:
        """Clear an active flag and record who resolved it."""

    def delete_flagged_feedback(self, feedback_id: str) -> FeedbackRecord:
        """Remove a record carrying an active flag and return it."""


@dataclass
class InMemoryFeedbackStore:
    def __post_init__(self) -> None:
        self._records: dict[str, FeedbackRecord] = {}
        self._by_key: dict[tuple[str, str, str, str], str] = {}
        self._lock = threading.Lock()

    def insert_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        with self._lock:
            if record.unique_key in self._by_key:
                raise DuplicateFeedback()
            self._by_key[record.unique_key] = record.feedback_id
            self._records[record.feedback_id] = record
        return record

    def get_feedback(self, feedback_id: str) -> FeedbackRecord | None:
        return self._records.get(feedback_id)

    def find_feedback(
        self, rater_id: str, target_id: str, session_id: str, session_type: str
    ) -> FeedbackRecord | None:
        feedback_id = self._by_key.get((rater_id, target_id, session_id, session_type))
        if feedback_id is None:
            return None
        return self._records.get(feedback_id)

    def list_for_targets(self, target_ids: Iterable[str]) -> list[FeedbackRecord]:
        wanted = set(target_ids)
        return [record for record in self._snapshot() if record.target_id in wanted]

    def list_flagged(self) -> list[FeedbackRecord]:
        return [record for record in self._snapshot() if record.flag is not None]

    def set_flag(self, feedback_id: str, flag: FeedbackFlag) -> FeedbackRecord:
        with self._lock:
            record = self._require(feedback_id)
            if record.flag is not None:
                raise AlreadyFlagged()
            updated = replace(record, flag=flag, resolution=None)
            self._records[feedback_id] = updated
        return updated

    def resolve_flag(self, feedback_id: str, resolution: FlagResolution) -> FeedbackRecord:
        with self._lock:
            record = self._require(feedback_id)
            if record.flag is None:
                raise InvalidInput("Feedback is not flagged")
            updated = replace(record, flag=None, resolution=resolution)
            self._records[feedback_id] = updated
        return updated

    def delete_flagged_feedback(self, feedback_id: str) -> FeedbackRecord:
        with self._lock:
            record = self._require(feedback_id)
            if record.flag is None:
                raise InvalidInput("Feedback is not flagged")
            del self._records[feedback_id]
            self._by_key.pop(record.unique_key, None)
        return record

    def _snapshot(self) -> list[FeedbackRecord]:
        with self._lock:
            return list(self._records.values())

    def _require(self, feedback_id: str) -> FeedbackRecord:
        record = self._records.get(feedback_id)
        if record is None:
            raise FeedbackNotFound()
        return record


_FEEDBACK_COLUMNS = """
    id, rater_id, target_id, session_id, session_type, verdict, comment, created_at,
    flagged_by, flag_reason, flagged_at, resolved_by, resolution_action, resolved_at
"""


def _feedback_from_row(row: tuple) -> FeedbackRecord:
    (
        feedback_id,
        rater_id,
        target_id,
        session_id,
        session_type,
        verdict,
        comment,
        created_at,
        flagged_by,
        flag_reason,
        flagged_at,
        resolved_by,
        resolution_action,
        resolved_at,
    ) = row
    flag = None
    if flagged_at is not None:
        flag = FeedbackFlag(flagged_by=flagged_by, reason=flag_reason, flagged_at=iso(flagged_at))
    resolution = None
    if resolved_at is not None:
        resolution = FlagResolution(resolved_by=resolved_by, action=resolution_action, resolved_at=iso(resolved_at))
    return FeedbackRecord(
        feedback_id=feedback_id,
        rater_id=rater_id,
        target_id=target_id,
        session_id=session_id,
        session_type=session_type,
        verdict=verdict,
        comment=comment,
        created_at=iso(created_at),
        flag=flag,
        resolution=resolution,
    )


@dataclass
class PostgresFeedbackStore(PostgresBackend):
    def insert_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO feedback (id, rater_id, target_id, session_id, session_type, verdict, comment, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (rater_id, target_id, session_id, session_type) DO NOTHING
                RETURNING id
                """,
                (
                    record.feedback_id,
                    record.rater_id,
                    record.target_id,
                    record.session_id,
                    record.session_type,
                    record.verdict,
                    record.comment,
                    record.created_at,
                ),
            )
            inserted = cur.fetchone()
        if inserted is None:
            raise DuplicateFeedback()
        return record

    def get_feedback(self, feedback_id: str) -> FeedbackRecord | None:
        return self._fetch_one(f"SELECT {_FEEDBACK_COLUMNS} FROM feedback WHERE id = %s", (feedback_id,))

    def find_feedback(
        self, rater_id: str, target_id: str, session_id: str, session_type: str
    ) -> FeedbackRecord | None:
        return self._fetch_one(
            f"""
            SELECT {_FEEDBACK_COLUMNS} FROM feedback
            WHERE rater_id = %s AND target_id = %s AND session_id = %s AND session_type = %s
            """,
            (rater_id, target_id, session_id, session_type),
        )

    def list_for_targets(self, target_ids: Iterable[str]) -> list[FeedbackRecord]:
        wanted = sorted(set(target_ids))
        if not wanted:
            return []
        return self._fetch_all(
            f"SELECT {_FEEDBACK_COLUMNS} FROM feedback WHERE target_id = ANY(%s)",
            (wanted,),
        )

    def list_flagged(self) -> list[FeedbackRecord]:
        return self._fetch_all(
            f"SELECT {_FEEDBACK_COLUMNS} FROM feedback WHERE flagged_at IS NOT NULL ORDER BY flagged_at DESC",
            (),
        )

    def set_flag(self, feedback_id: str, flag: FeedbackFlag) -> FeedbackRecord:
        with self._cursor() as cur:
            cur.execute(
                f"""
                UPDATE feedback
                SET flagged_by = %s, flag_reason = %s, flagged_at = %s,
                    resolved_by = NULL, resolution_action = NULL, resolved_at = NULL
                WHERE id = %s AND flagged_at IS NULL
                RETURNING {_FEEDBACK_COLUMNS}
                """,
                (flag.flagged_by, flag.reason, flag.flagged_at, feedback_id),
            )
            row = cur.fetchone()
            if row is None:
                self._raise_missing_or(cur, feedback_id, AlreadyFlagged())
        return _feedback_from_row(row)

    def resolve_flag(self, feedback_id: str, resolution: FlagResolution) -> FeedbackRecord:
        with self._cursor() as cur:
            cur.execute(
                f"""
                UPDATE feedback
                SET flagged_by = NULL, flag_reason = NULL, flagged_at = NULL,
                    resolved_by = %s, resolution_action = %s, resolved_at = %s
                WHERE id = %s AND flagged_at IS NOT NULL
                RETURNING {_FEEDBACK_COLUMNS}
                """,
                (resolution.resolved_by, resolution.action, resolution.resolved_at, feedback_id),
            )
            row = cur.fetchone()
            if row is None:
                self._raise_missing_or(cur, feedback_id, InvalidInput("Feedback is not flagged"))
        return _feedback_from_row(row)

    def delete_flagged_feedback(self, feedback_id: str) -> FeedbackRecord:
        with self._cursor() as cur:
            cur.execute(
                f"DELETE FROM feedback WHERE id = %s AND flagged_at IS NOT NULL RETURNING {_FEEDBACK_COLUMNS}",
                (feedback_id,),
            )
            row = cur.fetchone()
            if row is None:
                self._raise_missing_or(cur, feedback_id, InvalidInput("Feedback is not flagged"))
        return _feedback_from_row(row)

    def _raise_missing_or(self, cur: Any, feedback_id: str, error: Exception) -> None:
        cur.execute("SELECT 1 FROM feedback WHERE id = %s", (feedback_id,))
        if cur.fetchone() is None:
            raise FeedbackNotFound()
        raise error

    def _fetch_one(self, sql: str, params: tuple) -> FeedbackRecord | None:
        with self._cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        return None if row is None else _feedback_from_row(row)

    def _fetch_all(self, sql: str, params: tuple) -> list[FeedbackRecord]:
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [_feedback_from_row(row) for row in rows]


def create_feedback_store(database_url: str | None) -> FeedbackStore:
    if database_url:
        return PostgresFeedbackStore(database_url=database_url)
    return InMemoryFeedbackStore()
