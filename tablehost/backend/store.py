"""Persistence interfaces and implementations for session rosters."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
import json
import logging
import threading
from typing import Protocol

from tablehost.backend.db import PostgresBackend, iso
from tablehost.backend.errors import InvalidInput, SessionNotFound, UpstreamUnavailable
from tablehost.backend.models import PlayerSignup, Session
from tablehost.backend.roster import Transition
from tablehost.backend.state import utc_now_iso

logger = logging.getLogger(__name__)


class RosterStore(Protocol):
    def create_session(self, session: Session) -> Session:
        """Persist a new session document."""

    def get_session(self, session_id: str) -> Session | None:
        """Return the current session document."""

    def list_sessions_for_user(self, user_id: str) -> list[Session]:
        """Return sessions the user hosts or appears in, soonest first."""

    def update_session(self, session_id: str, transition: Transition) -> Session:
        """Apply a transition with the document locked and return the committed session."""


def next_revision(current: Session, transition: Transition) -> Session:
    """Run a transition and stamp the result as the revision after ``current``."""
    proposed = transition(current)
    return replace(proposed, version=current.version + 1, updated_at=utc_now_iso())


def _sort_sessions(sessions: list[Session]) -> list[Session]:
    newest_first = sorted(sessions, key=lambda session: session.created_at, reverse=True)
    return sorted(newest_first, key=lambda session: (session.date is None, session.date or ""))


@dataclass
class InMemoryRosterStore:
    def __post_init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create_session(self, session: Session) -> Session:
        with self._lock:
            if session.session_id in self._sessions:
                raise InvalidInput("Session already exists")
            self._sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list_sessions_for_user(self, user_id: str) -> list[Session]:
        with self._lock:
            sessions = list(self._sessions.values())
        matches = [
            session
            for session in sessions
            if session.host_id == user_id or user_id in session.roster_ids()
        ]
        return _sort_sessions(matches)

    def update_session(self, session_id: str, transition: Transition) -> Session:
        with self._lock:
            current = self.get_session(session_id)
            if current is None:
                raise SessionNotFound()
            committed = next_revision(current, transition)
            self._sessions[session_id] = committed
        return committed


_SESSION_COLUMNS = """
    id, session_type, host_id, title, capacity, requires_approval, session_date,
    vendor_id, cost_per_session, roster, version, created_at, updated_at
"""


def _roster_json(session: Session) -> str:
    return json.dumps(
        {
            "confirmed": [asdict(signup) for signup in session.confirmed_players],
            "pending": [asdict(signup) for signup in session.pending_players],
            "denied": list(session.denied_players),
        }
    )


def _session_from_row(row: tuple) -> Session:
    (
        session_id,
        session_type,
        host_id,
        title,
        capacity,
        requires_approval,
        session_date,
        vendor_id,
        cost_per_session,
        roster_json,
        version,
        created_at,
        updated_at,
    ) = row
    roster = roster_json if isinstance(roster_json, dict) else json.loads(roster_json)
    return Session(
        session_id=session_id,
        session_type=session_type,
        host_id=host_id,
        title=title,
        capacity=capacity,
        requires_approval=bool(requires_approval),
        created_at=iso(created_at),
        updated_at=iso(updated_at),
        confirmed_players=tuple(PlayerSignup(**entry) for entry in roster.get("confirmed", [])),
        pending_players=tuple(PlayerSignup(**entry) for entry in roster.get("pending", [])),
        denied_players=tuple(roster.get("denied", [])),
        date=None if session_date is None else iso(session_date),
        vendor_id=vendor_id,
        cost_per_session=None if cost_per_session is None else float(cost_per_session),
        version=int(version),
    )


@dataclass
class PostgresRosterStore(PostgresBackend):
    def create_session(self, session: Session) -> Session:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO sessions (
                    id, session_type, host_id, title, capacity, requires_approval, session_date,
                    vendor_id, cost_per_session, roster, version, created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                """,
                (
                    session.session_id,
                    session.session_type,
                    session.host_id,
                    session.title,
                    session.capacity,
                    session.requires_approval,
                    session.date,
                    session.vendor_id,
                    session.cost_per_session,
                    _roster_json(session),
                    session.version,
                    session.created_at,
                    session.updated_at,
                ),
            )
            if cur.rowcount == 0:
                raise InvalidInput("Session already exists")
        return session

    def get_session(self, session_id: str) -> Session | None:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = %s", (session_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return _session_from_row(row)

    def list_sessions_for_user(self, user_id: str) -> list[Session]:
        member_filter = json.dumps([{"user_id": user_id}])
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_SESSION_COLUMNS}
                FROM sessions
                WHERE host_id = %s
                   OR roster -> 'confirmed' @> %s::jsonb
                   OR roster -> 'pending' @> %s::jsonb
                   OR roster -> 'denied' @> %s::jsonb
                ORDER BY session_date ASC NULLS LAST, created_at DESC
                """,
                (user_id, member_filter, member_filter, json.dumps([user_id])),
            )
            rows = cur.fetchall()
        return [_session_from_row(row) for row in rows]

    def update_session(self, session_id: str, transition: Transition) -> Session:
        """Read the row FOR UPDATE, transition and write back in one transaction.

        Concurrent writers to the same session queue on the row lock, so each
        transition sees the state committed by the previous one.
        """
        with self._cursor() as cur:
            cur.execute(f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = %s FOR UPDATE", (session_id,))
            row = cur.fetchone()
            if row is None:
                raise SessionNotFound()
            current = _session_from_row(row)
            committed = next_revision(current, transition)
            cur.execute(
                """
                UPDATE sessions
                SET roster = %s::jsonb, version = %s, updated_at = %s
                WHERE id = %s AND version = %s
                """,
                (_roster_json(committed), committed.version, committed.updated_at, session_id, current.version),
            )
            if cur.rowcount != 1:
                logger.error("Locked session %s changed underneath update", session_id)
                raise UpstreamUnavailable()
        return committed


def create_store(database_url: str | None) -> RosterStore:
    if database_url:
        return PostgresRosterStore(database_url=database_url)
    return InMemoryRosterStore()
