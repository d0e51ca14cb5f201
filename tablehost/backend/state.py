"""Builders for new session records."""

from __future__ import annotations

from datetime import datetime, timezone

from tablehost.backend.errors import InvalidInput
from tablehost.backend.models import SESSION_TYPES, Session


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_session(
    session_id: str,
    host_id: str,
    title: str,
    session_type: str = "game",
    capacity: int | None = None,
    requires_approval: bool = False,
    date: str | None = None,
    vendor_id: str | None = None,
    cost_per_session: float | None = None,
) -> Session:
    """Return an empty roster at version 1 with shared created/updated stamps."""
    if session_type not in SESSION_TYPES:
        raise InvalidInput(f"Unknown session type: {session_type}")
    if capacity is not None and capacity < 1:
        raise InvalidInput("Capacity must be at least 1")
    if date is not None:
        try:
            parsed = datetime.strptime(date, "%Y-%m-%d").date()
        except ValueError:
            parsed = None
        if parsed is None or parsed.isoformat() != date:
            raise InvalidInput(f"Invalid session date: {date}")
    now = utc_now_iso()
    return Session(
        session_id=session_id,
        session_type=session_type,
        host_id=host_id,
        title=title,
        capacity=capacity,
        requires_approval=requires_approval,
        created_at=now,
        updated_at=now,
        date=date,
        vendor_id=vendor_id,
        cost_per_session=cost_per_session,
    )
