"""Session/campaign facade used by the web layer."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any
import uuid

from tablehost.backend.directory import Directory, Notifier, unique_ids
from tablehost.backend.membership import MembershipEngine
from tablehost.backend.models import BasicInfo, Session
from tablehost.backend.roster import membership_of, queue_position, seats_left
from tablehost.backend.state import build_session

logger = logging.getLogger(__name__)

UNKNOWN_HOST = "Unknown Host"


@dataclass(frozen=True)
class SessionView:
    session: Session
    host: BasicInfo | None = None
    vendor: BasicInfo | None = None
    people: dict[str, BasicInfo] = field(default_factory=dict)

    def to_dict(self, viewer_id: str | None = None) -> dict[str, Any]:
        payload = self.session.to_dict()
        payload["host_name"] = self.host.name if self.host else UNKNOWN_HOST
        payload["host_avatar_url"] = self.host.avatar_url if self.host else None
        payload["vendor"] = None if self.vendor is None else {"name": self.vendor.name, "avatar_url": self.vendor.avatar_url}
        payload["seats_left"] = seats_left(self.session)
        for key in ("confirmed_players", "pending_players"):
            for entry in payload[key]:
                info = self.people.get(entry["user_id"])
                entry["name"] = info.name if info else None
                entry["avatar_url"] = info.avatar_url if info else None
        if viewer_id is not None:
            payload["viewer_status"] = membership_of(self.session, viewer_id)
            payload["viewer_position"] = queue_position(self.session, viewer_id)
        return payload


class SessionFacade:
    def __init__(
        self,
        membership: MembershipEngine,
        users: Directory,
        vendors: Directory,
        notifier: Notifier,
    ) -> None:
        self.membership = membership
        self.users = users
        self.vendors = vendors
        self.notifier = notifier

    def create_session(
        self,
        host_id: str,
        title: str,
        session_type: str = "game",
        capacity: int | None = None,
        requires_approval: bool = False,
        date: str | None = None,
        vendor_id: str | None = None,
        cost_per_session: float | None = None,
    ) -> SessionView:
        session = build_session(
            session_id=str(uuid.uuid4()),
            host_id=host_id,
            title=title,
            session_type=session_type,
            capacity=capacity,
            requires_approval=requires_approval,
            date=date,
            vendor_id=vendor_id,
            cost_per_session=cost_per_session,
        )
        created = self.membership.store.create_session(session)
        logger.info("Session %s created by %s", created.session_id, host_id)
        return self._views([created])[0]

    def get(self, session_id: str) -> SessionView:
        return self._views([self.membership.get(session_id)])[0]

    def list_for_user(self, user_id: str) -> list[SessionView]:
        return self._views(self.membership.store.list_sessions_for_user(user_id))

    def join(
        self,
        session_id: str,
        user_id: str,
        character_id: str | None = None,
        character_name: str | None = None,
    ) -> SessionView:
        session = self.membership.join(session_id, user_id, character_id, character_name)
        if session.requires_approval:
            self._notify(session.host_id, "New join request", f"A player asked to join {session.title}.")
        else:
            self._notify(session.host_id, "New player", f"A player joined {session.title}.")
        return self._views([session])[0]

    def leave(self, session_id: str, user_id: str) -> SessionView:
        session = self.membership.leave(session_id, user_id)
        self._notify(session.host_id, "Player left", f"A player left {session.title}.")
        return self._views([session])[0]

    def deny(self, session_id: str, host_id: str, player_id: str) -> SessionView:
        session = self.membership.deny(session_id, host_id, player_id)
        self._notify(player_id, "Request declined", f"Your request to join {session.title} was declined.")
        return self._views([session])[0]

    def approve(self, session_id: str, host_id: str, player_id: str) -> SessionView:
        session = self.membership.approve(session_id, host_id, player_id)
        self._notify(player_id, "Request approved", f"You are confirmed for {session.title}.")
        return self._views([session])[0]

    def remove_player(self, session_id: str, host_id: str, player_id: str) -> SessionView:
        session = self.membership.remove_player(session_id, host_id, player_id)
        self._notify(player_id, "Removed from session", f"The host removed you from {session.title}.")
        return self._views([session])[0]

    def update_character(
        self,
        session_id: str,
        user_id: str,
        character_id: str | None,
        character_name: str | None,
    ) -> SessionView:
        session = self.membership.update_character(session_id, user_id, character_id, character_name)
        return self._views([session])[0]

    def _views(self, sessions: list[Session]) -> list[SessionView]:
        if not sessions:
            return []
        user_ids = unique_ids(
            user_id
            for session in sessions
            for user_id in (session.host_id, *session.confirmed_ids, *session.pending_ids)
        )
        vendor_ids = unique_ids(session.vendor_id for session in sessions)
        people = self.users.basic_info(user_ids)
        vendors = self.vendors.basic_info(vendor_ids) if vendor_ids else {}
        return [
            SessionView(
                session=session,
                host=people.get(session.host_id),
                vendor=vendors.get(session.vendor_id) if session.vendor_id else None,
                people=people,
            )
            for session in sessions
        ]

    def _notify(self, user_id: str, subject: str, body: str) -> None:
        try:
            self.notifier.notify(user_id, subject, body)
        except Exception:
            logger.exception("Notification to %s failed: %s", user_id, subject)
