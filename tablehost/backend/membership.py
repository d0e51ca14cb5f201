"""Membership operations on session rosters."""

from __future__ import annotations

import logging

from tablehost.backend import roster
from tablehost.backend.errors import SessionNotFound, TableHostError
from tablehost.backend.models import Session
from tablehost.backend.roster import Transition
from tablehost.backend.store import RosterStore

logger = logging.getLogger(__name__)


class MembershipEngine:
    """Applies join/leave/screening operations as single locked writes.

    The acting user is always an explicit argument; nothing here reads
    request state.
    """

    def __init__(self, store: RosterStore) -> None:
        self.store = store

    def get(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    def join(
        self,
        session_id: str,
        user_id: str,
        character_id: str | None = None,
        character_name: str | None = None,
    ) -> Session:
        return self._write(
            "join",
            session_id,
            user_id,
            lambda session: roster.apply_join(session, user_id, character_id, character_name),
        )

    def leave(self, session_id: str, user_id: str) -> Session:
        return self._write("leave", session_id, user_id, lambda session: roster.apply_leave(session, user_id))

    def deny(self, session_id: str, host_id: str, player_id: str) -> Session:
        return self._write(
            "deny",
            session_id,
            host_id,
            lambda session: roster.apply_deny(session, host_id, player_id),
        )

    def approve(self, session_id: str, host_id: str, player_id: str) -> Session:
        return self._write(
            "approve",
            session_id,
            host_id,
            lambda session: roster.apply_approve(session, host_id, player_id),
        )

    def remove_player(self, session_id: str, host_id: str, player_id: str) -> Session:
        return self._write(
            "remove_player",
            session_id,
            host_id,
            lambda session: roster.apply_remove_player(session, host_id, player_id),
        )

    def update_character(
        self,
        session_id: str,
        user_id: str,
        character_id: str | None,
        character_name: str | None,
    ) -> Session:
        return self._write(
            "update_character",
            session_id,
            user_id,
            lambda session: roster.apply_update_character(session, user_id, character_id, character_name),
        )

    def _write(self, operation: str, session_id: str, actor_id: str, transition: Transition) -> Session:
        try:
            session = self.store.update_session(session_id, transition)
        except TableHostError as exc:
            logger.info("%s on %s by %s rejected: %s", operation, session_id, actor_id, exc.kind)
            raise
        logger.info("%s on %s by %s committed at version %d", operation, session_id, actor_id, session.version)
        return session
