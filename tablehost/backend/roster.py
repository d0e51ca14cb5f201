"""Pure roster transitions.

Each ``apply_*`` function validates its preconditions against the session it
is given and returns the next session, or raises a typed failure. Stores run
these inside their locked write so the checks always see the state that
is being replaced.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable

from tablehost.backend.errors import (
    AlreadyMember,
    CapacityExceeded,
    HostCannotJoin,
    NotAMember,
    NotAPlayer,
    NotHost,
    NotPending,
    PlayerDenied,
)
from tablehost.backend.models import PlayerSignup, Session

Transition = Callable[[Session], Session]


def has_capacity(session: Session, extra: int = 1) -> bool:
    if session.capacity is None:
        return True
    return len(session.confirmed_players) + extra <= session.capacity


def seats_left(session: Session) -> int | None:
    if session.capacity is None:
        return None
    return max(session.capacity - len(session.confirmed_players), 0)


def membership_of(session: Session, user_id: str) -> str | None:
    if user_id in session.confirmed_ids:
        return "confirmed"
    if user_id in session.pending_ids:
        return "pending"
    if user_id in session.denied_players:
        return "denied"
    return None


def queue_position(session: Session, user_id: str) -> int | None:
    """1-based join order within the user's roster list."""
    for signups in (session.pending_players, session.confirmed_players):
        for index, signup in enumerate(signups):
            if signup.user_id == user_id:
                return index + 1
    return None


def _require_host(session: Session, host_id: str) -> None:
    if session.host_id != host_id:
        raise NotHost()


def _without(signups: tuple[PlayerSignup, ...], user_id: str) -> tuple[PlayerSignup, ...]:
    return tuple(signup for signup in signups if signup.user_id != user_id)


def _find(signups: tuple[PlayerSignup, ...], user_id: str) -> PlayerSignup | None:
    for signup in signups:
        if signup.user_id == user_id:
            return signup
    return None


def apply_join(
    session: Session,
    user_id: str,
    character_id: str | None = None,
    character_name: str | None = None,
) -> Session:
    if session.host_id == user_id:
        raise HostCannotJoin()
    state = membership_of(session, user_id)
    if state == "denied":
        raise PlayerDenied()
    if state is not None:
        raise AlreadyMember()

    signup = PlayerSignup(user_id=user_id, character_id=character_id, character_name=character_name)
    if session.requires_approval:
        return replace(session, pending_players=session.pending_players + (signup,))
    if not has_capacity(session):
        raise CapacityExceeded()
    return replace(session, confirmed_players=session.confirmed_players + (signup,))


def apply_leave(session: Session, user_id: str) -> Session:
    state = membership_of(session, user_id)
    if state == "confirmed":
        return replace(session, confirmed_players=_without(session.confirmed_players, user_id))
    if state == "pending":
        return replace(session, pending_players=_without(session.pending_players, user_id))
    raise NotAMember()


def apply_deny(session: Session, host_id: str, player_id: str) -> Session:
    _require_host(session, host_id)
    if membership_of(session, player_id) != "pending":
        raise NotPending()
    return replace(
        session,
        pending_players=_without(session.pending_players, player_id),
        denied_players=session.denied_players + (player_id,),
    )


def apply_approve(session: Session, host_id: str, player_id: str) -> Session:
    _require_host(session, host_id)
    signup = _find(session.pending_players, player_id)
    if signup is None:
        raise NotPending()
    if not has_capacity(session):
        raise CapacityExceeded()
    return replace(
        session,
        pending_players=_without(session.pending_players, player_id),
        confirmed_players=session.confirmed_players + (signup,),
    )


def apply_remove_player(session: Session, host_id: str, player_id: str) -> Session:
    _require_host(session, host_id)
    return apply_leave(session, player_id)


def apply_update_character(
    session: Session,
    user_id: str,
    character_id: str | None,
    character_name: str | None,
) -> Session:
    if membership_of(session, user_id) != "confirmed":
        raise NotAPlayer()
    confirmed = tuple(
        replace(signup, character_id=character_id, character_name=character_name)
        if signup.user_id == user_id
        else signup
        for signup in session.confirmed_players
    )
    return replace(session, confirmed_players=confirmed)
