import pytest

from tablehost.backend.errors import (
    AlreadyMember,
    CapacityExceeded,
    Forbidden,
    HostCannotJoin,
    NotAMember,
    NotAPlayer,
    NotHost,
    NotPending,
    PlayerDenied,
)
from tablehost.backend.models import PlayerSignup
from tablehost.backend.roster import (
    apply_approve,
    apply_deny,
    apply_join,
    apply_leave,
    apply_remove_player,
    apply_update_character,
    has_capacity,
    membership_of,
    queue_position,
    seats_left,
)
from tablehost.backend.state import build_session


def _session(capacity: int | None = 2, requires_approval: bool = False):
    return build_session(
        session_id="s-1",
        host_id="host",
        title="Curse of Strahd",
        capacity=capacity,
        requires_approval=requires_approval,
    )


def test_join_without_approval_confirms_in_arrival_order() -> None:
    session = apply_join(_session(), "a", character_id="c-1", character_name="Ireena")
    session = apply_join(session, "b")

    assert session.confirmed_players == (
        PlayerSignup(user_id="a", character_id="c-1", character_name="Ireena"),
        PlayerSignup(user_id="b"),
    )
    assert session.pending_players == ()
    assert queue_position(session, "b") == 2


def test_join_with_approval_goes_to_pending() -> None:
    session = apply_join(_session(requires_approval=True), "a")

    assert session.pending_ids == ["a"]
    assert session.confirmed_ids == []
    assert membership_of(session, "a") == "pending"


def test_join_rejects_when_full() -> None:
    session = apply_join(_session(capacity=1), "a")

    with pytest.raises(CapacityExceeded):
        apply_join(session, "b")


def test_join_without_capacity_is_unlimited() -> None:
    session = _session(capacity=None)
    for index in range(50):
        session = apply_join(session, f"p-{index}")

    assert len(session.confirmed_players) == 50
    assert seats_left(session) is None
    assert has_capacity(session)


def test_join_rejects_existing_member_and_host() -> None:
    session = apply_join(_session(requires_approval=True), "a")

    with pytest.raises(AlreadyMember):
        apply_join(session, "a")
    with pytest.raises(HostCannotJoin):
        apply_join(session, "host")


def test_join_after_denial_is_forbidden() -> None:
    session = apply_join(_session(requires_approval=True), "a")
    session = apply_deny(session, "host", "a")

    with pytest.raises(PlayerDenied) as excinfo:
        apply_join(session, "a")
    assert excinfo.value.kind == "forbidden"


def test_leave_removes_from_confirmed_or_pending() -> None:
    confirmed = apply_leave(apply_join(_session(), "a"), "a")
    pending = apply_leave(apply_join(_session(requires_approval=True), "b"), "b")

    assert confirmed.confirmed_players == ()
    assert pending.pending_players == ()


def test_leave_by_non_member_fails() -> None:
    with pytest.raises(NotAMember):
        apply_leave(_session(), "stranger")


def test_leave_keeps_denial() -> None:
    session = apply_deny(apply_join(_session(requires_approval=True), "a"), "host", "a")

    with pytest.raises(NotAMember):
        apply_leave(session, "a")
    assert session.denied_players == ("a",)


def test_deny_checks_host_before_pending_state() -> None:
    session = _session(requires_approval=True)

    with pytest.raises(NotHost) as excinfo:
        apply_deny(session, "intruder", "nobody")
    assert isinstance(excinfo.value, Forbidden)

    with pytest.raises(NotPending):
        apply_deny(session, "host", "nobody")


def test_deny_moves_pending_player_to_denied() -> None:
    session = apply_join(_session(requires_approval=True), "a")
    session = apply_join(session, "b")

    denied = apply_deny(session, "host", "a")

    assert denied.pending_ids == ["b"]
    assert denied.denied_players == ("a",)
    assert membership_of(denied, "a") == "denied"


def test_approve_keeps_character_and_respects_capacity() -> None:
    session = _session(capacity=1, requires_approval=True)
    session = apply_join(session, "a", character_id="c-1", character_name="Van Richten")
    session = apply_join(session, "b")

    approved = apply_approve(session, "host", "a")

    assert approved.confirmed_players == (PlayerSignup("a", "c-1", "Van Richten"),)
    assert approved.pending_ids == ["b"]
    with pytest.raises(CapacityExceeded):
        apply_approve(approved, "host", "b")
    with pytest.raises(NotPending):
        apply_approve(approved, "host", "a")


def test_remove_player_requires_host() -> None:
    session = apply_join(_session(), "a")

    with pytest.raises(NotHost):
        apply_remove_player(session, "a", "a")
    assert apply_remove_player(session, "host", "a").confirmed_players == ()


def test_update_character_only_for_confirmed_players() -> None:
    session = apply_join(_session(), "a")

    updated = apply_update_character(session, "a", "c-9", "Ezmerelda")

    assert updated.confirmed_players[0] == PlayerSignup("a", "c-9", "Ezmerelda")
    with pytest.raises(NotAPlayer):
        apply_update_character(apply_join(_session(requires_approval=True), "b"), "b", "c-1", "Rahadin")


def test_roster_sets_stay_disjoint_through_mixed_operations() -> None:
    session = _session(capacity=3, requires_approval=True)
    for user_id in ("a", "b", "c", "d"):
        session = apply_join(session, user_id)
    session = apply_approve(session, "host", "a")
    session = apply_deny(session, "host", "b")
    session = apply_leave(session, "c")
    session = apply_approve(session, "host", "d")

    confirmed = set(session.confirmed_ids)
    pending = set(session.pending_ids)
    denied = set(session.denied_players)
    assert confirmed == {"a", "d"}
    assert denied == {"b"}
    assert not (confirmed & pending or confirmed & denied or pending & denied)
