from concurrent.futures import ThreadPoolExecutor
import threading
import time

import pytest

from tablehost.backend.errors import (
    CapacityExceeded,
    NotAMember,
    NotHost,
    NotPending,
    PlayerDenied,
    SessionNotFound,
    TableHostError,
)
from tablehost.backend.membership import MembershipEngine
from tablehost.backend.state import build_session
from tablehost.backend.store import InMemoryRosterStore


class _SlowRosterStore(InMemoryRosterStore):
    """Holds each read for a moment so concurrent writers overlap."""

    def get_session(self, session_id: str):
        session = super().get_session(session_id)
        time.sleep(0.002)
        return session


def _engine(
    capacity: int | None = None,
    requires_approval: bool = False,
    store: InMemoryRosterStore | None = None,
) -> MembershipEngine:
    store = store if store is not None else InMemoryRosterStore()
    store.create_session(
        build_session(
            session_id="s-1",
            host_id="host",
            title="Lost Mine",
            capacity=capacity,
            requires_approval=requires_approval,
        )
    )
    return MembershipEngine(store)


def test_get_missing_session_fails() -> None:
    with pytest.raises(SessionNotFound):
        MembershipEngine(InMemoryRosterStore()).get("nope")


def test_single_seat_goes_to_first_joiner() -> None:
    engine = _engine(capacity=1)

    joined = engine.join("s-1", "a")
    with pytest.raises(CapacityExceeded):
        engine.join("s-1", "b")
    engine.leave("s-1", "a")
    rejoined = engine.join("s-1", "b")

    assert joined.confirmed_ids == ["a"]
    assert rejoined.confirmed_ids == ["b"]
    assert engine.get("s-1").version == 4


def test_approval_flow_and_permanent_denial() -> None:
    engine = _engine(capacity=2, requires_approval=True)
    engine.join("s-1", "a", character_id="c-1", character_name="Sildar")
    engine.join("s-1", "b")

    with pytest.raises(NotHost):
        engine.deny("s-1", "a", "b")
    engine.approve("s-1", "host", "a")
    denied = engine.deny("s-1", "host", "b")

    assert denied.confirmed_ids == ["a"]
    assert denied.confirmed_players[0].character_name == "Sildar"
    assert denied.pending_players == ()
    assert denied.denied_players == ("b",)
    with pytest.raises(PlayerDenied):
        engine.join("s-1", "b")
    with pytest.raises(NotPending):
        engine.approve("s-1", "host", "b")


def test_remove_player_and_update_character() -> None:
    engine = _engine()
    engine.join("s-1", "a")
    engine.join("s-1", "b")

    updated = engine.update_character("s-1", "b", "c-7", "Gundren")
    removed = engine.remove_player("s-1", "host", "a")

    assert updated.confirmed_players[1].character_id == "c-7"
    assert removed.confirmed_ids == ["b"]


def test_rejected_operation_is_logged_and_reraised(caplog) -> None:
    engine = _engine(capacity=1)
    engine.join("s-1", "a")

    with caplog.at_level("INFO", logger="tablehost.backend.membership"):
        with pytest.raises(CapacityExceeded):
            engine.join("s-1", "b")

    assert "capacity_exceeded" in caplog.text


def _race(actions: list) -> list[object]:
    barrier = threading.Barrier(len(actions))

    def attempt(action) -> object:
        barrier.wait()
        try:
            return action()
        except TableHostError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(actions)) as pool:
        return list(pool.map(attempt, actions))


def _joins(engine: MembershipEngine, user_ids: list[str]) -> list:
    return [lambda user_id=user_id: engine.join("s-1", user_id) for user_id in user_ids]


@pytest.mark.parametrize("store_factory", [InMemoryRosterStore, _SlowRosterStore])
def test_concurrent_joins_fill_exactly_the_free_seats(store_factory) -> None:
    engine = _engine(capacity=10, store=store_factory())
    user_ids = [f"p-{index}" for index in range(30)]

    results = _race(_joins(engine, user_ids))

    failures = [result for result in results if isinstance(result, TableHostError)]
    final = engine.get("s-1")
    assert len(final.confirmed_ids) == 10
    assert len(set(final.confirmed_ids)) == 10
    assert len(failures) == 20
    assert all(isinstance(failure, CapacityExceeded) for failure in failures)
    assert final.version == 11


def test_concurrent_joins_on_unlimited_session_all_succeed() -> None:
    engine = _engine(store=_SlowRosterStore())
    user_ids = [f"p-{index}" for index in range(40)]

    results = _race(_joins(engine, user_ids))

    assert not [result for result in results if isinstance(result, TableHostError)]
    assert sorted(engine.get("s-1").confirmed_ids) == sorted(user_ids)


def test_concurrent_join_and_leave_keep_every_change() -> None:
    engine = _engine(store=_SlowRosterStore())
    for user_id in ("a", "b", "c"):
        engine.join("s-1", user_id)

    _race(
        [
            lambda: engine.leave("s-1", "a"),
            lambda: engine.leave("s-1", "b"),
            lambda: engine.leave("s-1", "c"),
            lambda: engine.join("s-1", "d"),
            lambda: engine.join("s-1", "e"),
        ]
    )

    assert sorted(engine.get("s-1").confirmed_ids) == ["d", "e"]


@pytest.mark.parametrize("round_index", range(10))
def test_host_deny_racing_player_leave_has_one_winner(round_index: int) -> None:
    engine = _engine(requires_approval=True, store=_SlowRosterStore())
    engine.join("s-1", "p")

    deny_result, leave_result = _race(
        [
            lambda: engine.deny("s-1", "host", "p"),
            lambda: engine.leave("s-1", "p"),
        ]
    )

    final = engine.get("s-1")
    assert final.pending_players == ()
    if isinstance(deny_result, TableHostError):
        assert isinstance(deny_result, NotPending)
        assert not isinstance(leave_result, TableHostError)
        assert final.denied_players == ()
    else:
        assert isinstance(leave_result, NotAMember)
        assert final.denied_players == ("p",)
    assert final.version == 3
