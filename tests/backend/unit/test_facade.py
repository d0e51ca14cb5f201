import pytest

from tablehost.backend.directory import InMemoryDirectory
from tablehost.backend.errors import CapacityExceeded
from tablehost.backend.facade import SessionFacade
from tablehost.backend.membership import MembershipEngine
from tablehost.backend.store import InMemoryRosterStore


class _CountingDirectory(InMemoryDirectory):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[set[str]] = []

    def basic_info(self, ids: set[str]):
        self.calls.append(set(ids))
        return super().basic_info(ids)


class _RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    def notify(self, user_id: str, subject: str, body: str) -> None:
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append((user_id, subject))


def _facade(notifier: _RecordingNotifier | None = None):
    users = _CountingDirectory()
    users.add("host", "Mira", "https://img/mira.png")
    users.add("a", "Aldo")
    vendors = _CountingDirectory()
    vendors.add("shop", "Dragon's Hoard")
    facade = SessionFacade(
        membership=MembershipEngine(InMemoryRosterStore()),
        users=users,
        vendors=vendors,
        notifier=notifier or _RecordingNotifier(),
    )
    return facade, users, vendors


def test_session_view_fills_display_fields() -> None:
    facade, _, _ = _facade()
    created = facade.create_session("host", "Waterdeep", capacity=2, vendor_id="shop")
    session_id = created.session.session_id

    view = facade.join(session_id, "a").to_dict(viewer_id="a")

    assert view["host_name"] == "Mira"
    assert view["host_avatar_url"] == "https://img/mira.png"
    assert view["vendor"] == {"name": "Dragon's Hoard", "avatar_url": None}
    assert view["seats_left"] == 1
    assert view["confirmed_players"][0]["name"] == "Aldo"
    assert view["viewer_status"] == "confirmed"
    assert view["viewer_position"] == 1


def test_unknown_host_gets_placeholder_name() -> None:
    facade, _, _ = _facade()

    view = facade.create_session("ghost", "Nowhere").to_dict()

    assert view["host_name"] == "Unknown Host"
    assert view["vendor"] is None
    assert "viewer_status" not in view


def test_listing_makes_one_deduplicated_lookup_per_directory() -> None:
    facade, users, vendors = _facade()
    first = facade.create_session("host", "One", vendor_id="shop").session.session_id
    second = facade.create_session("host", "Two", vendor_id="shop").session.session_id
    facade.join(first, "a")
    facade.join(second, "a")
    users.calls.clear()
    vendors.calls.clear()

    views = facade.list_for_user("a")

    assert len(views) == 2
    assert users.calls == [{"host", "a"}]
    assert vendors.calls == [{"shop"}]


def test_sessions_without_vendor_skip_vendor_lookup() -> None:
    facade, _, vendors = _facade()

    facade.create_session("host", "Plain")

    assert vendors.calls == []


def test_membership_changes_notify_the_other_party() -> None:
    notifier = _RecordingNotifier()
    facade, _, _ = _facade(notifier)
    session_id = facade.create_session("host", "Screened", requires_approval=True).session.session_id

    facade.join(session_id, "a")
    facade.join(session_id, "b")
    facade.approve(session_id, "host", "a")
    facade.deny(session_id, "host", "b")
    facade.remove_player(session_id, "host", "a")

    assert notifier.sent == [
        ("host", "New join request"),
        ("host", "New join request"),
        ("a", "Request approved"),
        ("b", "Request declined"),
        ("a", "Removed from session"),
    ]


def test_notification_failure_does_not_undo_the_change(caplog) -> None:
    facade, _, _ = _facade(_RecordingNotifier(fail=True))
    session_id = facade.create_session("host", "Flaky", capacity=1).session.session_id

    view = facade.join(session_id, "a")

    assert view.session.confirmed_ids == ["a"]
    assert "Notification to host failed" in caplog.text
    with pytest.raises(CapacityExceeded):
        facade.join(session_id, "b")
