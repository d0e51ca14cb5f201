"""Narrow interfaces to identity, admin, user lookup and notification services."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, Mapping, Protocol

from tablehost.backend.models import BasicInfo

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"


class Identity(Protocol):
    def current_user_id(self, headers: Mapping[str, str]) -> str | None:
        """Resolve the acting user from request-scoped credentials."""


class Authorization(Protocol):
    def is_admin(self, user_id: str) -> bool:
        """Return whether the user may moderate feedback."""


class Directory(Protocol):
    def basic_info(self, ids: set[str]) -> dict[str, BasicInfo]:
        """Batched display lookup; unknown ids are simply absent."""


class Notifier(Protocol):
    def notify(self, user_id: str, subject: str, body: str) -> None:
        """Fire-and-forget message to a user."""


class HeaderIdentity:
    def __init__(self, header: str = USER_ID_HEADER) -> None:
        self.header = header

    def current_user_id(self, headers: Mapping[str, str]) -> str | None:
        value = headers.get(self.header, "").strip()
        return value or None


@dataclass(frozen=True)
class StaticAuthorization:
    admin_ids: frozenset[str] = frozenset()

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admin_ids


@dataclass
class InMemoryDirectory:
    entries: dict[str, BasicInfo] = field(default_factory=dict)

    def add(self, user_id: str, name: str, avatar_url: str | None = None) -> None:
        self.entries[user_id] = BasicInfo(user_id=user_id, name=name, avatar_url=avatar_url)

    def basic_info(self, ids: set[str]) -> dict[str, BasicInfo]:
        return {user_id: self.entries[user_id] for user_id in ids if user_id in self.entries}


class LoggingNotifier:
    """Notifier that only records outgoing messages in the log."""

    def notify(self, user_id: str, subject: str, body: str) -> None:
        logger.info("Notify %s: %s", user_id, subject)


def unique_ids(ids: Iterable[str | None]) -> set[str]:
    return {user_id for user_id in ids if user_id}
