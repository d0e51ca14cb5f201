"""Domain models for rosters, feedback and reputation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

SESSION_TYPES = ("game", "campaign")
VERDICTS = ("yes", "no", "skip")
FLAG_ACTIONS = ("accepted", "deleted")


@dataclass(frozen=True)
class PlayerSignup:
    user_id: str
    character_id: str | None = None
    character_name: str | None = None


@dataclass(frozen=True)
class Session:
    session_id: str
    session_type: str
    host_id: str
    title: str
    capacity: int | None
    requires_approval: bool
    created_at: str
    updated_at: str
    confirmed_players: tuple[PlayerSignup, ...] = ()
    pending_players: tuple[PlayerSignup, ...] = ()
    denied_players: tuple[str, ...] = ()
    date: str | None = None
    vendor_id: str | None = None
    cost_per_session: float | None = None
    version: int = 1

    @property
    def confirmed_ids(self) -> list[str]:
        return [signup.user_id for signup in self.confirmed_players]

    @property
    def pending_ids(self) -> list[str]:
        return [signup.user_id for signup in self.pending_players]

    def roster_ids(self) -> set[str]:
        return {*self.confirmed_ids, *self.pending_ids, *self.denied_players}

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["confirmed_players"] = [asdict(signup) for signup in self.confirmed_players]
        payload["pending_players"] = [asdict(signup) for signup in self.pending_players]
        payload["denied_players"] = list(self.denied_players)
        return payload


@dataclass(frozen=True)
class FeedbackFlag:
    flagged_by: str
    reason: str
    flagged_at: str


@dataclass(frozen=True)
class FlagResolution:
    resolved_by: str
    action: str
    resolved_at: str


@dataclass(frozen=True)
class FeedbackRecord:
    feedback_id: str
    rater_id: str
    target_id: str
    session_id: str
    session_type: str
    verdict: str
    created_at: str
    comment: str | None = None
    flag: FeedbackFlag | None = None
    resolution: FlagResolution | None = None

    @property
    def unique_key(self) -> tuple[str, str, str, str]:
        return (self.rater_id, self.target_id, self.session_id, self.session_type)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReputationStats:
    target_id: str
    total_ratings: int
    yes_count: int
    no_count: int
    skip_count: int
    score: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FeedbackSummary:
    stats: ReputationStats
    records: list[FeedbackRecord] | None

    def to_dict(self) -> dict[str, Any]:
        payload = self.stats.to_dict()
        if self.records is not None:
            payload["feedback"] = [record.to_dict() for record in self.records]
        return payload


@dataclass(frozen=True)
class BasicInfo:
    user_id: str
    name: str
    avatar_url: str | None = None
