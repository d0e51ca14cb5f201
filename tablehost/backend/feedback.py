"""Feedback submission, moderation flags and reputation stats."""

from __future__ import annotations

from datetime import date, datetime, timezone
import logging
from typing import Callable, Iterable
import uuid

from tablehost.backend.errors import (
    DuplicateFeedback,
    FeedbackNotFound,
    Forbidden,
    InvalidInput,
    NotEligible,
    SessionNotFound,
)
from tablehost.backend.feedback_store import FeedbackStore
from tablehost.backend.models import (
    FLAG_ACTIONS,
    SESSION_TYPES,
    VERDICTS,
    FeedbackFlag,
    FeedbackRecord,
    FeedbackSummary,
    FlagResolution,
    ReputationStats,
    Session,
)
from tablehost.backend.state import utc_now_iso
from tablehost.backend.store import RosterStore

logger = logging.getLogger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def compute_reputation(target_id: str, records: Iterable[FeedbackRecord]) -> ReputationStats:
    """Aggregate verdicts about one user. Flagged records still count."""
    counts = {verdict: 0 for verdict in VERDICTS}
    total = 0
    for record in records:
        if record.target_id != target_id:
            continue
        total += 1
        counts[record.verdict] = counts.get(record.verdict, 0) + 1
    return ReputationStats(
        target_id=target_id,
        total_ratings=total,
        yes_count=counts["yes"],
        no_count=counts["no"],
        skip_count=counts["skip"],
        score=counts["yes"] - counts["no"],
    )


class FeedbackEngine:
    def __init__(
        self,
        store: FeedbackStore,
        roster_store: RosterStore,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self.store = store
        self.roster_store = roster_store
        self._today = today

    def submit(
        self,
        rater_id: str,
        target_id: str,
        session_id: str,
        session_type: str,
        verdict: str,
        comment: str | None = None,
    ) -> FeedbackRecord:
        if verdict not in VERDICTS:
            raise InvalidInput(f"Unknown verdict: {verdict}")
        if session_type not in SESSION_TYPES:
            raise InvalidInput(f"Unknown session type: {session_type}")
        if rater_id == target_id:
            raise InvalidInput("Cannot rate yourself")

        session = self.roster_store.get_session(session_id)
        if session is None:
            raise SessionNotFound()
        self._check_eligible(session, rater_id, target_id, session_type)

        record = FeedbackRecord(
            feedback_id=str(uuid.uuid4()),
            rater_id=rater_id,
            target_id=target_id,
            session_id=session_id,
            session_type=session_type,
            verdict=verdict,
            comment=comment or None,
            created_at=utc_now_iso(),
        )
        try:
            stored = self.store.insert_feedback(record)
        except DuplicateFeedback:
            logger.info("Duplicate feedback from %s about %s on %s", rater_id, target_id, session_id)
            raise
        logger.info("Feedback %s recorded from %s about %s", stored.feedback_id, rater_id, target_id)
        return stored

    def has_submitted(self, rater_id: str, target_id: str, session_id: str, session_type: str) -> bool:
        if session_type not in SESSION_TYPES:
            raise InvalidInput(f"Unknown session type: {session_type}")
        return self.store.find_feedback(rater_id, target_id, session_id, session_type) is not None

    def flag(self, feedback_id: str, flagged_by: str, reason: str, is_admin: bool = False) -> FeedbackRecord:
        reason = reason.strip()
        if not reason:
            raise InvalidInput("A reason is required to flag feedback")
        record = self.store.get_feedback(feedback_id)
        if record is None:
            raise FeedbackNotFound()
        if flagged_by != record.target_id and not is_admin:
            raise Forbidden("Only the rated user or an admin can flag feedback")
        flagged = self.store.set_flag(
            feedback_id,
            FeedbackFlag(flagged_by=flagged_by, reason=reason, flagged_at=utc_now_iso()),
        )
        logger.info("Feedback %s flagged by %s", feedback_id, flagged_by)
        return flagged

    def stats(self, target_id: str) -> ReputationStats:
        return compute_reputation(target_id, self.store.list_for_targets([target_id]))

    def stats_for_many(self, target_ids: Iterable[str]) -> dict[str, ReputationStats]:
        wanted = sorted(set(target_ids))
        if not wanted:
            return {}
        records = self.store.list_for_targets(wanted)
        return {target_id: compute_reputation(target_id, records) for target_id in wanted}

    def stats_with_comments(self, target_id: str, requester_id: str | None, requester_is_admin: bool) -> FeedbackSummary:
        """Stats for everyone; per-record comments only for the target or an admin."""
        records = self.store.list_for_targets([target_id])
        stats = compute_reputation(target_id, records)
        if requester_id != target_id and not requester_is_admin:
            return FeedbackSummary(stats=stats, records=None)
        newest_first = sorted(records, key=lambda record: record.created_at, reverse=True)
        return FeedbackSummary(stats=stats, records=newest_first)

    def list_flagged(self, requester_is_admin: bool) -> list[FeedbackRecord]:
        if not requester_is_admin:
            raise Forbidden("Admin access required")
        flagged = self.store.list_flagged()
        return sorted(flagged, key=lambda record: record.flag.flagged_at if record.flag else "", reverse=True)

    def resolve_flag(
        self, feedback_id: str, admin_id: str, action: str, requester_is_admin: bool
    ) -> FeedbackRecord:
        if not requester_is_admin:
            raise Forbidden("Admin access required")
        if action not in FLAG_ACTIONS:
            raise InvalidInput(f"Unknown flag action: {action}")
        if action == "deleted":
            removed = self.store.delete_flagged_feedback(feedback_id)
            logger.info("Feedback %s deleted by admin %s", feedback_id, admin_id)
            return removed
        resolved = self.store.resolve_flag(
            feedback_id,
            FlagResolution(resolved_by=admin_id, action=action, resolved_at=utc_now_iso()),
        )
        logger.info("Flag on feedback %s accepted by admin %s", feedback_id, admin_id)
        return resolved

    def _check_eligible(self, session: Session, rater_id: str, target_id: str, session_type: str) -> None:
        if session.session_type != session_type:
            raise NotEligible()
        players = set(session.confirmed_ids)
        host_rates_player = rater_id == session.host_id and target_id in players
        player_rates_host = target_id == session.host_id and rater_id in players
        if not (host_rates_player or player_rates_host):
            raise NotEligible()
        if session.date and date.fromisoformat(session.date[:10]) > self._today():
            raise NotEligible("Session has not taken place yet")
