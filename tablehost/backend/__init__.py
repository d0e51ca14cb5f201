"""Backend package for TableHost session rosters and feedback."""

from .config import BackendSettings, load_settings
from .facade import SessionFacade
from .feedback import FeedbackEngine, compute_reputation
from .feedback_store import FeedbackStore, InMemoryFeedbackStore, PostgresFeedbackStore, create_feedback_store
from .membership import MembershipEngine
from .state import build_session
from .store import InMemoryRosterStore, PostgresRosterStore, RosterStore, create_store

__all__ = [
    "BackendSettings",
    "build_session",
    "compute_reputation",
    "create_feedback_store",
    "create_store",
    "FeedbackEngine",
    "FeedbackStore",
    "InMemoryFeedbackStore",
    "InMemoryRosterStore",
    "load_settings",
    "MembershipEngine",
    "PostgresFeedbackStore",
    "PostgresRosterStore",
    "RosterStore",
    "SessionFacade",
]
