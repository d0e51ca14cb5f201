"""Typed failures raised by the membership and feedback engines."""

from __future__ import annotations


class TableHostError(Exception):
    """Base class for expected, recoverable outcomes callers branch on."""

    kind = "error"
    message = "Request failed"
    retryable = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class NotFound(TableHostError):
    kind = "not_found"
    message = "Not found"


class SessionNotFound(NotFound):
    message = "Session not found"


class FeedbackNotFound(NotFound):
    message = "Feedback not found"


class Unauthorized(TableHostError):
    kind = "unauthorized"
    message = "Authentication required"


class Forbidden(TableHostError):
    kind = "forbidden"
    message = "Not allowed"


class NotHost(Forbidden):
    message = "Only the host can manage this session"


class HostCannotJoin(Forbidden):
    message = "Hosts cannot join their own session"


class PlayerDenied(Forbidden):
    message = "The host has declined this player"


class AlreadyMember(TableHostError):
    kind = "already_member"
    message = "Already signed up for this session"


class NotAMember(TableHostError):
    kind = "not_a_member"
    message = "Not signed up for this session"


class NotAPlayer(NotAMember):
    message = "Only confirmed players can change their character"


class NotPending(TableHostError):
    kind = "not_pending"
    message = "Player is not awaiting approval"


class CapacityExceeded(TableHostError):
    kind = "capacity_exceeded"
    message = "Session is full"


class DuplicateFeedback(TableHostError):
    kind = "duplicate_feedback"
    message = "Feedback already submitted for this session"


class AlreadyFlagged(TableHostError):
    kind = "already_flagged"
    message = "Feedback is already flagged"


class NotEligible(TableHostError):
    kind = "not_eligible"
    message = "No completed session links these users"


class InvalidInput(TableHostError):
    kind = "invalid_input"
    message = "Invalid input"


class UpstreamUnavailable(TableHostError):
    kind = "upstream_unavailable"
    message = "Service temporarily unavailable"
    retryable = True
