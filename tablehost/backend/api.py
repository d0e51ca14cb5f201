"""FastAPI endpoints for session membership and feedback."""

from __future__ import annotations

from datetime import date
import logging
from typing import Any, Callable, Literal

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tablehost.backend.config import load_settings
from tablehost.backend.directory import (
    Authorization,
    Directory,
    HeaderIdentity,
    Identity,
    InMemoryDirectory,
    LoggingNotifier,
    Notifier,
    StaticAuthorization,
)
from tablehost.backend.errors import TableHostError, Unauthorized
from tablehost.backend.facade import SessionFacade
from tablehost.backend.feedback import FeedbackEngine
from tablehost.backend.feedback_store import FeedbackStore, create_feedback_store
from tablehost.backend.membership import MembershipEngine
from tablehost.backend.store import RosterStore, create_store

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": 404,
    "unauthorized": 401,
    "forbidden": 403,
    "already_member": 409,
    "not_a_member": 409,
    "not_pending": 409,
    "capacity_exceeded": 409,
    "duplicate_feedback": 409,
    "already_flagged": 409,
    "not_eligible": 403,
    "invalid_input": 422,
    "upstream_unavailable": 503,
}

SessionType = Literal["game", "campaign"]


class CreateSessionRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    session_type: SessionType = "game"
    capacity: int | None = Field(default=None, ge=1)
    requires_approval: bool = False
    date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    vendor_id: str | None = None
    cost_per_session: float | None = Field(default=None, ge=0)


class JoinRequest(BaseModel):
    character_id: str | None = Field(default=None, max_length=100)
    character_name: str | None = Field(default=None, max_length=200)


class PlayerRequest(BaseModel):
    player_id: str = Field(min_length=1)


class CharacterRequest(BaseModel):
    character_id: str | None = Field(default=None, max_length=100)
    character_name: str | None = Field(default=None, max_length=200)


class FeedbackRequest(BaseModel):
    target_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    session_type: SessionType
    verdict: Literal["yes", "no", "skip"]
    comment: str | None = Field(default=None, max_length=2000)


class FlagRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class ResolveFlagRequest(BaseModel):
    action: Literal["accepted", "deleted"]


class SessionResponse(BaseModel):
    session: dict[str, Any]


class SessionListResponse(BaseModel):
    sessions: list[dict[str, Any]]


class FeedbackResponse(BaseModel):
    feedback: dict[str, Any]


class FeedbackListResponse(BaseModel):
    feedback: list[dict[str, Any]]


class FeedbackCheckResponse(BaseModel):
    has_rated: bool


def create_app(
    roster_store: RosterStore | None = None,
    feedback_store: FeedbackStore | None = None,
    users: Directory | None = None,
    vendors: Directory | None = None,
    authorization: Authorization | None = None,
    notifier: Notifier | None = None,
    identity: Identity | None = None,
    today: Callable[[], date] | None = None,
) -> FastAPI:
    app = FastAPI(title="TableHost API", version="0.1.0")
    settings = load_settings()
    sessions_store = roster_store if roster_store is not None else create_store(settings.database_url)
    ratings_store = feedback_store if feedback_store is not None else create_feedback_store(settings.database_url)
    admin_check = authorization if authorization is not None else StaticAuthorization(settings.admin_ids)
    resolver = identity if identity is not None else HeaderIdentity()

    facade = SessionFacade(
        membership=MembershipEngine(sessions_store),
        users=users if users is not None else InMemoryDirectory(),
        vendors=vendors if vendors is not None else InMemoryDirectory(),
        notifier=notifier if notifier is not None else LoggingNotifier(),
    )
    engine_kwargs = {"today": today} if today is not None else {}
    feedback = FeedbackEngine(ratings_store, sessions_store, **engine_kwargs)
    app.state.facade = facade
    app.state.feedback = feedback

    @app.exception_handler(TableHostError)
    async def handle_core_error(request: Request, exc: TableHostError) -> JSONResponse:
        status_code = STATUS_BY_KIND.get(exc.kind, 400)
        if exc.retryable:
            logger.warning("%s %s failed upstream: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content={"error": exc.kind, "detail": exc.message})

    def optional_user(request: Request) -> str | None:
        return resolver.current_user_id(request.headers)

    def current_user(user_id: str | None = Depends(optional_user)) -> str:
        if user_id is None:
            raise Unauthorized()
        return user_id

    @app.post("/api/sessions", response_model=SessionResponse, status_code=201)
    def create_session(payload: CreateSessionRequest, user_id: str = Depends(current_user)) -> SessionResponse:
        view = facade.create_session(
            host_id=user_id,
            title=payload.title,
            session_type=payload.session_type,
            capacity=payload.capacity,
            requires_approval=payload.requires_approval,
            date=payload.date,
            vendor_id=payload.vendor_id,
            cost_per_session=payload.cost_per_session,
        )
        return SessionResponse(session=view.to_dict(viewer_id=user_id))

    @app.get("/api/sessions/mine", response_model=SessionListResponse)
    def list_my_sessions(user_id: str = Depends(current_user)) -> SessionListResponse:
        views = facade.list_for_user(user_id)
        return SessionListResponse(sessions=[view.to_dict(viewer_id=user_id) for view in views])

    @app.get("/api/sessions/{session_id}", response_model=SessionResponse)
    def get_session(session_id: str, user_id: str | None = Depends(optional_user)) -> SessionResponse:
        return SessionResponse(session=facade.get(session_id).to_dict(viewer_id=user_id))

    @app.post("/api/sessions/{session_id}/join", response_model=SessionResponse)
    def join_session(
        session_id: str,
        payload: JoinRequest | None = None,
        user_id: str = Depends(current_user),
    ) -> SessionResponse:
        body = payload or JoinRequest()
        view = facade.join(session_id, user_id, body.character_id, body.character_name)
        return SessionResponse(session=view.to_dict(viewer_id=user_id))

    @app.post("/api/sessions/{session_id}/leave", response_model=SessionResponse)
    def leave_session(session_id: str, user_id: str = Depends(current_user)) -> SessionResponse:
        return SessionResponse(session=facade.leave(session_id, user_id).to_dict(viewer_id=user_id))

    @app.post("/api/sessions/{session_id}/deny", response_model=SessionResponse)
    def deny_player(session_id: str, payload: PlayerRequest, user_id: str = Depends(current_user)) -> SessionResponse:
        view = facade.deny(session_id, user_id, payload.player_id)
        return SessionResponse(session=view.to_dict(viewer_id=user_id))

    @app.post("/api/sessions/{session_id}/approve", response_model=SessionResponse)
    def approve_player(session_id: str, payload: PlayerRequest, user_id: str = Depends(current_user)) -> SessionResponse:
        view = facade.approve(session_id, user_id, payload.player_id)
        return SessionResponse(session=view.to_dict(viewer_id=user_id))

    @app.post("/api/sessions/{session_id}/remove-player", response_model=SessionResponse)
    def remove_player(session_id: str, payload: PlayerRequest, user_id: str = Depends(current_user)) -> SessionResponse:
        view = facade.remove_player(session_id, user_id, payload.player_id)
        return SessionResponse(session=view.to_dict(viewer_id=user_id))

    @app.post("/api/sessions/{session_id}/update-character", response_model=SessionResponse)
    def update_character(
        session_id: str,
        payload: CharacterRequest,
        user_id: str = Depends(current_user),
    ) -> SessionResponse:
        view = facade.update_character(session_id, user_id, payload.character_id, payload.character_name)
        return SessionResponse(session=view.to_dict(viewer_id=user_id))

    @app.post("/api/feedback", response_model=FeedbackResponse, status_code=201)
    def submit_feedback(payload: FeedbackRequest, user_id: str = Depends(current_user)) -> FeedbackResponse:
        record = feedback.submit(
            rater_id=user_id,
            target_id=payload.target_id,
            session_id=payload.session_id,
            session_type=payload.session_type,
            verdict=payload.verdict,
            comment=payload.comment,
        )
        return FeedbackResponse(feedback=record.to_dict())

    @app.get("/api/feedback/check", response_model=FeedbackCheckResponse)
    def check_feedback(
        target_id: str = Query(min_length=1),
        session_id: str = Query(min_length=1),
        session_type: SessionType = Query(),
        user_id: str = Depends(current_user),
    ) -> FeedbackCheckResponse:
        return FeedbackCheckResponse(has_rated=feedback.has_submitted(user_id, target_id, session_id, session_type))

    @app.get("/api/feedback/stats")
    def batch_stats(target_id: list[str] = Query()) -> dict[str, Any]:
        stats = feedback.stats_for_many(target_id)
        return {"stats": {key: value.to_dict() for key, value in stats.items()}}

    @app.get("/api/feedback/stats/{target_id}")
    def target_stats(target_id: str, user_id: str | None = Depends(optional_user)) -> dict[str, Any]:
        is_admin = user_id is not None and admin_check.is_admin(user_id)
        return feedback.stats_with_comments(target_id, user_id, is_admin).to_dict()

    @app.post("/api/feedback/{feedback_id}/flag", response_model=FeedbackResponse)
    def flag_feedback(feedback_id: str, payload: FlagRequest, user_id: str = Depends(current_user)) -> FeedbackResponse:
        record = feedback.flag(feedback_id, user_id, payload.reason, is_admin=admin_check.is_admin(user_id))
        return FeedbackResponse(feedback=record.to_dict())

    @app.get("/api/admin/feedback/flagged", response_model=FeedbackListResponse)
    def list_flagged(user_id: str = Depends(current_user)) -> FeedbackListResponse:
        records = feedback.list_flagged(requester_is_admin=admin_check.is_admin(user_id))
        return FeedbackListResponse(feedback=[record.to_dict() for record in records])

    @app.post("/api/admin/feedback/{feedback_id}/resolve", response_model=FeedbackResponse)
    def resolve_flag(
        feedback_id: str,
        payload: ResolveFlagRequest,
        user_id: str = Depends(current_user),
    ) -> FeedbackResponse:
        record = feedback.resolve_flag(
            feedback_id,
            admin_id=user_id,
            action=payload.action,
            requester_is_admin=admin_check.is_admin(user_id),
        )
        return FeedbackResponse(feedback=record.to_dict())

    return app


app = create_app()
