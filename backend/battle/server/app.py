from __future__ import annotations

import contextlib
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from battle.logic.exceptions import SessionFullError, SessionNotFoundError, SessionStateError
from battle.logic.judge import FuzzyAnswerJudge, SemanticAnswerJudge
from battle.messaging.router import MessageRouter
from battle.server.settings import BattleServerSettings
from battle.server.types import CreateSessionRequest, JoinSessionRequest
from battle.server.websocket import websocket_endpoint
from battle.session.coordinator import BattleCoordinator
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.db import Database, SqliteSessionRepository
from shared.db.seed import get_default_catalog_path, seed_riddles
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from battle.logic.judge import AnswerJudge
    from shared.dal.models import GameSessionWithParticipants
    from shared.dal.session_repository import SessionRepository


_MAX_REQUEST_BODY_SIZE = 4096


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    coordinator: BattleCoordinator = request.app.state.coordinator
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "connected_sessions": coordinator.registry.session_count,
            "connections": coordinator.registry.connection_count,
        },
    )


async def _read_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Return the decoded JSON object, or the error response to send instead."""
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        return JSONResponse({"error": "Request body too large"}, status_code=413)
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):  # fmt: skip
        return _invalid_body()
    if not isinstance(body, dict):
        return _invalid_body()
    return body


def _invalid_body() -> JSONResponse:
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


def _session_response(session: GameSessionWithParticipants, status_code: int = 200) -> JSONResponse:
    return JSONResponse(session.model_dump(mode="json", by_alias=True), status_code=status_code)


def _rule_error_response(error: SessionStateError | SessionNotFoundError) -> JSONResponse:
    if isinstance(error, SessionNotFoundError):
        return JSONResponse({"error": str(error)}, status_code=404)
    if isinstance(error, SessionFullError):
        return JSONResponse({"error": str(error)}, status_code=409)
    return JSONResponse({"error": str(error)}, status_code=400)


async def create_session(request: Request) -> JSONResponse:
    coordinator: BattleCoordinator = request.app.state.coordinator

    body = await _read_json_body(request)
    if isinstance(body, JSONResponse):
        return body
    try:
        parsed = CreateSessionRequest(**body)
    except (TypeError, ValidationError):  # fmt: skip
        return _invalid_body()

    try:
        session = await coordinator.create_session(
            host_user_id=parsed.host_user_id,
            host_username=parsed.host_username,
            category_id=parsed.category_id,
            difficulty=parsed.difficulty,
            max_players=parsed.max_players,
            time_per_question=parsed.time_per_question,
            with_bot=parsed.with_bot,
        )
    except (SessionStateError, SessionNotFoundError) as e:
        return _rule_error_response(e)
    return _session_response(session, status_code=201)


async def join_session(request: Request) -> JSONResponse:
    coordinator: BattleCoordinator = request.app.state.coordinator

    body = await _read_json_body(request)
    if isinstance(body, JSONResponse):
        return body
    try:
        parsed = JoinSessionRequest(**body)
    except (TypeError, ValidationError):  # fmt: skip
        return _invalid_body()

    try:
        session = await coordinator.join_session_by_code(parsed.session_code, parsed.user_id, parsed.username)
    except (SessionStateError, SessionNotFoundError) as e:
        return _rule_error_response(e)
    return _session_response(session)


async def get_session(request: Request) -> JSONResponse:
    coordinator: BattleCoordinator = request.app.state.coordinator
    try:
        session_id = int(request.path_params["session_id"])
    except ValueError:
        return JSONResponse({"error": "Invalid session id"}, status_code=400)

    try:
        session = await coordinator.get_session(session_id)
    except SessionNotFoundError as e:
        return _rule_error_response(e)
    return _session_response(session)


def create_judge(settings: BattleServerSettings) -> AnswerJudge:
    """Semantic judge when an API key is configured, fuzzy matching otherwise."""
    if settings.judge_api_key:
        return SemanticAnswerJudge(
            api_url=settings.judge_api_url,
            api_key=settings.judge_api_key,
            model=settings.judge_model,
            timeout_seconds=settings.judge_timeout_seconds,
        )
    return FuzzyAnswerJudge()


def create_app(
    settings: BattleServerSettings | None = None,
    coordinator: BattleCoordinator | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = BattleServerSettings()

    # When the app creates its own coordinator, it owns the DB lifecycle and seeds the catalog.
    owned_db: Database | None = None
    repository: SessionRepository | None = None

    if coordinator is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        repository = SqliteSessionRepository(db)
        coordinator = BattleCoordinator(
            repository,
            create_judge(settings),
            advance_delay_seconds=settings.question_advance_delay_seconds,
            bot_think_time_scale=settings.bot_think_time_scale,
            default_time_per_question=settings.default_time_per_question,
            questions_per_session=settings.questions_per_session,
        )

    if message_router is None:
        message_router = MessageRouter(coordinator)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/sessions", create_session, methods=["POST"]),
        Route("/sessions/join", join_session, methods=["POST"]),
        Route("/sessions/{session_id}", get_session, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        if repository is not None:
            catalog_path = Path(settings.riddle_catalog_path or get_default_catalog_path())
            await seed_riddles(repository, catalog_path)
        try:
            yield
        finally:
            await coordinator.shutdown()
            if owned_db is not None:
                owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.coordinator = coordinator

    logger.info("battle server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = BattleServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
