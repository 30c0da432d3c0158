"""FastAPI REST API and live-update channel for Timekeeper."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from timekeeper import tasks as task_ops
from timekeeper.api.middleware import (
    FixedWindowLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from timekeeper.auth import TokenVerifier, authenticate, get_verifier
from timekeeper.broadcast import Broadcaster
from timekeeper.config import get_settings
from timekeeper.errors import TimekeeperError
from timekeeper.reminders import pending_reminders
from timekeeper.sessions import SessionManager
from timekeeper.stats import compute_stats
from timekeeper.storage import store
from timekeeper.storage.db import check_db, close_db, get_session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Timekeeper API starting")
    yield
    await close_db()
    logger.info("Timekeeper API stopped")


app = FastAPI(
    title="Timekeeper API",
    description="Tasks, focus sessions and streak statistics with live update push",
    version="0.1.0",
    lifespan=lifespan,
)

_server = get_settings().server
rate_limiter = FixedWindowLimiter(
    limit=_server.rate_limit_max, window_seconds=_server.rate_limit_window_seconds
)

# Added innermost first: CORS wraps the security headers, which wrap the limiter
app.add_middleware(
    RateLimitMiddleware,
    limiter=rate_limiter,
    exempt_paths={"/", "/health", "/docs", "/redoc", "/openapi.json"},
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_server.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


# --- Pydantic request/response models ---

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class TaskResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    importance: int
    completed: bool
    due_date: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True, **_CAMEL}


class TaskCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None
    importance: Optional[int] = None
    due_date: Optional[datetime] = None

    model_config = _CAMEL


class TaskUpdateRequest(BaseModel):
    completed: Optional[bool] = None
    title: Optional[str] = None
    description: Optional[str] = None
    importance: Optional[int] = None

    model_config = _CAMEL


class SessionRequest(BaseModel):
    action: str
    duration: Optional[int] = None


class SessionResponse(BaseModel):
    id: UUID
    duration: int
    start_time: datetime
    end_time: datetime
    status: str

    model_config = {"from_attributes": True, **_CAMEL}


class StatsResponse(BaseModel):
    tasks_completed: int
    total_focus: int
    current_streak: int

    model_config = _CAMEL


class ReminderResponse(BaseModel):
    task: TaskResponse
    overdue: bool
    due_in_seconds: int

    model_config = {"from_attributes": True, **_CAMEL}


class HealthResponse(BaseModel):
    status: str
    database: str
    timestamp: str


# --- Dependencies ---

_broadcaster = Broadcaster(send_timeout=get_settings().server.broadcast_timeout_seconds)
_session_manager: Optional[SessionManager] = None


async def get_db() -> AsyncIterator[AsyncSession]:
    async with get_session() as session:
        yield session


def get_broadcaster() -> Broadcaster:
    return _broadcaster


def get_session_manager(
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> SessionManager:
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager.from_settings(broadcaster)
    return _session_manager


async def get_owner_id(
    authorization: Optional[str] = Header(None),
    verifier: TokenVerifier = Depends(get_verifier),
) -> str:
    """Resolve the bearer token to the owner id every query is scoped to."""
    return await authenticate(authorization, verifier)


# --- Error handling ---

@app.exception_handler(TimekeeperError)
async def timekeeper_error_handler(request: Request, exc: TimekeeperError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.debug(
            "%s %s rejected (%d): %s",
            request.method, request.url.path, exc.status_code, exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = "Invalid request data"
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        if field:
            message = f"{message}: {field}: {first.get('msg', 'invalid')}"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# --- Endpoints ---

@app.get("/")
async def root():
    return {"app": "timekeeper", "docs": "/docs"}


@app.get("/health", response_model=HealthResponse)
async def health(session: AsyncSession = Depends(get_db)):
    """Liveness probe. Always 200; a dead database shows up as ``degraded``."""
    db_ok = await check_db(session)
    return HealthResponse(
        status="ok" if db_ok else "degraded",
        database="connected" if db_ok else "disconnected",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@app.get("/tasks", response_model=list[TaskResponse])
async def list_tasks(
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
):
    """List the caller's tasks, newest first."""
    return await task_ops.list_tasks(session, owner_id)


@app.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    request: TaskCreateRequest,
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    return await task_ops.create_task(
        session,
        broadcaster,
        owner_id,
        title=request.title,
        description=request.description,
        importance=request.importance,
        due_date=request.due_date,
    )


@app.put("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Partial edit; only the fields present in the body change."""
    changes = request.model_dump(exclude_unset=True)
    return await task_ops.update_task(session, broadcaster, owner_id, task_id, changes)


@app.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: str,
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    await task_ops.delete_task(session, broadcaster, owner_id, task_id)
    return Response(status_code=204)


@app.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
):
    """The caller's focus session history, most recent first."""
    return await store.list_sessions(session, owner_id)


@app.post("/sessions", response_model=SessionResponse, status_code=201)
async def session_action(
    request: SessionRequest,
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
):
    """Start (``duration`` required) or stop the caller's focus session."""
    return await manager.handle(session, owner_id, request.action, request.duration)


@app.get("/stats", response_model=StatsResponse)
async def get_stats(
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
):
    stats = await compute_stats(
        session, owner_id, focus_measure=get_settings().stats.focus_measure
    )
    return StatsResponse(**stats.to_dict())


@app.get("/reminders", response_model=list[ReminderResponse])
async def list_reminders(
    owner_id: str = Depends(get_owner_id),
    session: AsyncSession = Depends(get_db),
):
    """Unfinished tasks, earliest due first, flagged when overdue."""
    reminders = await pending_reminders(session, owner_id)
    return [
        ReminderResponse(
            task=TaskResponse.model_validate(r.task),
            overdue=r.overdue,
            due_in_seconds=r.due_in_seconds,
        )
        for r in reminders
    ]


@app.websocket("/ws")
async def updates_socket(
    websocket: WebSocket,
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Push ``{"type": "DATA_UPDATE"}`` whenever any record changes."""
    await broadcaster.connect(websocket)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(websocket)
