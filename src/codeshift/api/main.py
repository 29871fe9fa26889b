"""FastAPI app entrypoint for codeshift."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from codeshift.api.ui import render_homepage
from codeshift.config.settings import Settings, get_settings
from codeshift.conversion.gateway import ConversionGateway, build_gateway_from_settings
from codeshift.conversion.service import ConversionService
from codeshift.conversion.tasks import find_task, list_tasks, with_model
from codeshift.history.base import HistoryBackend
from codeshift.history.codec import preview
from codeshift.history.errors import PersistenceError
from codeshift.history.memory import InMemoryHistoryBackend
from codeshift.history.models import HistoryItem, HistorySnapshot, UserSettings
from codeshift.history.postgres import PostgresHistoryBackend
from codeshift.history.store import HistoryStore
from codeshift.session.identity import AnonymousIdentityProvider, is_valid_user_id
from codeshift.session.session import replay_item

logger = logging.getLogger(__name__)

SSE_KEEPALIVE_S = 15.0


class ConvertRequest(BaseModel):
    # Empty input is reported as a labeled conversion error, not a 422.
    input: str = ""


class ConvertResponse(BaseModel):
    kind: str
    conversions: list[dict[str, Any]] = Field(default_factory=list)
    analysis: str = ""
    shape: str | None = None
    copy_all: str = ""
    error: str | None = None
    error_type: str | None = None
    history_id: str | None = None


class HistoryEntry(BaseModel):
    id: str
    type: str
    input: str
    preview: str
    analysis: str
    timestamp: int
    conversions: list[dict[str, Any]]
    legacy: bool = False


class HistoryPage(BaseModel):
    items: list[HistoryEntry]


class SessionResponse(BaseModel):
    user_id: str
    created: bool


class TaskInfo(BaseModel):
    kind: str
    label: str
    description: str
    model_id: str


def _build_backend(settings: Settings) -> HistoryBackend:
    backend_name = settings.history_backend.strip().lower()
    if backend_name == "memory":
        return InMemoryHistoryBackend()
    if backend_name == "postgres":
        database_url = settings.resolved_database_url()
        if not database_url:
            raise RuntimeError(
                "Missing database URL. Set CODESHIFT_DATABASE_URL "
                "or DATABASE_URL before starting the app."
            )
        return PostgresHistoryBackend(database_url)
    raise RuntimeError(f"Unknown history backend: {settings.history_backend!r}")


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    backend_override: HistoryBackend | None,
    gateway_override: ConversionGateway | None,
) -> None:
    if not hasattr(app.state, "store"):
        backend = backend_override or _build_backend(settings)
        backend.migrate()
        app.state.store = HistoryStore(
            backend,
            page_size=settings.history_page_size,
            retention_days=settings.retention_days,
        )

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "conversions"):
        gateway = gateway_override or build_gateway_from_settings(settings)
        app.state.conversions = ConversionService(gateway=gateway, store=app.state.store)


def create_app(
    *,
    history_backend: HistoryBackend | None = None,
    gateway: ConversionGateway | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()

    def _ensure(app: FastAPI) -> None:
        _ensure_runtime_state(
            app,
            settings=settings,
            backend_override=history_backend,
            gateway_override=gateway,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure(app)
        yield

    overridden = history_backend is not None
    app = FastAPI(title=settings.app_name, lifespan=None if overridden else lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if overridden:
        _ensure(app)

    def _store(request: Request) -> HistoryStore:
        if not hasattr(request.app.state, "store"):
            _ensure(request.app)
        return request.app.state.store

    def _service(request: Request) -> ConversionService:
        if not hasattr(request.app.state, "conversions"):
            _ensure(request.app)
        return request.app.state.conversions

    def _session_user(request: Request) -> str | None:
        user_id = request.cookies.get(settings.session_cookie_name)
        return user_id if is_valid_user_id(user_id) else None

    def _require_user(request: Request) -> str:
        user_id = _session_user(request)
        if user_id is None:
            raise HTTPException(status_code=401, detail="No anonymous session; POST /api/session first")
        return user_id

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(_request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("history_api event=persistence_error operation=%s reason=%s", exc.operation, exc)
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "status": f"Database Error: {exc.operation}"},
        )

    @app.get("/", response_class=HTMLResponse)
    def home() -> str:
        return render_homepage(app_name=settings.app_name, tasks=list_tasks())

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/api/tasks", response_model=list[TaskInfo])
    def tasks() -> list[TaskInfo]:
        return [
            TaskInfo(
                kind=task.kind,
                label=task.label,
                description=task.description,
                model_id=with_model(task, settings.llm_model).model_id,
            )
            for task in list_tasks()
        ]

    @app.post("/api/session", response_model=SessionResponse)
    def start_session(request: Request, response: Response) -> SessionResponse:
        existing = _session_user(request)
        identity = AnonymousIdentityProvider(user_id=existing)
        user_id = identity.sign_in_anonymously()
        response.set_cookie(
            settings.session_cookie_name,
            user_id,
            httponly=True,
            samesite="lax",
            max_age=60 * 60 * 24 * 365,
        )
        return SessionResponse(user_id=user_id, created=existing is None)

    @app.delete("/api/session")
    def end_session(response: Response) -> dict[str, bool]:
        response.delete_cookie(settings.session_cookie_name)
        return {"signed_out": True}

    @app.post("/api/convert/{kind}", response_model=ConvertResponse)
    def convert(kind: str, payload: ConvertRequest, request: Request) -> ConvertResponse:
        task = find_task(kind)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Unknown conversion kind: {kind}")
        task = with_model(task, settings.llm_model)

        outcome = _service(request).convert(task, payload.input, user_id=_session_user(request))
        if outcome.error is not None:
            return ConvertResponse(
                kind=task.kind,
                analysis=outcome.analysis,
                error=outcome.error.display(),
                error_type=type(outcome.error).__name__,
            )
        result = outcome.result
        return ConvertResponse(
            kind=task.kind,
            conversions=[item.to_payload() for item in result.items],
            analysis=result.analysis,
            shape=result.shape,
            copy_all=result.joined_output(task.output_key),
            history_id=outcome.history_item.id if outcome.history_item else None,
        )

    @app.get("/api/history", response_model=HistoryPage)
    def history(
        request: Request,
        limit: int | None = Query(default=None, ge=1, le=500),
    ) -> HistoryPage:
        snapshot = _store(request).snapshot(_require_user(request), limit=limit)
        return HistoryPage(items=_history_entries(snapshot.items))

    @app.get("/api/history/stream")
    async def history_stream(
        request: Request,
        limit: int | None = Query(default=None, ge=1, le=500),
        max_events: int | None = Query(default=None, ge=1),
    ) -> StreamingResponse:
        user_id = _require_user(request)
        store = _store(request)
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

        def on_snapshot(snapshot: HistorySnapshot) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, ("history", snapshot))

        def on_error(exc: Exception) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, ("error", exc))

        subscription = await run_in_threadpool(
            store.subscribe, user_id, on_snapshot, limit=limit, on_error=on_error
        )

        async def events():
            sent = 0
            try:
                while True:
                    try:
                        kind, payload = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_S)
                    except asyncio.TimeoutError:
                        if await request.is_disconnected():
                            break
                        yield ": keep-alive\n\n"
                        continue
                    if kind == "error":
                        operation = getattr(payload, "operation", "list")
                        yield _sse_event("error", {"status": f"Database Error: {operation}"})
                        break
                    page = HistoryPage(items=_history_entries(payload.items))
                    yield _sse_event("history", page.model_dump(mode="json"))
                    sent += 1
                    if max_events is not None and sent >= max_events:
                        break
            finally:
                subscription.cancel()

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post("/api/history/import")
    def import_history(documents: list[dict[str, Any]], request: Request) -> dict[str, int]:
        records = _store(request).import_documents(_require_user(request), documents)
        return {"imported": len(records)}

    @app.get("/api/history/{item_id}", response_model=HistoryEntry)
    def history_item(item_id: str, request: Request) -> HistoryEntry:
        item = _store(request).get_item(_require_user(request), item_id)
        if item is None:
            raise HTTPException(status_code=404, detail="History item not found")
        return _history_entry(item)

    @app.delete("/api/history/{item_id}")
    def delete_history_item(item_id: str, request: Request) -> dict[str, bool]:
        removed = _store(request).delete_one(_require_user(request), item_id)
        return {"deleted": removed}

    @app.delete("/api/history")
    def clear_history(request: Request) -> dict[str, int]:
        return {"deleted": _store(request).delete_all(_require_user(request))}

    @app.get("/api/settings", response_model=UserSettings)
    def read_settings(request: Request) -> UserSettings:
        return _store(request).load_settings(_require_user(request))

    @app.put("/api/settings", response_model=UserSettings)
    def update_settings(payload: UserSettings, request: Request) -> UserSettings:
        return _store(request).save_settings(_require_user(request), payload)

    return app


def _history_entry(item: HistoryItem) -> HistoryEntry:
    replayed = replay_item(item)
    return HistoryEntry(
        id=item.id,
        type=item.type,
        input=item.input_text,
        preview=preview(item.input_text),
        analysis=item.analysis,
        timestamp=item.timestamp,
        conversions=[entry.to_payload() for entry in replayed.items],
        legacy=any(entry.legacy for entry in replayed.items),
    )


def _history_entries(items: tuple[HistoryItem, ...] | list[HistoryItem]) -> list[HistoryEntry]:
    return [_history_entry(item) for item in items]


def _sse_event(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


app = create_app()
