from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.db import db_health, init_db
from app.core.logging import configure_logging, emit
from app.core.settings import Settings, load_settings
from app.core.storage import ensure_storage_root, storage_health
from app.modules.characters.router import router as characters_router
from app.modules.pages.router import router as pages_router
from app.modules.projects.router import router as projects_router
from app.modules.workflow.deps import Services, build_services
from app.modules.workflow.router import router as workflow_router


# === BATCH-0 OBSERVABILITY FOUNDATIONS (DO NOT EDIT WITHOUT CR) ===
# Contract locks:
# - /health keys: status, version, db, storage, last_error_summary
# - X-Request-Id in/out (missing -> generated; always echoed back; also on errors)
# - Error envelope keys: error, message, request_id, details
def _err_envelope(error: str, message: str, request_id: Optional[str], details: Any, status_code: int):
    headers = {}
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": request_id,
            "details": details,
        },
        headers=headers,
    )


def _install_observability(app: FastAPI) -> None:
    @app.middleware("http")
    async def _request_id_mw(request: Request, call_next):
        rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex.upper()
        request.state.request_id = rid
        emit("info", "http.request.start", f"{request.method} {request.url.path}", rid, __name__)
        try:
            resp = await call_next(request)
        except Exception as e:
            emit("error", "http.request.exception", str(e), rid, __name__)
            raise
        resp.headers["X-Request-Id"] = rid
        emit("info", "http.request.end", f"{request.method} {request.url.path} -> {getattr(resp, 'status_code', None)}", rid, __name__)
        return resp

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
        rid = getattr(request.state, "request_id", None)
        detail = exc.detail
        if isinstance(detail, dict) and "error" in detail:
            return _err_envelope(
                str(detail["error"]),
                str(detail.get("message") or ""),
                rid,
                detail.get("details") or {},
                exc.status_code,
            )
        return _err_envelope("http_error", str(detail), rid, {"status_code": exc.status_code}, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_exc_handler(request: Request, exc: RequestValidationError):
        rid = getattr(request.state, "request_id", None)
        return _err_envelope("validation_error", "request validation failed", rid, exc.errors(), 422)

    @app.exception_handler(Exception)
    async def _unhandled_exc_handler(request: Request, exc: Exception):
        rid = getattr(request.state, "request_id", None)
        request.app.state.last_error_summary = {"type": type(exc).__name__, "message": str(exc)[:300], "request_id": rid}
        emit("error", "http.unhandled", str(exc), rid, __name__, type=type(exc).__name__)
        return _err_envelope("internal_error", "internal server error", rid, {"type": type(exc).__name__}, 500)
# === END BATCH-0 OBSERVABILITY FOUNDATIONS ===


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.db_auto_create:
            init_db(settings.database_url)
        ensure_storage_root(settings.storage_root)
        emit("info", "app.startup", f"version {settings.app_version}", None, __name__)
        yield
        services = app.state.services
        await services.supervisor.shutdown()
        # providers holding an HTTP connection pool expose aclose
        aclose = getattr(services.orchestrator.generator, "aclose", None)
        if aclose is not None:
            await aclose()
        emit("info", "app.shutdown", "bye", None, __name__)

    app = FastAPI(title="Illustration Workflow API", version=settings.app_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services or build_services(settings)
    app.state.last_error_summary = None

    _install_observability(app)

    @app.get("/health")
    def health():
        # Contract keys are locked by BATCH-0
        db = db_health(settings.database_url)
        storage = storage_health(settings.storage_root)
        ok = db.get("status") == "ok" and storage.get("status") == "ok"
        return {
            "status": "ok" if ok else "degraded",
            "version": settings.app_version,
            "db": db,
            "storage": storage,
            "last_error_summary": app.state.last_error_summary,
        }

    app.include_router(projects_router)
    app.include_router(characters_router)
    app.include_router(pages_router)
    app.include_router(workflow_router)
    return app


app = create_app()
