"""FastAPI app: case status catalog, status history and bulk operations."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from visaflow import __version__
from visaflow.audit_context import set_audit_context
from visaflow.auth import require_admin, require_api_key
from visaflow.bulk_api import bulk_router
from visaflow.case_statuses_api import case_statuses_router
from visaflow.config import get_config
from visaflow.db import init_db, session_scope
from visaflow.errors import ConflictError, WorkflowError
from visaflow.logging_config import get_logger, setup_logging
from visaflow.process_statuses_api import process_statuses_router
from visaflow.schemas import ActivityResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    setup_logging(config.get("app", {}).get("log_level", "INFO"))
    db_url = config.get("database", {}).get("url", "sqlite:///./data/visaflow.db")
    echo = config.get("database", {}).get("echo", False)
    init_db(db_url, echo=echo)
    yield


app = FastAPI(title="Visaflow Case Status API", version=__version__, lifespan=lifespan)


class AuditContextMiddleware(BaseHTTPMiddleware):
    """Set correlation_id per request; echo X-Correlation-ID in response.
    The actor is bound later by require_api_key from the API key identity."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_audit_context(correlation_id, None)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


app.add_middleware(AuditContextMiddleware)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.kind})


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.warning("Concurrent update rejected on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=ConflictError.status_code,
        content={"detail": "Case was modified concurrently; retry", "error": ConflictError.kind},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=ConflictError.status_code,
        content={"detail": "Conflicting write; retry", "error": ConflictError.kind},
    )


app.include_router(case_statuses_router)
app.include_router(process_statuses_router)
app.include_router(bulk_router)


@app.get("/health")
def health() -> dict[str, Any]:
    """Liveness and version; db_status indicates DB connectivity."""
    from sqlalchemy import text

    from visaflow.db import get_engine

    db_status = "unknown"
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception:
        db_status = "error"
    return {"status": "ok", "version": __version__, "db_status": db_status}


@app.get("/activity", response_model=list[ActivityResponse])
def list_activity(
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    action: str | None = Query(None),
    user_id: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    actor: str = Depends(require_api_key),
) -> list[ActivityResponse]:
    """Activity log, newest first (admin only)."""
    from visaflow.activity import list_activity as _list_activity

    with session_scope() as session:
        require_admin(session, actor)
        rows = _list_activity(
            session,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            user_id=user_id,
            limit=limit,
        )
        return [ActivityResponse.model_validate(r) for r in rows]
