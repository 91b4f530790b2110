import asyncio
from datetime import datetime, timezone
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from hrportal.db import SessionLocal, engine
from hrportal.errors import HTTP_ERROR_CODES, ApiError, error_response
from hrportal.logging_utils import setup_json_logging
from hrportal.realtime import manager
from hrportal.routers import admin, announcements, attendance, auth, messages, projects, requests, shifts, users
from hrportal.scheduler import HousekeepingScheduler
from hrportal.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from hrportal.services.users import ensure_default_admin, validate_authentication_system
from hrportal.settings import get_cors_origins, get_settings

settings = get_settings()
setup_json_logging(settings.log_level)
logger = logging.getLogger("hrportal.request")
startup_logger = logging.getLogger("hrportal.startup")


app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id
    request.state.actor = getattr(request.state, "actor", "anonymous")
    request.state.actor_id = getattr(request.state, "actor_id", None)

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
                "actor": getattr(request.state, "actor", "anonymous"),
                "actor_id": getattr(request.state, "actor_id", None),
                "flags": getattr(request.state, "flags", None),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    status_code = exc.status_code
    code = HTTP_ERROR_CODES.get(status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=status_code,
        code=code,
        message=message,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=str(exc.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(attendance.router)
app.include_router(requests.router)
app.include_router(shifts.router)
app.include_router(messages.router)
app.include_router(announcements.router)
app.include_router(projects.router)
app.include_router(admin.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


def _bootstrap_authentication() -> dict[str, Any]:
    with SessionLocal() as db:
        setup = ensure_default_admin(db)
        report = validate_authentication_system(db)
    report["default_admin"] = {"success": setup.success, "message": setup.message}
    return report


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        startup_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    startup_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.on_event("startup")
async def bootstrap_authentication() -> None:
    try:
        report = await asyncio.to_thread(_bootstrap_authentication)
    except SQLAlchemyError:
        startup_logger.exception("auth_bootstrap_failed")
        return
    if report["ok"]:
        startup_logger.info("auth_bootstrap_ok", extra=report)
    else:
        startup_logger.warning("auth_bootstrap_issues", extra=report)


@app.on_event("startup")
async def start_scheduler() -> None:
    if not settings.scheduler_enabled:
        return
    if getattr(app.state, "scheduler", None) is not None:
        return
    scheduler = HousekeepingScheduler()
    scheduler.start()
    app.state.scheduler = scheduler


@app.on_event("shutdown")
async def stop_scheduler() -> None:
    scheduler: HousekeepingScheduler | None = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        await scheduler.stop()
    app.state.scheduler = None


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    scheduler: HousekeepingScheduler | None = getattr(app.state, "scheduler", None)
    return {
        "status": "ok",
        "schema_guard": schema_guard_result.to_dict(),
        "scheduler_running": bool(scheduler and scheduler.running),
        "realtime_connections": len(manager.connected_user_ids()),
    }
