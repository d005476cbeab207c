# api/server.py
# ============================================================================
# TASK INTAKE ASSISTANT — FASTAPI SERVER
# ============================================================================
# Task submission, listing and status endpoints plus the chat turn endpoint
# that drives the conversational intake form.
#
# FAILURE HANDLING:
# - Validation errors -> 400 with field-level messages
# - Database unreachable at startup or mid-run -> in-memory task store
# - Model unavailable or slow -> rule-based extractor
# - Chat endpoint never returns an error once the body is valid
# ============================================================================

import logging
import math
import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Depends, Query, Body
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
import structlog

from agents.assistant_bridge import AssistantBridge, get_assistant_bridge
from agents.intake_extractor import generate_rule_based_response
from schemas.task_definitions import (
    ChatRequest,
    TaskCreate,
    TaskRequest,
    TaskStatus,
    TaskStatusUpdate,
)
from services.notifications import NotificationConfig, on_task_submitted
from storage import (
    TaskStore,
    TaskNotFoundError,
    StorageUnavailableError,
    init_task_store,
    get_task_store,
    close_task_store,
)


# =============================================================================
# CONFIGURATION
# =============================================================================

class ServerConfig:
    """Server configuration from environment"""

    # Server
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "5000"))
    ENV = os.getenv("ENV", "development")
    DEBUG = ENV == "development"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # CORS
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
    DEV_ORIGINS = [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
        "http://localhost:8501",
    ]
    CORS_ORIGINS = list(dict.fromkeys([FRONTEND_URL, *DEV_ORIGINS]))

    SERVICE_NAME = "Task Intake Assistant"
    VERSION = "1.0.0"


config = ServerConfig()

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True) if config.DEBUG else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, config.LOG_LEVEL, logging.INFO)),
)
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

logger = structlog.get_logger().bind(component="server")


# =============================================================================
# LIFESPAN MANAGEMENT
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic"""
    logger.info("server_starting", version=config.VERSION, env=config.ENV)

    store = await init_task_store()
    logger.info("task_store_selected", backend=store.name)

    bridge = get_assistant_bridge()
    logger.info(
        "assistant_mode",
        model=bridge.config.model,
        mode="assistant" if bridge.available else "rules_only",
    )

    if not NotificationConfig.from_env().can_send:
        logger.warning("confirmation_email_disabled", reason="EMAIL_ENABLED, SENDGRID_API_KEY or FROM_EMAIL not set")

    yield

    logger.info("server_shutting_down")
    await close_task_store()


# =============================================================================
# FASTAPI APP
# =============================================================================

app = FastAPI(
    title=config.SERVICE_NAME,
    description="Conversational task intake with rule-based fallback",
    version=config.VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# MIDDLEWARE
# =============================================================================

@app.middleware("http")
async def add_timing_header(request: Request, call_next):
    """Add response timing header."""
    start = time.perf_counter()
    response = await call_next(request)
    duration = (time.perf_counter() - start) * 1000
    response.headers["X-Response-Time-Ms"] = f"{duration:.2f}"
    return response


# =============================================================================
# ERROR HANDLING
# =============================================================================

def _field_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic errors to [{field, message}]."""
    result = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        result.append({"field": ".".join(loc) or "body", "message": message})
    return result


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = _field_errors(exc.errors())
    logger.info("validation_failed", path=request.url.path, fields=[e["field"] for e in errors])
    return _error(400, "Validation failed", errors=errors)


@app.exception_handler(TaskNotFoundError)
async def task_not_found_handler(request: Request, exc: TaskNotFoundError):
    return _error(404, "Task request not found")


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
    logger.error("storage_unavailable", path=request.url.path, error=str(exc))
    return _error(503, "Task storage is temporarily unavailable")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error(404, "Route not found", path=request.url.path, method=request.method)
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return _error(
        500,
        "Something went wrong!",
        error=str(exc) if config.DEBUG else "Internal server error",
    )


# =============================================================================
# HELPERS
# =============================================================================

def _client_address(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# =============================================================================
# TASK ENDPOINTS
# =============================================================================

@app.post("/api/tasks", status_code=201)
async def create_task(
    payload: TaskCreate,
    request: Request,
    store: TaskStore = Depends(get_task_store),
):
    """Persist a task request and send the optional confirmation email."""
    task = TaskRequest.from_submission(
        payload,
        ip_address=_client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
    await store.create(task)

    logger.info(
        "task_created",
        task_id=task.id[:8],
        category=task.task_category.value,
        store=store.name,
    )

    # Notification is best effort
    try:
        await on_task_submitted(task)
    except Exception as e:
        logger.warning("task_hook_failed", task_id=task.id[:8], error=str(e))

    return {
        "success": True,
        "message": "Task request submitted successfully",
        "data": task.to_summary(),
    }


@app.get("/api/tasks")
async def list_tasks(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[TaskStatus] = Query(None),
    task_type: Optional[str] = Query(None, alias="taskType"),
    store: TaskStore = Depends(get_task_store),
):
    """Newest first, audit fields stripped."""
    tasks, total = await store.list(page=page, limit=limit, status=status, task_type=task_type)
    return {
        "success": True,
        "data": [task.to_public() for task in tasks],
        "pagination": {
            "current": page,
            "pages": math.ceil(total / limit),
            "total": total,
        },
    }


@app.get("/api/tasks/{task_id}")
async def get_task(task_id: str, store: TaskStore = Depends(get_task_store)):
    task = await store.get(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return {"success": True, "data": task.to_full()}


@app.patch("/api/tasks/{task_id}/status")
async def update_task_status(
    task_id: str,
    payload: Dict[str, Any] = Body(...),
    store: TaskStore = Depends(get_task_store),
):
    """Any updatable status may follow any other."""
    try:
        update = TaskStatusUpdate.model_validate(payload)
    except ValidationError as e:
        return _error(400, "Invalid status value", errors=_field_errors(e.errors()))

    task = await store.update_status(task_id, update.status)
    logger.info("task_status_changed", task_id=task_id[:8], status=task.status.value)

    return {
        "success": True,
        "message": "Task status updated successfully",
        "data": task.to_public(),
    }


# =============================================================================
# CHAT ENDPOINT
# =============================================================================

@app.post("/api/ai/chat")
async def chat(
    payload: ChatRequest,
    bridge: AssistantBridge = Depends(get_assistant_bridge),
):
    """
    One conversational turn.

    Language model when configured, rule-based extractor otherwise. Any
    failure after validation is answered by the extractor.
    """
    start_time = time.perf_counter()

    try:
        result = await bridge.respond(
            payload.message,
            payload.conversation_history,
            payload.conversation_data,
        )
    except Exception as e:
        logger.error("chat_error", error=str(e), error_type=type(e).__name__)
        result = generate_rule_based_response(payload.message, payload.conversation_data)

    logger.info(
        "chat_processed",
        source=result.source,
        ready=result.ready,
        missing=result.missing_fields,
        message_length=len(payload.message),
        history=len(payload.conversation_history),
        latency_ms=round((time.perf_counter() - start_time) * 1000),
    )

    return {"success": True, "data": result.to_wire()}


# =============================================================================
# HEALTH
# =============================================================================

@app.get("/api/health")
async def health_check(
    store: TaskStore = Depends(get_task_store),
    bridge: AssistantBridge = Depends(get_assistant_bridge),
):
    """Liveness probe; always 200."""
    return {
        "status": "OK",
        "message": f"{config.SERVICE_NAME} API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "storage": store.name,
        "assistant": "enabled" if bridge.available else "rules-only",
    }


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    uvicorn.run(
        "api.server:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level="info"
    )
