import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError

from coordinator.api.agents import router as agents_router
from coordinator.api.channel import router as channel_router
from coordinator.api.commands import router as commands_router
from coordinator.api.health import router as health_router
from coordinator.api.tasks import router as tasks_router
from coordinator.config import get_settings
from coordinator.errors import StoreUnavailable, ValidationError
from coordinator.observability.logging import configure_logging
from coordinator.observability.middleware import RequestContextMiddleware
from coordinator.storage.database import init_db
from coordinator.storage.ephemeral import build_ephemeral_store

configure_logging()
settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("[Coordinator] Starting agent coordinator...")
    await init_db()
    logger.info("[Coordinator] Database initialized")

    app.state.ephemeral_store = build_ephemeral_store(settings.redis_url)
    if not settings.sender_tokens:
        logger.warning("[Coordinator] SENDER_TOKENS is empty, every authenticated call will be rejected")

    yield

    if app.state.ephemeral_store is not None:
        await app.state.ephemeral_store.close()
    logger.info("[Coordinator] Shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Task queue, command mailbox and liveness tracking for autonomous agents",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    content = {"detail": exc.detail}
    if exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    return JSONResponse(
        status_code=400,
        content={"detail": first.get("msg", "Invalid request"), "field": field, "errors": jsonable_errors(errors)},
    )


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("store_unavailable", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "store unavailable"})


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def database_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("database_unavailable", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "store unavailable"})


def jsonable_errors(errors: list[dict]) -> list[dict]:
    """Drop the non-serializable ctx/input members pydantic attaches to errors."""
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in errors]


app.include_router(health_router)
app.include_router(tasks_router)
app.include_router(agents_router)
app.include_router(commands_router)
app.include_router(channel_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs",
    }
