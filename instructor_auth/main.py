"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from instructor_auth import __version__
from instructor_auth.api.auth import router as auth_router
from instructor_auth.api.middleware import CorrelationIdMiddleware
from instructor_auth.config import Settings, get_settings
from instructor_auth.services.hashing import SecretHasher
from instructor_auth.services.logging_service import configure_logging, get_logger
from instructor_auth.services.session_service import SessionService
from instructor_auth.services.token_service import TokenIssuer
from instructor_auth.storage.base import IdentityStore
from instructor_auth.storage.memory_store import MemoryIdentityStore
from instructor_auth.storage.redis_store import RedisIdentityStore, create_redis_client


async def build_store(settings: Settings) -> IdentityStore:
    """Create the identity store selected by STORE_BACKEND."""
    if settings.store_backend == "memory":
        return MemoryIdentityStore(key_prefix=settings.key_prefix)
    client = await create_redis_client(settings.redis_url)
    return RedisIdentityStore(client, key_prefix=settings.key_prefix)


def build_session_service(settings: Settings, store: IdentityStore) -> SessionService:
    """Wire hasher, token issuer and store into a session service."""
    return SessionService(
        store=store,
        hasher=SecretHasher.from_settings(settings),
        issuer=TokenIssuer.from_settings(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build one store and session service for the process; close the store on exit."""
    settings = app.state.settings
    configure_logging(settings.log_level)
    logger = get_logger("main")

    store = await build_store(settings)
    service = build_session_service(settings, store)
    app.state.store = store
    app.state.session_service = service
    app.state.token_issuer = service.issuer

    logger.info(
        "application_started",
        store_backend=settings.store_backend,
        log_level=settings.log_level,
    )

    yield

    await store.close()
    logger.info("application_shutdown")


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with the first offending field instead of FastAPI's 422."""
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning("validation_error", correlation_id=correlation_id, detail=detail)

    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


async def health() -> dict:
    """Liveness probe."""
    return {"status": "ok", "version": __version__}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application.

    Settings are resolved here rather than at import, so importing this module
    does not require JWT_SECRET. Serve with ``uvicorn --factory
    instructor_auth.main:create_app``.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Instructor Auth API",
        description="Instructor registration, login and refresh-token rotation.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_api_route("/health", health, methods=["GET"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(auth_router)
    return app
