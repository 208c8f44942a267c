"""
Community API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise the DB engine and session factory, create tables
  3. Initialise the MinIO client & bucket
  4. Build the SMTP mailer
  5. Connect to Redis for rate limiting (optional)
  6. Expose Prometheus /metrics endpoint
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from community_api.clients.email_client import Mailer
from community_api.clients.media_store import MediaStore
from community_api.clients.redis_client import RateLimiter, connect_redis
from community_api.config import Settings, get_settings
from community_api.database import build_engine, build_session_factory, init_db
from community_api.dependencies import enforce_rate_limit
from community_api.errors import ApiError
from community_api.routers import auth, comments, likes, notifications, posts, users
from community_api.telemetry import instrument_app, instrument_engine, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, errors: Optional[list] = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=body)


def _field_errors(exc: RequestValidationError) -> list[dict]:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        message = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
        fields.append({"field": ".".join(loc) or "request", "message": message})
    return fields


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return _error(exc.status_code, exc.message, exc.errors)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, "Validation failed", _field_errors(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return _error(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    media_store: Optional[MediaStore] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    settings = settings or get_settings()

    if settings.otel_enabled:
        # Set up tracing before the app is created so all requests are instrumented
        setup_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown of all external connections."""
        logger.info("Starting Community API (env=%s)", settings.environment)

        engine = build_engine(settings)
        if settings.otel_enabled:
            instrument_engine(engine)
        await init_db(engine)
        app.state.engine = engine
        app.state.session_factory = build_session_factory(engine)

        if media_store is None:
            store = MediaStore.from_settings(settings)
            store.ensure_bucket()  # boto3 is synchronous
            app.state.media_store = store
        else:
            app.state.media_store = media_store
        app.state.mailer = mailer or Mailer.from_settings(settings)

        redis = connect_redis(settings)
        app.state.rate_limiter = (
            RateLimiter(redis, settings.rate_limit_window_seconds, settings.rate_limit_max_requests)
            if redis is not None
            else None
        )

        logger.info("All services connected. API ready.")
        yield

        logger.info("Shutting down...")
        if redis is not None:
            await redis.aclose()
        await engine.dispose()

    app = FastAPI(
        title="Community API",
        description="Photo-sharing social network: follows, posts, comments, likes and notifications.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    register_exception_handlers(app)

    # ── Routers ────────────────────────────────────────────────────────────
    prefix = settings.api_prefix
    limited = [Depends(enforce_rate_limit)]
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Auth"], dependencies=limited)
    app.include_router(posts.router, prefix=f"{prefix}/posts", tags=["Posts"], dependencies=limited)
    app.include_router(likes.router, prefix=f"{prefix}/likes", tags=["Likes"], dependencies=limited)
    app.include_router(comments.router, prefix=f"{prefix}/comments", tags=["Comments"], dependencies=limited)
    app.include_router(
        notifications.router, prefix=f"{prefix}/notifications", tags=["Notifications"], dependencies=limited
    )
    app.include_router(users.router, prefix=f"{prefix}/users", tags=["Users"], dependencies=limited)

    # ── Prometheus metrics endpoint ────────────────────────────────────────
    app.mount("/metrics", make_asgi_app())

    # ── OTel FastAPI instrumentation ──────────────────────────────────────
    if settings.otel_enabled:
        instrument_app(app)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "service": settings.service_name}

    return app


app = create_app()
