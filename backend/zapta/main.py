import logging
from contextlib import asynccontextmanager
from time import perf_counter

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from zapta.api.errors import register_error_handlers
from zapta.api.router import api_router
from zapta.config.settings import get_settings, validate_knowledge_settings
from zapta.logging.setup import configure_logging
from zapta.middleware.request_context import RequestContextMiddleware
from zapta.monitoring.metrics import REQUEST_COUNT, REQUEST_LATENCY
from zapta.persistence.migrations import run_migrations

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # Apply DB migrations (non-fatal)
    if settings.app_env != "test":
        try:
            run_migrations()
        except Exception as exc:  # pragma: no cover
            logger.error("DB migration failed, running in degraded mode: %s", exc, exc_info=True)

    for problem in validate_knowledge_settings(settings):
        logger.warning("Knowledge settings: %s", problem)

    yield


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    # CORS: widget and dashboard origins (restrict in production via CORS_ORIGINS)
    if settings.cors_origins.strip():
        allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    else:
        allowed_origins = ["http://localhost:3000", "http://localhost:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Trace-Id"],
    )
    app.add_middleware(RequestContextMiddleware)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start
        route = request.scope.get("route")
        # templated path keeps label cardinality bounded
        path = getattr(route, "path", request.url.path)
        method = request.method
        REQUEST_COUNT.labels(path=path, method=method, status=response.status_code).inc()
        REQUEST_LATENCY.labels(path=path, method=method).observe(elapsed)
        return response

    register_error_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
