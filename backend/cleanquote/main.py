import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from cleanquote.api.problem_details import domain_problem, http_problem, server_problem, validation_problem
from cleanquote.api.routes_admin_pricing import router as admin_pricing_router
from cleanquote.api.routes_formulas import router as formulas_router
from cleanquote.api.routes_health import router as health_router
from cleanquote.api.routes_quote import router as quote_router
from cleanquote.domain.errors import DomainError
from cleanquote.domain.pricing import repository
from cleanquote.domain.pricing.config_loader import SnapshotHolder, load_config_snapshot
from cleanquote.infra.db import create_tables, dispose_engine, get_session_factory
from cleanquote.infra.logging import clear_log_context, configure_logging, update_log_context
from cleanquote.infra.metrics import configure_metrics
from cleanquote.settings import settings

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        request_logger = logging.getLogger("cleanquote.request")
        start = time.time()
        request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID")
        if not request_id:
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        update_log_context(request_id=request_id, method=request.method, path=request.url.path)

        response = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.time() - start) * 1000)
            update_log_context(status_code=status_code, latency_ms=latency_ms)
            request_logger.info("request")
            if response is not None:
                response.headers.setdefault("X-Request-ID", request_id)
            clear_log_context()


class MetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: FastAPI, metrics_client) -> None:
        super().__init__(app)
        self.metrics = metrics_client

    async def dispatch(self, request: Request, call_next: Callable):
        route_label = "unmatched"
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            route = request.scope.get("route")
            route_label = getattr(route, "path", route_label)
            duration = time.perf_counter() - start
            self.metrics.record_http_latency(request.method, route_label, status_code, duration)
            if status_code >= 500:
                self.metrics.record_http_5xx(request.method, route_label)
        return response


def _validate_prod_config(app_settings) -> None:
    if app_settings.app_env != "prod":
        return
    errors: list[str] = []
    if app_settings.metrics_enabled:
        token = (app_settings.metrics_token or "").strip()
        if len(token) < 16:
            errors.append("METRICS_ENABLED=true in APP_ENV=prod requires METRICS_TOKEN of at least 16 characters")
    if errors:
        for error in errors:
            logger.error("startup_config_error", extra={"extra": {"detail": error}})
        raise RuntimeError("Invalid production configuration: " + "; ".join(errors))


async def _load_db_snapshot(holder: SnapshotHolder) -> None:
    await create_tables()
    session_factory = get_session_factory()
    async with session_factory() as session:
        snapshot = await repository.load_snapshot_from_db(session, strategies=holder.snapshot.strategies)
    holder.replace(snapshot)


def create_app(app_settings) -> FastAPI:
    configure_logging(service=app_settings.app_name)
    metrics_client = configure_metrics(app_settings.metrics_enabled)
    _validate_prod_config(app_settings)
    holder = SnapshotHolder(load_config_snapshot(app_settings.pricing_config_path))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.app_settings = getattr(app.state, "app_settings", app_settings)
        app.state.metrics = getattr(app.state, "metrics", None) or metrics_client
        app.state.snapshot_holder = getattr(app.state, "snapshot_holder", None) or holder
        if app_settings.pricing_source == "db":
            await _load_db_snapshot(app.state.snapshot_holder)
        yield
        await dispose_engine()

    app = FastAPI(title="CleanQuote", version="1.0.0", lifespan=lifespan)
    app.state.app_settings = app_settings
    app.state.metrics = metrics_client
    app.state.snapshot_holder = holder

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware, metrics_client=metrics_client)
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return validation_problem(request, exc)

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError):
        return domain_problem(request, exc)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return http_problem(request, exc)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        error_type = type(exc).__name__
        update_log_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=500,
            error_type=error_type,
        )
        logger.exception(
            "unhandled_exception",
            extra={"extra": {"path": request.url.path, "error_type": error_type}},
        )
        return server_problem(request)

    app.include_router(health_router)
    app.include_router(quote_router)
    app.include_router(formulas_router)
    app.include_router(admin_pricing_router)
    if app_settings.metrics_enabled:
        from cleanquote.api.routes_metrics import router as metrics_router

        app.include_router(metrics_router)
    return app


app = create_app(settings)
