"""
Base service class for Age Check Relay services.
"""

import asyncio
import os
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import ServiceConfig, get_config
from shared.errors import ErrorResponse
from shared.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from shared.metrics import get_metrics_collector


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.config = config or get_config(service_name)

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)

        self.app = self._create_app()

        if self.config.enable_tracing:
            from shared.tracing import configure_tracing
            configure_tracing(
                service_name,
                self.app,
                self.config.otel_exporter,
                self.config.enable_console_tracing,
            )

        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Age Check Relay - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        if self.config.exit_on_unhandled_error:
            install_fatal_error_handlers(self.logger)
        await self.startup()
        try:
            yield
        finally:
            await self.shutdown()

    async def startup(self) -> None:
        """Hook run before the server accepts requests. Override in subclasses."""

    async def shutdown(self) -> None:
        """Hook run when the server stops. Override in subclasses."""

    def _setup_middleware(self):
        """Set up middleware."""

        @self.app.middleware("http")
        async def add_request_context(request: Request, call_next):
            request_id = bind_request_context(
                request.headers.get("x-request-id"),
                request.query_params.get("calledfrom") or request.headers.get("x-called-from"),
            )
            start_time = time.time()

            try:
                response = await call_next(request)
                duration = time.time() - start_time

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2),
                    client_ip=request.client.host if request.client else "unknown",
                    user_agent=request.headers.get("user-agent"),
                    query=dict(request.query_params),
                )

                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_request_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            status_code, payload = await self._check_health()
            self.metrics.record_health_check("ok" if status_code == 200 else "error")
            return JSONResponse(status_code=status_code, content=payload)

        if self.config.enable_metrics_endpoint:
            @self.app.get("/metrics")
            async def metrics_endpoint():
                """Prometheus metrics endpoint."""
                from prometheus_client import CONTENT_TYPE_LATEST
                return Response(
                    content=self.metrics.render_latest(),
                    media_type=CONTENT_TYPE_LATEST
                )

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Render routing errors without revealing which routes exist."""
            message = "Not found" if exc.status_code in (404, 405) else str(exc.detail)
            status_code = 404 if exc.status_code == 405 else exc.status_code
            return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).to_body())

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error(type(exc).__name__)
            return self._error_response(exc)

    async def _check_health(self) -> Tuple[int, Dict[str, Any]]:
        """Return the health status code and body. Override in subclasses."""
        return 200, {
            "service": self.service_name,
            "status": "healthy",
            "timestamp": format_iso(datetime.now(timezone.utc)),
        }

    def _error_response(self, exc: Exception) -> JSONResponse:
        """Render an exception as a response. Override in subclasses."""
        return JSONResponse(status_code=500, content=ErrorResponse(error="Internal server error").to_body())

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )


def format_iso(value: datetime) -> str:
    """Format datetime values as ISO-8601 strings with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def install_fatal_error_handlers(logger) -> None:
    """Terminate the process on uncaught exceptions instead of running on in a corrupt state."""

    def _exit(message: str, error: Optional[BaseException]) -> None:
        logger.critical(message, error=str(error) if error else None, exc_info=error)
        os._exit(1)

    def _excepthook(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        _exit("Uncaught exception", exc_value)

    def _loop_exception_handler(loop, context: Dict[str, Any]):
        _exit(f"Unhandled exception in event loop: {context.get('message')}", context.get("exception"))

    sys.excepthook = _excepthook
    asyncio.get_running_loop().set_exception_handler(_loop_exception_handler)
