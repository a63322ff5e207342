"""
Age check relay service.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService, format_iso
from shared.config import ServiceConfig
from shared.errors import BadParameterError
from service_relay.app.admission.filter import AdmissionFilter, AdmissionMiddleware, AllowList
from service_relay.app.domain.error_translator import error_response, translate_error
from service_relay.app.ratelimit.cooldown import CooldownGate
from service_relay.app.resolver.user_resolver import UserResolver
from service_relay.app.session.manager import SessionManager

USERNAME_REQUIRED_MESSAGE = "Username query parameter is required and must be a string"


class RelayService(BaseService):
    """Relay service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        session: Optional[SessionManager] = None,
        cooldown: Optional[CooldownGate] = None,
    ):
        super().__init__("relay", config)

        self.session = session or SessionManager(self.config)
        self.cooldown = cooldown or CooldownGate(self.config.cooldown_ms, metrics=self.metrics)
        self.resolver = UserResolver(
            self.session,
            self.cooldown,
            page_size=self.config.search_page_size,
            metrics=self.metrics,
        )

        self._setup_relay_routes()
        self.app.state.relay_service = self

    def _setup_middleware(self):
        """Install admission inside the request-context middleware."""
        exempt_paths = list(self.config.admission_exempt_paths)
        if self.config.enable_metrics_endpoint:
            exempt_paths.append("/metrics")
        self.admission_filter = AdmissionFilter(
            AllowList.from_values(
                self.config.allowed_user_agents,
                self.config.allowed_unity_versions,
                self.config.allowed_called_from,
            ),
            exempt_paths=exempt_paths,
        )

        # Added first so it sits inside the request-context middleware.
        self.app.add_middleware(
            AdmissionMiddleware,
            admission_filter=self.admission_filter,
            render_error=error_response,
            metrics=self.metrics,
        )
        super()._setup_middleware()

    async def startup(self) -> None:
        """Log in before the server starts accepting requests."""
        self.logger.info("Initializing VRChat client...")
        try:
            await self.session.initialize()
        except Exception as exc:
            translated = translate_error(exc)
            self.logger.critical(
                "Failed to initialize VRChat client",
                status_code=translated.status_code,
                error=translated.message,
                error_type=translated.error_type,
            )
            raise

        base_url = f"http://localhost:{self.config.port}"
        self.logger.info(
            "Relay ready",
            authenticated_user=self.session.get_current_identity(),
            health_url=f"{base_url}/health",
            check_url=f"{base_url}/checkAdultStatus?username=DISPLAYNAME",
        )

    async def shutdown(self) -> None:
        await self.session.close()

    def _setup_relay_routes(self):
        """Set up relay-specific routes."""

        @self.app.get("/checkAdultStatus")
        async def check_adult_status(request: Request):
            """Report whether the account with the exact display name is verified 18+."""
            # Query param is still called "username" for client compatibility.
            values = request.query_params.getlist("username")
            if len(values) != 1 or not values[0]:
                return error_response(BadParameterError(USERNAME_REQUIRED_MESSAGE))

            try:
                result = await self.resolver.resolve_adult_status(values[0])
            except Exception as exc:
                translated = translate_error(exc)
                self.logger.warning(
                    "Adult status check failed",
                    status_code=translated.status_code,
                    kind=translated.kind.value,
                    error=translated.message,
                    reason=getattr(exc, "reason", None),
                )
                self.metrics.record_error(translated.kind.value)
                return translated.to_response()

            return JSONResponse(status_code=200, content=result.to_response().model_dump(by_alias=True))

    async def _check_health(self) -> Tuple[int, Dict[str, Any]]:
        timestamp = format_iso(datetime.now(timezone.utc))
        if not self.session.is_ready():
            error = self.session.get_initialization_error()
            return 503, {
                "status": "unhealthy",
                "timestamp": timestamp,
                "error": str(error) if error else "VRChat client not initialized",
                "vrchatClientReady": False,
            }

        return 200, {
            "status": "healthy",
            "timestamp": timestamp,
            "vrchatClientReady": True,
            "authenticatedUser": self.session.get_current_identity(),
        }

    def _error_response(self, exc: Exception) -> JSONResponse:
        return error_response(exc)


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = RelayService(config)
    return service.app


def main() -> None:
    """Console entry point; uvicorn exits non-zero when login or binding fails."""
    RelayService().run()


if __name__ == "__main__":
    main()
