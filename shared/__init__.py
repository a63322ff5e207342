"""
Shared utilities for the Age Check Relay.

This package aggregates common building blocks consumed by the relay service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Failure taxonomy and error response body
- base_service: FastAPI service skeleton (health, metrics, middleware)

Do not import from service_* packages into shared/.
"""
