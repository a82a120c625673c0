"""
Shared utilities for the Vehicle Cache service.

This package aggregates the common building blocks the service is built on:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request and track correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application scaffolding

Do not import from service packages into shared/.
"""
