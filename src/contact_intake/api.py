# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory for the contact intake service.

This module provides the HTTP interface of the service:

- ``POST /api/contact``: public intake endpoint
- ``GET /health``: liveness probe (no authentication)
- ``GET /metrics``: Prometheus metrics, protected by ``X-API-Token`` when a
  token is configured

The body of ``POST /api/contact`` is read as raw JSON rather than through a
pydantic model: fields of the wrong type are treated as absent by the
validator, and the response schema is fixed regardless of what was sent.

Example:
    Creating and running the API application::

        from contact_intake.core import IntakeGuard
        from contact_intake.api import create_app

        guard = IntakeGuard.from_config(config)
        app = create_app(guard, api_token="secret-token")

        # Run with uvicorn
        uvicorn.run(app, host="0.0.0.0", port=8000)
"""

import json
import logging
import secrets
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader

from .core import IntakeGuard, IntakeOutcome, internal_error_response
from .identity import client_identity
from .models import ContactResponse

logger = logging.getLogger(__name__)

API_TOKEN_HEADER_NAME = "X-API-Token"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    When no token has been configured through :func:`create_app` the
    dependency is bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or not secrets.compare_digest(api_token, expected):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


def _to_response(outcome: IntakeOutcome) -> JSONResponse:
    headers = {"Retry-After": str(outcome.retry_after)} if outcome.retry_after is not None else None
    return JSONResponse(
        status_code=outcome.status_code,
        content=outcome.response.model_dump(exclude_none=True),
        headers=headers,
    )


def create_app(
    guard: IntakeGuard,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        guard: The intake orchestrator serving ``POST /api/contact``.
        api_token: Optional token required on ``/metrics``.
        lifespan: Optional lifespan context manager for startup/shutdown.

    Returns:
        A configured application ready to be served by Uvicorn.
    """
    api = FastAPI(title="Contact Intake", docs_url=None, redoc_url=None, lifespan=lifespan)
    api.state.api_token = api_token
    api.state.guard = guard

    @api.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception):
        """Hide unexpected failures behind the generic error body."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=internal_error_response().model_dump(exclude_none=True),
        )

    @api.get("/health")
    async def health():
        """Health check endpoint for container monitoring (no authentication required)."""
        return {"status": "ok"}

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics():
        """Expose Prometheus metrics collected by the intake pipeline."""
        return Response(content=guard.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    @api.post(
        "/api/contact",
        response_model=ContactResponse,
        response_model_exclude_none=True,
        responses={400: {"model": ContactResponse}, 429: {"model": ContactResponse}, 500: {"model": ContactResponse}},
    )
    async def contact(request: Request):
        """Accept a contact form submission.

        Returns ``200 {"ok": true}`` both for delivered messages and for
        submissions identified as automated.
        """
        identity = client_identity(request.headers)
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        outcome = await guard.submit(body, identity)
        return _to_response(outcome)

    return api
