# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

This module provides a pre-configured FastAPI application that reads the
configuration at import time and wires the IntakeGuard. Missing relay
settings abort the import with ``ConfigurationError``, so a misconfigured
process never starts serving.

Usage:
    uvicorn contact_intake.server:app --host 0.0.0.0 --port 8000

Environment variables:
    CONTACT_CONFIG: Optional path to an INI configuration file.
    CONTACT_LOG_LEVEL: Logging level (default: INFO).
    SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, CONTACT_TO: Required relay
        settings. See ``contact_intake.config_loader`` for the full list.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import create_app
from .config_loader import load_config
from .core import IntakeGuard
from .logger import configure_logging

configure_logging(os.environ.get("CONTACT_LOG_LEVEL", "INFO"))
_logger = logging.getLogger(__name__)

_config = load_config()
_guard = IntakeGuard.from_config(_config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler - starts and stops the intake guard."""
    _logger.info(
        "Starting contact intake (relay %s:%s, shared rate store: %s)",
        _config.smtp_host,
        _config.smtp_port,
        "yes" if _config.redis_url else "no",
    )
    await _guard.start()
    try:
        yield
    finally:
        _logger.info("Stopping contact intake...")
        await _guard.stop()


app = create_app(_guard, api_token=_config.api_token, lifespan=lifespan)
