# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Spam-resistant contact form intake service.

Features:
    - Per-client sliding-window rate limiting (in-process or Redis-backed)
    - Honeypot and form-timing checks against scripted submissions
    - Heuristic spam classification (links, keywords, shouting, repetition, disposable domains)
    - Silent success for detected bots, actionable errors for humans
    - SMTP delivery with HTML-escaped notification bodies
    - Prometheus metrics and a FastAPI HTTP endpoint

Example::

    from contact_intake.config_loader import load_config
    from contact_intake.core import IntakeGuard
    from contact_intake.api import create_app

    guard = IntakeGuard.from_config(load_config())
    app = create_app(guard)
"""

__version__ = "0.1.0"
