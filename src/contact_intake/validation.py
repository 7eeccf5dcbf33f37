# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Structural and anti-automation validation of contact submissions.

The validator turns an untyped JSON body into either a
:class:`NormalizedMessage` or a rejection. Anti-automation checks run first
because they decide whether a failure is answered silently (bots) or with a
visible, actionable message (humans).

Order of checks, first failure wins:
    1. Honeypot field filled -> silent ``honeypot_triggered``
    2. Render timestamp younger than 3 seconds -> silent ``too_fast``
    3. Render timestamp older than 1 hour -> visible ``session_expired``
    4. Name length outside [2, 100] -> visible ``invalid_name``
    5. Email malformed or longer than 254 -> visible ``invalid_email``
    6. Subject longer than 200 -> visible ``subject_too_long``
    7. Message length outside [10, 5000] -> visible ``invalid_message_length``

Fields with the wrong JSON type are treated as absent. A missing or zero
render timestamp skips both timing checks.
"""

from __future__ import annotations

import re
import time
from typing import Any

from .models import (
    Accepted,
    NormalizedMessage,
    RejectedSilent,
    RejectedVisible,
    RejectionCode,
    SilentReason,
    ValidationResult,
)

HONEYPOT_FIELD = "_hp"
TIMESTAMP_FIELD = "_ts"

MIN_SUBMIT_TIME_MS = 3000
MAX_FORM_AGE_MS = 60 * 60 * 1000

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 254
SUBJECT_MAX_LENGTH = 200
MESSAGE_MIN_LENGTH = 10
MESSAGE_MAX_LENGTH = 5000

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DISPLAY_MESSAGES: dict[str, str] = {
    "invalid_payload": "Invalid request data.",
    "session_expired": "Your session has expired. Please reload the page.",
    "name_missing": "Please enter your name.",
    "name_too_long": "Name is too long.",
    "email_invalid": "Please enter a valid email address.",
    "email_too_long": "Email address is too long.",
    "subject_too_long": "Subject is too long.",
    "message_too_short": "Please enter a message (at least 10 characters).",
    "message_too_long": "Message is too long (at most 5000 characters).",
}


def _visible(code: RejectionCode, key: str) -> RejectedVisible:
    return RejectedVisible(code=code, display_message=DISPLAY_MESSAGES[key])


def _text(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    return value.strip() if isinstance(value, str) else ""


def _render_timestamp(body: dict[str, Any]) -> float:
    value = body.get(TIMESTAMP_FIELD)
    # bool is an int subclass but never a valid timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def validate(raw: Any, now: int | None = None) -> ValidationResult:
    """Validate and normalize a raw submission.

    Args:
        raw: Decoded JSON body. Anything other than an object is rejected.
        now: Current time in epoch milliseconds. Defaults to the wall clock.

    Returns:
        ``Accepted`` with the normalized message, ``RejectedSilent`` for bot
        signals, or ``RejectedVisible`` for failures the user can correct.
    """
    if not isinstance(raw, dict):
        return _visible(RejectionCode.INVALID_PAYLOAD, "invalid_payload")

    current = now_ms() if now is None else now

    honeypot = raw.get(HONEYPOT_FIELD)
    if isinstance(honeypot, str) and honeypot:
        return RejectedSilent(SilentReason.HONEYPOT_TRIGGERED)

    rendered_at = _render_timestamp(raw)
    if rendered_at > 0:
        elapsed = current - rendered_at
        if elapsed < MIN_SUBMIT_TIME_MS:
            return RejectedSilent(SilentReason.TOO_FAST)
        if elapsed > MAX_FORM_AGE_MS:
            return _visible(RejectionCode.SESSION_EXPIRED, "session_expired")

    name = _text(raw, "name")
    email = _text(raw, "email")
    subject = _text(raw, "subject")
    message = _text(raw, "message")

    if len(name) < NAME_MIN_LENGTH:
        return _visible(RejectionCode.INVALID_NAME, "name_missing")
    if len(name) > NAME_MAX_LENGTH:
        return _visible(RejectionCode.INVALID_NAME, "name_too_long")

    if not EMAIL_PATTERN.match(email):
        return _visible(RejectionCode.INVALID_EMAIL, "email_invalid")
    if len(email) > EMAIL_MAX_LENGTH:
        return _visible(RejectionCode.INVALID_EMAIL, "email_too_long")

    if len(subject) > SUBJECT_MAX_LENGTH:
        return _visible(RejectionCode.SUBJECT_TOO_LONG, "subject_too_long")

    if len(message) < MESSAGE_MIN_LENGTH:
        return _visible(RejectionCode.INVALID_MESSAGE_LENGTH, "message_too_short")
    if len(message) > MESSAGE_MAX_LENGTH:
        return _visible(RejectionCode.INVALID_MESSAGE_LENGTH, "message_too_long")

    return Accepted(NormalizedMessage(name=name, email=email, subject=subject, message=message))
