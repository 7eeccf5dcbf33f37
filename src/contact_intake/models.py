# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Data models shared by the intake pipeline.

This module defines the values that flow between the validator, the spam
classifier, the rate limiter and the orchestrator, plus the pydantic schema
of the public HTTP response.

Models:
    - SilentReason: Internal codes for detections answered with a fake success
    - RejectionCode: Codes for user-correctable failures shown to the caller
    - NormalizedMessage: Validated, trimmed contact message
    - Accepted / RejectedVisible / RejectedSilent / RateLimited: Verdict variants
    - SpamVerdict: Result of the heuristic classifier
    - OutboundMail: Message handed to the mail dispatcher
    - ContactResponse: JSON body returned by ``POST /api/contact``
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Union

from pydantic import BaseModel, ConfigDict, Field


class SilentReason(str, Enum):
    """Detection reasons that are never disclosed to the caller.

    Attributes:
        HONEYPOT_TRIGGERED: The hidden honeypot field was filled.
        TOO_FAST: The form was submitted less than 3 seconds after rendering.
        TOO_MANY_URLS: The message body carries more than 3 links.
        SPAM_KEYWORDS: A denylisted phrase appears in the submission.
        EXCESSIVE_CAPS: The message body is mostly uppercase.
        REPEATED_CHARS: A character is repeated 7 or more times in a row.
        SUSPICIOUS_EMAIL_DOMAIN: The sender uses a disposable mail domain.
    """

    HONEYPOT_TRIGGERED = "honeypot_triggered"
    TOO_FAST = "too_fast"
    TOO_MANY_URLS = "too_many_urls"
    SPAM_KEYWORDS = "spam_keywords"
    EXCESSIVE_CAPS = "excessive_caps"
    REPEATED_CHARS = "repeated_chars"
    SUSPICIOUS_EMAIL_DOMAIN = "suspicious_email_domain"


class RejectionCode(str, Enum):
    """Machine-readable codes returned next to a visible display message."""

    INVALID_PAYLOAD = "invalid_payload"
    SESSION_EXPIRED = "session_expired"
    INVALID_NAME = "invalid_name"
    INVALID_EMAIL = "invalid_email"
    SUBJECT_TOO_LONG = "subject_too_long"
    INVALID_MESSAGE_LENGTH = "invalid_message_length"
    RATE_LIMITED = "rate_limited"
    SEND_FAILED = "send_failed"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class NormalizedMessage:
    """A contact message that passed every structural check.

    All fields are already trimmed. ``subject`` is an empty string when the
    caller did not provide one.
    """

    name: str
    email: str
    message: str
    subject: str = ""

    @property
    def email_domain(self) -> str:
        """Lowercase part of the address after the first ``@``."""
        _, _, domain = self.email.partition("@")
        return domain.lower()


@dataclass(frozen=True)
class Accepted:
    message: NormalizedMessage


@dataclass(frozen=True)
class RejectedVisible:
    code: RejectionCode
    display_message: str


@dataclass(frozen=True)
class RejectedSilent:
    reason: SilentReason


@dataclass(frozen=True)
class RateLimited:
    retry_after_seconds: int


Verdict = Union[Accepted, RejectedVisible, RejectedSilent, RateLimited]
ValidationResult = Union[Accepted, RejectedVisible, RejectedSilent]


@dataclass(frozen=True)
class SpamVerdict:
    """Binary outcome of the classifier; ``reason`` is for diagnostics only."""

    is_spam: bool
    reason: SilentReason | None = None


@dataclass(frozen=True)
class OutboundMail:
    """Fully composed message ready for the SMTP relay."""

    sender: str
    recipient: str
    reply_to: str
    subject: str
    text_body: str
    html_body: str


class ContactResponse(BaseModel):
    """Body of every ``POST /api/contact`` response.

    Attributes:
        ok: True for accepted and silently rejected submissions.
        error: Display message for the caller, absent on success.
        code: Machine-readable failure code, absent on success.
    """

    model_config = ConfigDict(use_enum_values=True)

    ok: bool
    error: Annotated[
        str | None,
        Field(default=None, description="Display message for the caller")
    ]
    code: Annotated[
        RejectionCode | None,
        Field(default=None, description="Machine-readable failure code")
    ]
