# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Heuristic spam classifier for contact messages.

The classifier is a pure function over a :class:`NormalizedMessage`. It runs
an ordered list of independent checks and reports the first one that
matches. The result is binary; the reason code only feeds operator logs and
metrics and is never sent back to the submitter.

Checks, in order:
    1. More than 3 links in the message body (``too_many_urls``)
    2. A denylisted phrase anywhere in the submission (``spam_keywords``)
    3. Mostly uppercase body with more than 20 letters (``excessive_caps``)
    4. Any character repeated 7+ times in a row (``repeated_chars``)
    5. Disposable mail domain in the sender address (``suspicious_email_domain``)

Example:
    >>> verdict = evaluate(NormalizedMessage(name="Ann", email="ann@example.com",
    ...                                      message="Hello, I have a question."))
    >>> verdict.is_spam
    False
"""

from __future__ import annotations

import re
from collections.abc import Callable

from .models import NormalizedMessage, SilentReason, SpamVerdict

MAX_URLS = 3
CAPS_MIN_LETTERS = 20
CAPS_MAX_RATIO = 0.7

SPAM_KEYWORDS: tuple[str, ...] = (
    "cryptocurrency", "crypto trading", "bitcoin investment",
    "casino", "gambling", "poker online",
    "viagra", "cialis", "pharmacy",
    "seo service", "backlink", "link building",
    "make money fast", "earn money online", "get rich",
    "nigerian prince", "inheritance", "lottery winner",
    "click here now", "act now", "limited time offer",
    "weight loss", "diet pill",
    "adult content", "xxx", "dating site",
)

SUSPICIOUS_DOMAINS: tuple[str, ...] = (
    "tempmail.com",
    "throwaway.email",
    "10minutemail.com",
    "guerrillamail.com",
)

_URL_PATTERN = re.compile(r"https?://|www\.", re.IGNORECASE)
_UPPER_PATTERN = re.compile(r"[A-Z]")
_LETTER_PATTERN = re.compile(r"[a-zA-Z]")
_REPEAT_PATTERN = re.compile(r"(.)\1{6,}")


def _too_many_urls(msg: NormalizedMessage) -> bool:
    return len(_URL_PATTERN.findall(msg.message)) > MAX_URLS


def _spam_keywords(msg: NormalizedMessage) -> bool:
    full_text = f"{msg.name} {msg.email} {msg.subject} {msg.message}".lower()
    return any(keyword in full_text for keyword in SPAM_KEYWORDS)


def _excessive_caps(msg: NormalizedMessage) -> bool:
    letters = len(_LETTER_PATTERN.findall(msg.message))
    if letters <= CAPS_MIN_LETTERS:
        return False
    upper = len(_UPPER_PATTERN.findall(msg.message))
    return upper / letters > CAPS_MAX_RATIO


def _repeated_chars(msg: NormalizedMessage) -> bool:
    return _REPEAT_PATTERN.search(msg.message) is not None


def _suspicious_domain(msg: NormalizedMessage) -> bool:
    domain = msg.email_domain
    return bool(domain) and any(d in domain for d in SUSPICIOUS_DOMAINS)


SpamCheck = tuple[SilentReason, Callable[[NormalizedMessage], bool]]

CHECKS: tuple[SpamCheck, ...] = (
    (SilentReason.TOO_MANY_URLS, _too_many_urls),
    (SilentReason.SPAM_KEYWORDS, _spam_keywords),
    (SilentReason.EXCESSIVE_CAPS, _excessive_caps),
    (SilentReason.REPEATED_CHARS, _repeated_chars),
    (SilentReason.SUSPICIOUS_EMAIL_DOMAIN, _suspicious_domain),
)


def evaluate(message: NormalizedMessage, checks: tuple[SpamCheck, ...] = CHECKS) -> SpamVerdict:
    """Classify a normalized message.

    Args:
        message: The validated submission.
        checks: Ordered ``(reason, predicate)`` pairs. Defaults to :data:`CHECKS`.

    Returns:
        ``SpamVerdict(True, reason)`` for the first matching check, otherwise
        ``SpamVerdict(False)``.
    """
    for reason, predicate in checks:
        if predicate(message):
            return SpamVerdict(is_spam=True, reason=reason)
    return SpamVerdict(is_spam=False)
