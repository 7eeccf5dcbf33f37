# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Core orchestration logic for the contact intake endpoint.

This module provides the IntakeGuard class, which runs every submission
through a fixed pipeline and decides the externally observable response:

    Received -> RateChecked -> Validated -> Classified -> Dispatched | Rejected

1. Rate limiter denial -> 429 with ``Retry-After``; nothing else is consulted
2. Silent validator rejection (honeypot, too fast) -> 200 ``{ok: true}``
3. Visible validator rejection -> 400 with a display message and code
4. Spam verdict -> same as (2)
5. Accepted -> mail dispatched; relay failure -> generic 500

Detected bots always see a success. Reason codes and relay errors go to the
operator log and the metrics, never into the response.

Example:
    Running the guard::

        from contact_intake.config_loader import load_config
        from contact_intake.core import IntakeGuard

        guard = IntakeGuard.from_config(load_config())
        await guard.start()
        outcome = await guard.submit(body, identity="203.0.113.7")
        await guard.stop()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config_loader import IntakeConfig
from .logger import get_logger
from .mailer import MailDispatcher, MailDispatchError, SmtpMailDispatcher, compose_mail
from .models import (
    Accepted,
    ContactResponse,
    RateLimited,
    RejectedSilent,
    RejectedVisible,
    RejectionCode,
    Verdict,
)
from .prometheus import IntakeMetrics
from .rate_limit import RateLimiter, RedisRateStore
from .spam import evaluate
from .validation import validate

RATE_LIMITED_MESSAGE = "Too many requests. Please wait a minute."
SEND_FAILED_MESSAGE = "We could not send your message. Please try again."
INTERNAL_ERROR_MESSAGE = "Something went wrong. Please try again later."


@dataclass(frozen=True)
class IntakeOutcome:
    """Response decided for one submission.

    Attributes:
        status_code: HTTP status to return.
        response: Public JSON body.
        verdict: Internal pipeline verdict, for diagnostics only.
        retry_after: Seconds for the ``Retry-After`` header on 429.
        dispatched: Whether the relay accepted the message.
    """

    status_code: int
    response: ContactResponse
    verdict: Verdict | None = None
    retry_after: int | None = None
    dispatched: bool = False


def internal_error_response() -> ContactResponse:
    return ContactResponse(ok=False, error=INTERNAL_ERROR_MESSAGE, code=RejectionCode.INTERNAL_ERROR)


class IntakeGuard:
    """Central orchestrator for contact submissions.

    Attributes:
        dispatcher: Outbound mail collaborator.
        sender: From address of notifications.
        recipient: Mailbox receiving contact requests.
        rate_limiter: Per-identity admission control.
        metrics: Prometheus metrics collector.
        logger: Logger instance for operator diagnostics.
    """

    def __init__(
        self,
        dispatcher: MailDispatcher,
        *,
        sender: str,
        recipient: str,
        rate_limiter: RateLimiter | None = None,
        metrics: IntakeMetrics | None = None,
        logger=None,
    ):
        self.dispatcher = dispatcher
        self.sender = sender
        self.recipient = recipient
        self.metrics = metrics or IntakeMetrics()
        self.rate_limiter = rate_limiter or RateLimiter(metrics=self.metrics)
        self.logger = logger or get_logger("contact_intake.core")

    @classmethod
    def from_config(cls, config: IntakeConfig, metrics: IntakeMetrics | None = None) -> IntakeGuard:
        """Wire the SMTP dispatcher and rate limiter described by ``config``."""
        metrics = metrics or IntakeMetrics()
        shared_store = None
        if config.redis_url:
            shared_store = RedisRateStore.from_url(
                config.redis_url,
                password=config.redis_password,
                window_seconds=config.rate_window_seconds,
                max_requests=config.rate_max_requests,
            )
        limiter = RateLimiter(
            config.rate_window_seconds,
            config.rate_max_requests,
            shared_store=shared_store,
            store_timeout=config.rate_store_timeout,
            sweep_interval=config.rate_sweep_seconds,
            metrics=metrics,
        )
        dispatcher = SmtpMailDispatcher(
            config.smtp_host,
            config.smtp_port,
            config.smtp_user,
            config.smtp_password,
            use_tls=config.smtp_secure,
            timeout=config.smtp_timeout,
        )
        return cls(
            dispatcher,
            sender=config.contact_from,
            recipient=config.contact_to,
            rate_limiter=limiter,
            metrics=metrics,
        )

    # ----------------------------------------------------------------- lifecycle
    async def start(self) -> None:
        """Start background maintenance (rate limiter sweep)."""
        await self.rate_limiter.start()

    async def stop(self) -> None:
        """Stop background tasks and release the shared rate store."""
        await self.rate_limiter.stop()

    # ------------------------------------------------------------------ pipeline
    def _silent(self, verdict: RejectedSilent, identity: str) -> IntakeOutcome:
        self.logger.info("Silent rejection (%s) for %s", verdict.reason.value, identity)
        self.metrics.inc_silent(verdict.reason.value)
        return IntakeOutcome(200, ContactResponse(ok=True), verdict)

    async def submit(self, raw: Any, identity: str, now_ms: int | None = None) -> IntakeOutcome:
        """Run one submission through the pipeline.

        Args:
            raw: Decoded JSON body, or None when the body was not valid JSON.
            identity: Client key derived from the request headers.
            now_ms: Current time in epoch milliseconds, wall clock if omitted.

        Returns:
            The :class:`IntakeOutcome` to send back.
        """
        decision = await self.rate_limiter.admit(identity)
        if not decision.allowed:
            self.logger.info("Rate limited: %s", identity)
            self.metrics.inc_rate_limited()
            retry_after = decision.retry_after_seconds or 1
            return IntakeOutcome(
                429,
                ContactResponse(ok=False, error=RATE_LIMITED_MESSAGE, code=RejectionCode.RATE_LIMITED),
                RateLimited(retry_after),
                retry_after=retry_after,
            )

        result = validate(raw, now_ms)
        if isinstance(result, RejectedSilent):
            return self._silent(result, identity)
        if isinstance(result, RejectedVisible):
            self.logger.info("Rejected submission (%s) from %s", result.code.value, identity)
            self.metrics.inc_visible(result.code.value)
            return IntakeOutcome(
                400,
                ContactResponse(ok=False, error=result.display_message, code=result.code),
                result,
            )

        spam = evaluate(result.message)
        if spam.is_spam:
            return self._silent(RejectedSilent(spam.reason), identity)

        return await self._dispatch(result, identity)

    async def _dispatch(self, accepted: Accepted, identity: str) -> IntakeOutcome:
        mail = compose_mail(accepted.message, sender=self.sender, recipient=self.recipient)
        try:
            await self.dispatcher.send(mail)
        except MailDispatchError as exc:
            self.logger.error("Contact message from %s could not be sent: %s", identity, exc)
            self.metrics.inc_dispatch_error()
            return IntakeOutcome(
                500,
                ContactResponse(ok=False, error=SEND_FAILED_MESSAGE, code=RejectionCode.SEND_FAILED),
                accepted,
            )
        self.logger.info("Contact message from %s dispatched", identity)
        self.metrics.inc_dispatched()
        return IntakeOutcome(200, ContactResponse(ok=True), accepted, dispatched=True)
