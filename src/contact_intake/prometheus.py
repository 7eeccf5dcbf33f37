# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for monitoring the contact intake endpoint.

This module defines the Prometheus counters used to track intake outcomes.
All metrics use the ``contact_`` prefix. Reason and code labels are internal
diagnostics and are exposed only on the operator-facing ``/metrics`` route.

Metrics exposed:
    - ``contact_dispatched_total``: Counter of messages handed to the relay.
    - ``contact_dispatch_errors_total``: Counter of relay failures.
    - ``contact_silent_rejections_total``: Counter of bot/spam detections per reason.
    - ``contact_visible_rejections_total``: Counter of user-correctable failures per code.
    - ``contact_rate_limited_total``: Counter of 429 responses.
    - ``contact_rate_store_fallbacks_total``: Counter of shared-store fallbacks.
"""

from prometheus_client import CollectorRegistry, Counter, generate_latest


class IntakeMetrics:
    """Prometheus metrics collector for the intake pipeline.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        dispatched: Counter of successful relay hand-offs.
        dispatch_errors: Counter of relay failures.
        silent_rejections: Counter labelled by detection reason.
        visible_rejections: Counter labelled by rejection code.
        rate_limited: Counter of rate-limit denials.
        store_fallbacks: Counter of shared-store fallbacks to local limiting.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics with an optional custom registry.

        Args:
            registry: Optional Prometheus CollectorRegistry. A new registry is
                created when omitted, so tests can build isolated instances.
        """
        self.registry = registry or CollectorRegistry()
        self.dispatched = Counter(
            "contact_dispatched_total",
            "Total contact messages dispatched to the relay",
            registry=self.registry,
        )
        self.dispatch_errors = Counter(
            "contact_dispatch_errors_total",
            "Total relay dispatch failures",
            registry=self.registry,
        )
        self.silent_rejections = Counter(
            "contact_silent_rejections_total",
            "Total submissions answered with a fabricated success",
            ["reason"],
            registry=self.registry,
        )
        self.visible_rejections = Counter(
            "contact_visible_rejections_total",
            "Total submissions rejected with a visible error",
            ["code"],
            registry=self.registry,
        )
        self.rate_limited = Counter(
            "contact_rate_limited_total",
            "Total rate limited submissions",
            registry=self.registry,
        )
        self.store_fallbacks = Counter(
            "contact_rate_store_fallbacks_total",
            "Total fallbacks from the shared rate store to local limiting",
            registry=self.registry,
        )

    def inc_dispatched(self) -> None:
        self.dispatched.inc()

    def inc_dispatch_error(self) -> None:
        self.dispatch_errors.inc()

    def inc_silent(self, reason: str) -> None:
        """Increment the silent-rejection counter for ``reason``."""
        self.silent_rejections.labels(reason=reason or "unknown").inc()

    def inc_visible(self, code: str) -> None:
        """Increment the visible-rejection counter for ``code``."""
        self.visible_rejections.labels(code=code or "unknown").inc()

    def inc_rate_limited(self) -> None:
        self.rate_limited.inc()

    def inc_store_fallback(self) -> None:
        self.store_fallbacks.inc()

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
