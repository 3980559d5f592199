# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the courier transports.

All metrics use the ``gmc_`` prefix and live in a private registry so that
several courier instances (and tests) do not collide.

Metrics exposed:
    - ``gmc_tcp_requests_total``: framed TCP exchanges per pattern and outcome.
    - ``gmc_tcp_frame_bytes_total``: framed bytes per direction.
    - ``gmc_publish_total``: published events per event type and outcome.
    - ``gmc_send_attempts_total``: attempts made by the retry orchestrator.
    - ``gmc_send_exhausted_total``: sends that failed on every attempt.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest


class CourierMetrics:
    """Prometheus metrics collector for transports, publishers and retries.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.tcp_requests = Counter(
            "gmc_tcp_requests_total",
            "Framed TCP exchanges",
            ["pattern", "outcome"],
            registry=self.registry,
        )
        self.frame_bytes = Counter(
            "gmc_tcp_frame_bytes_total",
            "Framed bytes transferred",
            ["direction"],
            registry=self.registry,
        )
        self.publishes = Counter(
            "gmc_publish_total",
            "Published events",
            ["event_type", "outcome"],
            registry=self.registry,
        )
        self.attempts = Counter(
            "gmc_send_attempts_total",
            "Send attempts made by the retry orchestrator",
            ["operation"],
            registry=self.registry,
        )
        self.exhausted = Counter(
            "gmc_send_exhausted_total",
            "Sends that failed on every attempt",
            ["operation"],
            registry=self.registry,
        )

    def inc_request(self, pattern: str, outcome: str) -> None:
        self.tcp_requests.labels(pattern=pattern or "unknown", outcome=outcome).inc()

    def add_frame_bytes(self, direction: str, size: int) -> None:
        self.frame_bytes.labels(direction=direction).inc(size)

    def inc_publish(self, event_type: str, outcome: str) -> None:
        self.publishes.labels(event_type=event_type or "unknown", outcome=outcome).inc()

    def inc_attempt(self, operation: str) -> None:
        self.attempts.labels(operation=operation).inc()

    def inc_exhausted(self, operation: str) -> None:
        self.exhausted.labels(operation=operation).inc()

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
