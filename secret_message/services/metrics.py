# -*- coding: utf-8 -*-
"""
Service for managing Prometheus metrics.

Each app gets its own CollectorRegistry so repeated create_app() calls (tests,
workers) never collide on metric names.
"""

import os
import time
import uuid
from typing import Optional
from flask import Flask, request, g, current_app, has_app_context
from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import generate_latest


def init_metrics(app: Flask) -> None:
    """Initialize metrics service and the /metrics endpoint."""
    service = MetricsService()
    app.extensions['metrics'] = service

    if service.enabled:
        @app.before_request
        def _start_timer():
            g.metrics_start_time = time.time()

        @app.after_request
        def _record_request(response):
            start = getattr(g, 'metrics_start_time', None)
            duration = time.time() - start if start else 0.0
            service.record_http_request(
                route=request.path,
                method=request.method,
                status_code=response.status_code,
                duration_seconds=duration
            )
            return response

        @app.route("/metrics")
        def metrics():
            return generate_latest(service.registry), 200, {
                'Content-Type': 'text/plain; version=0.0.4; charset=utf-8'}


def get_metrics_service() -> Optional['MetricsService']:
    """Get the metrics service instance from the current app context."""
    if has_app_context():
        return current_app.extensions.get('metrics')
    return None


class MetricsService:
    """Service for managing Prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.enabled = os.environ.get(
            "SM_METRICS_ENABLED",
            "true").lower() == "true"
        self.registry = registry if registry is not None else CollectorRegistry()

        if self.enabled:
            self.http_requests_total = Counter(
                "sm_http_requests_total",
                "Total number of HTTP requests.",
                ["route", "method", "status"],
                registry=self.registry
            )
            self.http_request_duration_seconds = Histogram(
                "sm_http_request_duration_seconds",
                "Duration of HTTP requests in seconds.",
                ["route", "method"],
                registry=self.registry
            )
            self.messages_created_total = Counter(
                "sm_messages_created_total",
                "Total number of messages created.",
                ["source"],
                registry=self.registry
            )
            self.unlocks_total = Counter(
                "sm_unlocks_total",
                "Total number of messages unlocked by payment.",
                ["provider", "via"],
                registry=self.registry
            )
            self.views_denied_total = Counter(
                "sm_views_denied_total",
                "Total number of content views denied because the message disappeared.",
                ["reason"],
                registry=self.registry
            )
            self.rate_limit_hits_total = Counter(
                "sm_rate_limit_hits_total",
                "Total number of rate limit hits.",
                ["scope"],
                registry=self.registry
            )

    def record_http_request(
            self,
            route: str,
            method: str,
            status_code: int,
            duration_seconds: float):
        if self.enabled:
            normalized_route = self._normalize_route(route)
            self.http_requests_total.labels(
                route=normalized_route,
                method=method,
                status=status_code).inc()
            self.http_request_duration_seconds.labels(
                route=normalized_route, method=method).observe(duration_seconds)

    def record_message_created(self, source: str):
        if self.enabled:
            self.messages_created_total.labels(source=source).inc()

    def record_unlock(self, provider: str, via: str):
        if self.enabled:
            self.unlocks_total.labels(provider=provider, via=via).inc()

    def record_view_denied(self, reason: str):
        if self.enabled:
            self.views_denied_total.labels(reason=reason).inc()

    def record_rate_limit_hit(self, scope: str):
        if self.enabled:
            self.rate_limit_hits_total.labels(scope=scope).inc()

    def get_metrics(self) -> str:
        if self.enabled:
            return generate_latest(self.registry).decode('utf-8')
        return ""

    def _normalize_route(self, route: str) -> str:
        parts = route.split('/')
        for i, part in enumerate(parts):
            if part.isdigit():
                parts[i] = '{id}'
                continue
            try:
                uuid.UUID(part)
                parts[i] = '{uuid}'
            except (ValueError, AttributeError):
                pass
        return '/'.join(parts)
