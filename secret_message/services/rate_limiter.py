# -*- coding: utf-8 -*-
"""
Rate Limiting Service for the partner widget API.

Two tiers guard widget message creation, both on a sliding one-minute window:
- per client IP (Config.WIDGET_IP_LIMIT)
- per partner id (Config.WIDGET_PARTNER_LIMIT)

Counters live in memory by default. When RATELIMIT_STORAGE_URI is set, or
REDIS_URL answers a ping, they live in that shared store instead.
"""
import math
import os
import time

from flask import jsonify, request
from flask_limiter import Limiter
from flask_limiter.errors import RateLimitExceeded
from flask_limiter.util import get_remote_address

from secret_message.config import Config
from secret_message.infra.log import get_logger
from secret_message.services.metrics import get_metrics_service
from secret_message.services.request_context import get_request_id

logger = get_logger(__name__)

DEFAULT_RETRY_AFTER = 60

limiter = Limiter(
    key_func=get_remote_address,
    strategy="moving-window",
    headers_enabled=True,
)


def partner_id_from_request():
    """Partner id from the URL, else from the JSON body."""
    view_args = request.view_args or {}
    if view_args.get("partner_id"):
        return str(view_args["partner_id"])
    payload = request.get_json(silent=True) or {}
    if isinstance(payload, dict) and payload.get("partner_id"):
        return str(payload["partner_id"])
    return None


def partner_rate_key() -> str:
    return f"partner:{partner_id_from_request()}"


def no_partner_id() -> bool:
    return partner_id_from_request() is None


widget_ip_limit = limiter.shared_limit(Config.WIDGET_IP_LIMIT, scope="widget-ip")
widget_partner_limit = limiter.shared_limit(
    Config.WIDGET_PARTNER_LIMIT,
    scope="widget-partner",
    key_func=partner_rate_key,
    exempt_when=no_partner_id,
)


def _retry_after_seconds() -> int:
    current = limiter.current_limit
    if current is None or not getattr(current, "reset_at", None):
        return DEFAULT_RETRY_AFTER
    return max(1, int(math.ceil(current.reset_at - time.time())))


def rate_limit_exceeded_handler(e: RateLimitExceeded):
    """JSON body plus Retry-After for any breached limit."""
    retry_after = _retry_after_seconds()
    scope = getattr(getattr(e, "limit", None), "scope", None) or "default"

    logger.log_rate_limit_event(scope, remote_addr=get_remote_address(), path=request.path)
    metrics = get_metrics_service()
    if metrics:
        metrics.record_rate_limit_hit(scope)

    resp = jsonify({
        "error": "rate_limit_exceeded",
        "message": "Too many requests. Please try again later.",
        "retry_after": retry_after,
        "request_id": get_request_id(),
    })
    resp.status_code = 429
    resp.headers["Retry-After"] = str(retry_after)
    return resp


def _storage_uri(app) -> str:
    explicit = app.config.get("RATELIMIT_STORAGE_URI") or os.environ.get("RATELIMIT_STORAGE_URI")
    if explicit:
        return explicit

    redis_url = os.environ.get("REDIS_URL")
    if not redis_url:
        return "memory://"

    try:
        import redis
        r = redis.from_url(redis_url, socket_connect_timeout=2)
        r.ping()
        app.logger.info(f"Rate limiter using Redis: {redis_url}")
        return redis_url
    except Exception as e:
        app.logger.warning(f"Redis unavailable ({e}), using in-memory storage for rate limiting")
        return "memory://"


def init_rate_limiter(app) -> Limiter:
    """Bind the module limiter to ``app`` and install the 429 handler."""
    app.config["RATELIMIT_STORAGE_URI"] = _storage_uri(app)
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)
    app.config.setdefault("RATELIMIT_HEADER_RETRY_AFTER_VALUE", "delta-seconds")
    limiter.init_app(app)
    app.register_error_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    return limiter
