# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Rate limiting middleware for API endpoints.
Provides fixed window rate limiting with bounded in-process counters.
"""

import os
import threading
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Optional
import logging

from flask import current_app, g, make_response, request

from services.errors import RateLimitedError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Rate limiter settings."""
    limit: int = 100
    window_seconds: int = 60
    max_keys: int = 10000

    @classmethod
    def from_env(cls) -> "RateLimitConfig":
        return cls(
            limit=int(os.getenv('RATE_LIMIT_REQUESTS', '100')),
            window_seconds=int(os.getenv('RATE_LIMIT_WINDOW_SECONDS', '60')),
            max_keys=int(os.getenv('RATE_LIMIT_MAX_KEYS', '10000'))
        )


@dataclass
class RateLimitDecision:
    """Outcome of one rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: int = 0


class RateLimiter:
    """
    In-memory fixed window rate limiter.

    Counters live in a dictionary keyed by client. Expired windows are swept
    once per window from allow(), and when max_keys is reached the sweep runs
    immediately and the oldest window is evicted if the table is still full.
    """

    def __init__(self, limit: int = 100, window_seconds: int = 60, max_keys: int = 10000,
                 clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self.clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, list] = {}
        self._last_sweep = clock()

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "RateLimiter":
        return cls(config.limit, config.window_seconds, config.max_keys)

    def allow(self, key: str) -> RateLimitDecision:
        """
        Count a request for key.

        Args:
            key: Client identifier

        Returns:
            RateLimitDecision with remaining quota and reset time
        """
        now = self.clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)

            window = self._windows.get(key)
            if window is None or now >= window[0] + self.window_seconds:
                if window is None and len(self._windows) >= self.max_keys:
                    self._make_room(now)
                window = [now, 0]
                self._windows[key] = window

            reset_time = int(window[0] + self.window_seconds)
            if window[1] >= self.limit:
                retry_after = max(1, int(round(window[0] + self.window_seconds - now)))
                return RateLimitDecision(False, self.limit, 0, reset_time, retry_after)

            window[1] += 1
            return RateLimitDecision(True, self.limit, self.limit - window[1], reset_time)

    def sweep(self) -> int:
        """Drop expired windows; returns how many were removed."""
        with self._lock:
            return self._sweep(self.clock())

    def _sweep(self, now: float) -> int:
        expired = [k for k, (start, _) in self._windows.items() if now >= start + self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"Rate limiter swept {len(expired)} expired windows")
        return len(expired)

    def _make_room(self, now: float) -> None:
        self._sweep(now)
        if len(self._windows) >= self.max_keys:
            oldest = min(self._windows, key=lambda k: self._windows[k][0])
            del self._windows[oldest]

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


def get_client_identifier() -> str:
    """Identify the caller by user id when authenticated, by address otherwise."""
    user_context = getattr(g, 'user_context', None)
    if user_context is not None:
        return f"user:{user_context.user_id}"
    return f"ip:{request.remote_addr or 'unknown'}"


def add_rate_limit_headers(response, decision: RateLimitDecision):
    response.headers['X-RateLimit-Limit'] = str(decision.limit)
    response.headers['X-RateLimit-Remaining'] = str(decision.remaining)
    response.headers['X-RateLimit-Reset'] = str(decision.reset_time)
    return response


def rate_limit(endpoint: Optional[str] = None) -> Callable:
    """
    Decorator for rate limiting endpoints with the application's limiter.

    Args:
        endpoint: Custom endpoint identifier, defaults to the Flask endpoint

    Returns:
        Decorator function
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args: Any, **kwargs: Any):
            limiter: Optional[RateLimiter] = current_app.extensions.get('rate_limiter')
            if limiter is None:
                return f(*args, **kwargs)

            endpoint_name = endpoint or request.endpoint or f.__name__
            identifier = get_client_identifier()
            decision = limiter.allow(f"{identifier}:{endpoint_name}")

            if not decision.allowed:
                logger.warning(
                    "Rate limit exceeded",
                    extra={
                        'identifier': identifier,
                        'endpoint': endpoint_name,
                        'limit': decision.limit,
                        'retry_after': decision.retry_after
                    }
                )
                raise RateLimitedError(
                    decision.retry_after,
                    f"Rate limit of {decision.limit} requests per {limiter.window_seconds} seconds exceeded"
                )

            response = make_response(f(*args, **kwargs))
            return add_rate_limit_headers(response, decision)

        return decorated_function
    return decorator
