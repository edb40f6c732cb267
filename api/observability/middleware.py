"""
Request instrumentation.

Attaches Flask auto-instrumentation and logs one structured line per request
with the trace id, so logs and spans can be correlated.
"""

import time
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)


def _trace_id() -> str:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return ""
    return format(span_context.trace_id, "032x")


def instrument_app(app: Flask, auto_instrument: bool = True) -> None:
    """Add OpenTelemetry instrumentation and request logging to a Flask app."""
    if auto_instrument:
        FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def start_request_timer():
        g.request_started = time.perf_counter()
        g.trace_id = _trace_id()

    @app.after_request
    def log_request(response):
        duration_ms = (time.perf_counter() - g.get('request_started', time.perf_counter())) * 1000
        user_context = g.get('user_context')

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("http.duration_ms", round(duration_ms, 2))
            if user_context is not None:
                span.set_attribute("user.id", user_context.user_id)

        logger.info(
            "HTTP request completed",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "user_id": user_context.user_id if user_context else None,
                "trace_id": g.get('trace_id')
            }
        )

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id
        return response
