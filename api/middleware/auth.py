# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

The decorators store a UserContext on ``flask.g.user_context``. Failures are
raised as AuthenticationError and rendered by the error handler.
"""

from functools import wraps
from flask import current_app, request, g
from typing import Any, Callable, Dict, Optional
from opentelemetry import trace
import logging

from models.entities import UserContext
from services.auth import AuthService, TokenValidationError
from services.errors import AuthenticationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation and user context building for
    protected endpoints.
    """

    def __init__(self, auth_service: AuthService):
        self.auth_service = auth_service

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from request headers.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return None
        return auth_header[7:].strip() or None

    def build_user_context(self, token_payload: Dict[str, Any]) -> UserContext:
        return UserContext(
            user_id=str(token_payload["sub"]),
            token_payload=token_payload,
            ip_address=request.remote_addr
        )

    def authenticate(self) -> Optional[UserContext]:
        """
        Authenticate the current request.

        Returns:
            UserContext, or None when no token was sent

        Raises:
            AuthenticationError: INVALID_TOKEN when a token is present but invalid
        """
        token = self.extract_token_from_request()
        if token is None:
            return None
        try:
            payload = self.auth_service.validate_token(token)
        except TokenValidationError as e:
            raise AuthenticationError("INVALID_TOKEN", str(e)) from e
        return self.build_user_context(payload)


def _middleware() -> AuthMiddleware:
    return current_app.extensions['auth_middleware']


def require_auth(f: Callable) -> Callable:
    """Decorator to require JWT authentication for Flask routes."""
    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any):
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            user_context = _middleware().authenticate()
            if user_context is None:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token", extra={"path": request.path})
                raise AuthenticationError("UNAUTHORIZED", "Missing authorization token")

            g.user_context = user_context
            span.set_attributes({"auth.result": "success", "user.id": user_context.user_id})
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f: Callable) -> Callable:
    """
    Decorator for optional authentication (user context if token present).

    An invalid token is still rejected; only a missing token is tolerated.
    """
    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any):
        g.user_context = _middleware().authenticate()
        return f(*args, **kwargs)

    return decorated_function


def current_user_id() -> Optional[str]:
    user_context = getattr(g, 'user_context', None)
    return user_context.user_id if user_context else None
