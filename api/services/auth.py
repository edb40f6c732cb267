# SPDX-License-Identifier: Apache-2.0

"""
Bearer token verification.

Tokens are HS256 JWTs issued by the identity service. The subject claim
carries the user id. This module only verifies tokens; it never issues them.
"""

import os
import jwt
from typing import Any, Dict, Optional
from opentelemetry import trace
import logging


tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """JWT verification with a shared HS256 secret."""

    def __init__(self, secret: Optional[str] = None, issuer: Optional[str] = None,
                 algorithm: str = "HS256", leeway_seconds: int = 30):
        """
        Initialize the authentication service.

        Args:
            secret: Shared signing secret, read from JWT_SECRET when omitted
            issuer: Expected issuer claim, not checked when None
            algorithm: Signing algorithm
            leeway_seconds: Clock skew tolerated on time based claims
        """
        self.secret = secret or os.getenv("JWT_SECRET")
        if not self.secret:
            raise ValueError("JWT_SECRET is not configured")
        self.issuer = issuer if issuer is not None else os.getenv("JWT_ISSUER")
        self.algorithm = algorithm
        self.leeway_seconds = leeway_seconds

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid, expired or has no subject
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attribute("auth.operation", "validate_token")

            options = {"verify_exp": True, "require": ["sub"]}
            try:
                payload = jwt.decode(
                    token,
                    self.secret,
                    algorithms=[self.algorithm],
                    issuer=self.issuer,
                    leeway=self.leeway_seconds,
                    options=options
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": str(payload["sub"])
            })
            return payload
