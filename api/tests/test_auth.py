# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for bearer token verification.
"""

import time
import jwt
import pytest

from services.auth import AuthService, TokenValidationError


SECRET = "unit-test-secret"


def encode(claims, secret=SECRET):
    return jwt.encode(claims, secret, algorithm="HS256")


class TestAuthService:
    """Token verification."""

    def setup_method(self):
        self.service = AuthService(SECRET, issuer=None)

    def test_valid_token(self):
        now = int(time.time())
        token = encode({"sub": "user-1", "iat": now, "exp": now + 60})

        payload = self.service.validate_token(token)

        assert payload["sub"] == "user-1"

    def test_expired_token(self):
        now = int(time.time())
        token = encode({"sub": "user-1", "iat": now - 600, "exp": now - 300})

        with pytest.raises(TokenValidationError, match="expired"):
            self.service.validate_token(token)

    def test_leeway_tolerates_small_skew(self):
        now = int(time.time())
        token = encode({"sub": "user-1", "exp": now - 5})

        assert self.service.validate_token(token)["sub"] == "user-1"

    def test_missing_subject(self):
        token = encode({"exp": int(time.time()) + 60})

        with pytest.raises(TokenValidationError):
            self.service.validate_token(token)

    def test_wrong_secret(self):
        token = encode({"sub": "user-1", "exp": int(time.time()) + 60}, secret="other")

        with pytest.raises(TokenValidationError):
            self.service.validate_token(token)

    def test_issuer_enforced_when_configured(self):
        service = AuthService(SECRET, issuer="rescue-app")
        token = encode({"sub": "user-1", "iss": "someone-else", "exp": int(time.time()) + 60})

        with pytest.raises(TokenValidationError):
            service.validate_token(token)

    def test_secret_required(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET", raising=False)

        with pytest.raises(ValueError):
            AuthService()
