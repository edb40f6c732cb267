# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Application exceptions raised by the domain and service layers.

Each exception carries a stable machine readable ``code`` alongside the
HTTP status and RFC 7807 problem type used by the error handler.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for application errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        error_type: str = "application-error"
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.error_type = error_type

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.code!r}, {self.message!r})"


class ValidationError(AppError):
    """Domain level validation failure."""

    def __init__(self, code: str, message: str, validation_errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(code, message, 400, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationError(AppError):
    def __init__(self, code: str = "UNAUTHORIZED", message: str = "Authentication required"):
        super().__init__(code, message, 401, "authentication-required")


class ForbiddenError(AppError):
    def __init__(self, code: str = "FORBIDDEN", message: str = "Not allowed"):
        super().__init__(code, message, 403, "insufficient-permissions")


class NotFoundError(AppError):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, 404, "resource-not-found")


class ConflictError(AppError):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, 409, "resource-conflict")


class RateLimitedError(AppError):
    def __init__(self, retry_after: int, message: str = "Rate limit exceeded"):
        super().__init__("RATE_LIMITED", message, 429, "rate-limit-exceeded")
        self.retry_after = retry_after


class InternalError(AppError):
    """Failure of a collaborator such as storage."""

    def __init__(self, code: str, message: str):
        super().__init__(code, message, 500, "internal-server-error")


def case_not_found(case_id: str) -> NotFoundError:
    return NotFoundError("CASE_NOT_FOUND", f"Case {case_id} not found")


def user_not_found(user_id: str) -> NotFoundError:
    return NotFoundError("USER_NOT_FOUND", f"User {user_id} not found")


def case_closed(case_id: str, status: str) -> ConflictError:
    return ConflictError("CASE_CLOSED", f"Case {case_id} is {status}")


def not_accepted(case_id: str, volunteer_id: str) -> ConflictError:
    return ConflictError("NOT_ACCEPTED", f"Volunteer {volunteer_id} has not accepted case {case_id}")


def already_accepted(case_id: str, volunteer_id: str) -> ConflictError:
    return ConflictError("ALREADY_ACCEPTED", f"Volunteer {volunteer_id} already accepted case {case_id}")


def max_volunteers(case_id: str) -> ConflictError:
    return ConflictError("MAX_VOLUNTEERS", f"Case {case_id} has reached its volunteer limit")
