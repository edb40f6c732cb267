# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with RFC 7807 problem responses.
Provides centralized error handling and formatting for Flask applications.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from pydantic import ValidationError as PydanticValidationError
from typing import Any, Dict, List, Optional
from opentelemetry import trace
import logging

from services.errors import AppError, RateLimitedError, ValidationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://api.rescue-network.org/problems"

_TITLES = {
    "validation-error": "Validation Error",
    "authentication-required": "Authentication Required",
    "insufficient-permissions": "Insufficient Permissions",
    "resource-not-found": "Resource Not Found",
    "resource-conflict": "Resource Conflict",
    "rate-limit-exceeded": "Rate Limit Exceeded",
    "internal-server-error": "Internal Server Error",
}


def build_problem(
    error_type: str,
    status: int,
    detail: str,
    code: Optional[str] = None,
    errors: Optional[List[Dict[str, Any]]] = None
) -> Dict[str, Any]:
    """
    Build an RFC 7807 problem document for the current request.

    Args:
        error_type: Problem type slug
        status: HTTP status code
        detail: Human readable detail
        code: Stable application error code
        errors: Field level validation errors

    Returns:
        Problem dictionary
    """
    problem = {
        "type": f"{PROBLEM_BASE_URL}/{error_type}",
        "title": _TITLES.get(error_type, error_type.replace("-", " ").title()),
        "status": status,
        "detail": detail,
        "instance": request.path
    }
    if code:
        problem["code"] = code
    if errors:
        problem["errors"] = errors
    return problem


def problem_response(problem: Dict[str, Any]):
    response = jsonify(problem)
    response.status_code = problem["status"]
    response.mimetype = "application/problem+json"
    return response


def _field_errors(error: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in item.get("loc", ())),
            "message": item.get("msg", ""),
            "type": item.get("type", "")
        }
        for item in error.errors()
    ]


def validation_error_callback(error: PydanticValidationError):
    """Render request validation failures from flask-openapi3 as problems."""
    return problem_response(build_problem(
        "validation-error", 422, "Request validation failed",
        code="VALIDATION_ERROR", errors=_field_errors(error)
    ))


def register_error_handlers(app: Flask) -> None:
    """Register error handlers with Flask application."""

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        with tracer.start_as_current_span("error_handler.app_error") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.code": error.code,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if error.status_code >= 500 else logger.warning
            log(
                f"Application error: {error.code}",
                extra={
                    "error_code": error.code,
                    "status_code": error.status_code,
                    "detail": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            detail = error.message
            if error.status_code >= 500 and app.config.get('ENV') == 'production':
                detail = "An internal server error occurred"

            errors = error.validation_errors if isinstance(error, ValidationError) else None
            response = problem_response(
                build_problem(error.error_type, error.status_code, detail, error.code, errors)
            )
            if isinstance(error, RateLimitedError):
                response.headers['Retry-After'] = str(error.retry_after)
            return response

    @app.errorhandler(PydanticValidationError)
    def handle_model_validation_error(error: PydanticValidationError):
        logger.warning("Model validation failed", extra={"path": request.path, "error_count": error.error_count()})
        return validation_error_callback(error)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        error_type = (error.name or "error").lower().replace(" ", "-")
        if error.code and error.code >= 500:
            logger.error(f"Server error: {error.name}", extra={"path": request.path, "status_code": error.code})
        return problem_response(build_problem(error_type, error.code or 500, error.description or error.name))

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_class": error.__class__.__name__,
                    "error_message": str(error),
                    "path": request.path,
                    "method": request.method
                },
                exc_info=True
            )

            # Don't expose internal error details
            detail = "An unexpected error occurred"
            if app.config.get('ENV') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            return problem_response(build_problem("internal-server-error", 500, detail, "INTERNAL_ERROR"))
