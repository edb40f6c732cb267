# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Storage, coordination and external integrations.
"""

from .errors import (
    AppError,
    ValidationError,
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    RateLimitedError,
    InternalError
)
from .storage import CaseStore, CaseFilters, PaginationResult

__all__ = [
    "AppError",
    "ValidationError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "RateLimitedError",
    "InternalError",
    "CaseStore",
    "CaseFilters",
    "PaginationResult"
]
