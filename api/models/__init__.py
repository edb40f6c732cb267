# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Rescue Network platform.
"""

# Base models
from .base import BaseEntity, MutableEntity, utc_now

# Enumerations
from .enums import (
    CaseType,
    CaseStatus,
    UrgencyLevel,
    VolunteerStatus,
    UpdateType,
    NotificationType,
    AnimalType,
    AnimalCondition,
    AccidentType,
    DevicePlatform
)

# Core entities
from .entities import (
    GeoPoint,
    AnimalDetails,
    FloodDetails,
    AccidentDetails,
    CaseDetails,
    Case,
    CaseVolunteer,
    CaseUpdate,
    CaseComment,
    VolunteerPreferences,
    PushToken,
    VolunteerProfile,
    NotificationPayload,
    Notification,
    UserContext
)

# Request models
from .requests import (
    CreateCaseRequest,
    UpdateCaseRequest,
    AcceptCaseRequest,
    UpdateVolunteerStatusRequest,
    CaseUpdateRequest,
    CommentRequest,
    PaginationParams,
    CaseListQuery,
    NearbyCasesQuery,
    UpdateLocationRequest,
    UpdateAvailabilityRequest,
    UpdatePreferencesRequest,
    RegisterPushTokenRequest,
    UpsertProfileRequest,
    ReverseGeocodeQuery,
    GeocodeSearchQuery
)

# Response models
from .responses import GeocodeResult, UserStats

__all__ = [
    # Base models
    "BaseEntity",
    "MutableEntity",
    "utc_now",

    # Enumerations
    "CaseType",
    "CaseStatus",
    "UrgencyLevel",
    "VolunteerStatus",
    "UpdateType",
    "NotificationType",
    "AnimalType",
    "AnimalCondition",
    "AccidentType",
    "DevicePlatform",

    # Core entities
    "GeoPoint",
    "AnimalDetails",
    "FloodDetails",
    "AccidentDetails",
    "CaseDetails",
    "Case",
    "CaseVolunteer",
    "CaseUpdate",
    "CaseComment",
    "VolunteerPreferences",
    "PushToken",
    "VolunteerProfile",
    "NotificationPayload",
    "Notification",
    "UserContext",

    # Request models
    "CreateCaseRequest",
    "UpdateCaseRequest",
    "AcceptCaseRequest",
    "UpdateVolunteerStatusRequest",
    "CaseUpdateRequest",
    "CommentRequest",
    "PaginationParams",
    "CaseListQuery",
    "NearbyCasesQuery",
    "UpdateLocationRequest",
    "UpdateAvailabilityRequest",
    "UpdatePreferencesRequest",
    "RegisterPushTokenRequest",
    "UpsertProfileRequest",
    "ReverseGeocodeQuery",
    "GeocodeSearchQuery",

    # Response models
    "GeocodeResult",
    "UserStats"
]
