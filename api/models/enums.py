# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Rescue Network platform.
"""

from enum import Enum


class CaseType(str, Enum):
    """Kind of rescue a case asks for."""
    ANIMAL = "animal"
    FLOOD = "flood"
    ACCIDENT = "accident"


class CaseStatus(str, Enum):
    """Case lifecycle status enumeration."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class UrgencyLevel(str, Enum):
    """Urgency levels, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class VolunteerStatus(str, Enum):
    """Status of one volunteer's engagement with one case."""
    ACCEPTED = "accepted"
    EN_ROUTE = "en_route"
    ON_SITE = "on_site"
    HANDLING = "handling"
    COMPLETED = "completed"
    WITHDRAWN = "withdrawn"


class UpdateType(str, Enum):
    """Case timeline entry types."""
    SYSTEM = "system"
    STATUS_CHANGE = "status_change"
    VOLUNTEER_JOINED = "volunteer_joined"
    VOLUNTEER_UPDATE = "volunteer_update"
    VOLUNTEER_WITHDRAWN = "volunteer_withdrawn"
    REPORTER_UPDATE = "reporter_update"


class NotificationType(str, Enum):
    """Push notification types."""
    NEW_CASE_NEARBY = "new_case_nearby"
    CASE_ACCEPTED = "case_accepted"
    CASE_UPDATE = "case_update"
    CASE_RESOLVED = "case_resolved"
    VOLUNTEER_JOINED = "volunteer_joined"
    SYSTEM = "system"


class AnimalType(str, Enum):
    DOG = "dog"
    CAT = "cat"
    BIRD = "bird"
    OTHER = "other"


class AnimalCondition(str, Enum):
    INJURED = "injured"
    TRAPPED = "trapped"
    SICK = "sick"
    ABANDONED = "abandoned"
    OTHER = "other"


class AccidentType(str, Enum):
    TRAFFIC = "traffic"
    FALL = "fall"
    FIRE = "fire"
    DROWNING = "drowning"
    ELECTRIC = "electric"
    OTHER = "other"


class DevicePlatform(str, Enum):
    """Platforms a push token can belong to."""
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"
