# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Rescue Network platform.
"""

import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator, model_validator
from .base import BaseEntity, MutableEntity, utc_now
from .enums import (
    AccidentType,
    AnimalCondition,
    AnimalType,
    CaseStatus,
    CaseType,
    DevicePlatform,
    NotificationType,
    UpdateType,
    UrgencyLevel,
    VolunteerStatus,
)

QUIET_HOURS_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class GeoPoint(BaseModel):
    """Latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")


class AnimalDetails(BaseModel):
    """Details attached to animal rescue cases."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    case_type: Literal["animal"] = "animal"
    animal_type: AnimalType
    animal_type_other: Optional[str] = Field(None, max_length=100)
    condition: AnimalCondition
    condition_description: Optional[str] = None
    estimated_count: int = Field(default=1, ge=1)


class FloodDetails(BaseModel):
    """Details attached to flood rescue cases."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    case_type: Literal["flood"] = "flood"
    people_count: Optional[int] = Field(None, ge=1)
    has_children: bool = False
    has_elderly: bool = False
    has_disabled: bool = False
    water_level_cm: Optional[int] = Field(None, ge=0)
    floor_level: Optional[int] = Field(None, ge=0)
    has_power: Optional[bool] = None
    has_food_water: Optional[bool] = None
    medical_needs: Optional[str] = None


class AccidentDetails(BaseModel):
    """Details attached to accident rescue cases."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    case_type: Literal["accident"] = "accident"
    accident_type: AccidentType
    victim_count: int = Field(default=1, ge=1)
    has_unconscious: bool = False
    has_bleeding: bool = False
    has_fracture: bool = False
    is_trapped: bool = False
    hazard_present: bool = False
    hazard_description: Optional[str] = None


def _detail_kind(value: Any) -> Optional[str]:
    """Read the case type tag from raw input or an already built details model."""
    if isinstance(value, dict):
        return value.get('case_type', value.get('caseType'))
    return getattr(value, 'case_type', None)


CaseDetails = Annotated[
    Union[
        Annotated[AnimalDetails, Tag("animal")],
        Annotated[FloodDetails, Tag("flood")],
        Annotated[AccidentDetails, Tag("accident")],
    ],
    Discriminator(_detail_kind),
]


class Case(MutableEntity):
    """A single emergency report requiring volunteer response."""

    case_type: CaseType = Field(..., description="Kind of rescue")
    status: CaseStatus = Field(default=CaseStatus.PENDING, description="Lifecycle status")
    urgency: UrgencyLevel = Field(default=UrgencyLevel.MEDIUM, description="Urgency level")
    location: GeoPoint = Field(..., description="Where help is needed")
    address: Optional[str] = Field(None, description="Human readable address")
    location_note: Optional[str] = Field(None, max_length=500, description="Directions or landmarks")
    title: str = Field(..., min_length=1, max_length=200, description="Short summary")
    description: Optional[str] = Field(None, description="Free text description")
    reporter_id: Optional[str] = Field(None, description="Reporting user, absent for anonymous reports")
    reporter_name: Optional[str] = Field(None, max_length=100)
    reporter_phone: Optional[str] = Field(None, max_length=20)
    is_anonymous: bool = Field(default=False)
    volunteer_count: int = Field(default=0, ge=0, description="Non-withdrawn volunteer records")
    max_volunteers: int = Field(default=5, ge=1, description="Volunteer capacity")
    details: Optional[CaseDetails] = Field(None, description="Type specific details")
    media_urls: List[str] = Field(default_factory=list)
    accepted_at: Optional[datetime] = Field(None, description="First acceptance timestamp")
    resolved_at: Optional[datetime] = Field(None, description="Resolution timestamp")

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        """Validate case title."""
        if not v.strip():
            raise ValueError('Case title cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_details_type(self):
        """Details, when present, must describe the same kind of case."""
        if self.details is not None and self.details.case_type != self.case_type:
            raise ValueError(
                f'Details for {self.details.case_type} cannot be attached to a {self.case_type} case'
            )
        return self

    def is_active(self) -> bool:
        """Check if the case still takes volunteers' work."""
        return self.status in (CaseStatus.PENDING, CaseStatus.ACCEPTED, CaseStatus.IN_PROGRESS)

    def is_reported_by(self, user_id: Optional[str]) -> bool:
        return user_id is not None and self.reporter_id == user_id


class CaseVolunteer(BaseEntity):
    """One volunteer's engagement with one case, unique per (case, volunteer)."""

    case_id: str = Field(..., description="Case identifier")
    volunteer_id: str = Field(..., description="Volunteer user identifier")
    volunteer_name: Optional[str] = Field(None, description="Display name snapshot")
    status: VolunteerStatus = Field(default=VolunteerStatus.ACCEPTED)
    accepted_location: Optional[GeoPoint] = Field(None, description="Volunteer location when accepting")
    distance_km: Optional[float] = Field(None, ge=0, description="Distance to the case when accepting")
    accepted_at: datetime = Field(default_factory=utc_now)
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    note: Optional[str] = None

    def is_withdrawn(self) -> bool:
        return self.status == VolunteerStatus.WITHDRAWN


class CaseUpdate(BaseEntity):
    """Append-only case timeline entry."""

    model_config = ConfigDict(frozen=True)

    case_id: str
    update_type: UpdateType
    user_id: Optional[str] = None
    content: Optional[str] = None
    old_status: Optional[CaseStatus] = None
    new_status: Optional[CaseStatus] = None
    media_urls: List[str] = Field(default_factory=list)


class CaseComment(MutableEntity):
    """Comment left on a case."""

    case_id: str
    user_id: str
    content: str = Field(..., min_length=1, max_length=2000)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if not v.strip():
            raise ValueError('Comment cannot be empty')
        return v.strip()


class VolunteerPreferences(BaseModel):
    """Notification preferences of a volunteer."""

    model_config = ConfigDict(alias_generator=BaseEntity.model_config['alias_generator'],
                              populate_by_name=True, use_enum_values=True)

    push_enabled: bool = True
    case_types: List[CaseType] = Field(default_factory=lambda: list(CaseType))
    notification_radius_km: int = Field(default=10, ge=1, le=100)
    center_location: Optional[GeoPoint] = None
    use_current_location: bool = True
    quiet_hours_start: Optional[str] = Field(None, description="HH:MM local time")
    quiet_hours_end: Optional[str] = Field(None, description="HH:MM local time")

    @field_validator('quiet_hours_start', 'quiet_hours_end')
    @classmethod
    def validate_quiet_hours(cls, v):
        if v is None:
            return v
        if not QUIET_HOURS_PATTERN.match(v):
            raise ValueError('Quiet hours must use HH:MM format')
        return v


class PushToken(BaseModel):
    """Device token used for push delivery."""

    model_config = ConfigDict(alias_generator=BaseEntity.model_config['alias_generator'],
                              populate_by_name=True, use_enum_values=True)

    token: str = Field(..., min_length=1, max_length=500)
    platform: DevicePlatform
    device_id: Optional[str] = None
    is_active: bool = True
    last_used_at: datetime = Field(default_factory=utc_now)


class VolunteerProfile(MutableEntity):
    """A user as seen by the matching engine."""

    display_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None
    email: Optional[str] = None
    is_available: bool = False
    is_active: bool = True
    location: Optional[GeoPoint] = Field(None, description="Last reported live location")
    location_updated_at: Optional[datetime] = None
    preferences: VolunteerPreferences = Field(default_factory=VolunteerPreferences)
    push_tokens: List[PushToken] = Field(default_factory=list)
    total_cases_reported: int = Field(default=0, ge=0)
    total_cases_resolved: int = Field(default=0, ge=0)

    def effective_location(self) -> Optional[GeoPoint]:
        """Point used for distance checks: fixed center when configured, else live location."""
        prefs = self.preferences
        if not prefs.use_current_location and prefs.center_location is not None:
            return prefs.center_location
        return self.location


class NotificationPayload(BaseModel):
    """Push notification content."""

    model_config = ConfigDict(use_enum_values=True)

    type: NotificationType
    title: str
    body: str
    case_id: Optional[str] = None
    case_type: Optional[CaseType] = None
    urgency: Optional[UrgencyLevel] = None
    distance_km: Optional[float] = None
    data: Dict[str, str] = Field(default_factory=dict)

    def data_fields(self) -> Dict[str, str]:
        """Flatten to the string map push gateways expect as data."""
        fields = {"type": self.type}
        for key in ("case_id", "case_type", "urgency"):
            value = getattr(self, key)
            if value is not None:
                fields[key] = str(value)
        if self.distance_km is not None:
            fields["distance_km"] = f"{self.distance_km:.2f}"
        fields.update(self.data)
        return fields


class Notification(BaseEntity):
    """Inbox entry kept for a user alongside each push notification."""

    user_id: str
    notification_type: NotificationType
    title: str = Field(..., max_length=255)
    body: Optional[str] = None
    case_id: Optional[str] = None
    is_read: bool = False

    @classmethod
    def from_payload(cls, user_id: str, payload: NotificationPayload, created_at: datetime) -> "Notification":
        return cls(
            user_id=user_id,
            notification_type=payload.type,
            title=payload.title,
            body=payload.body,
            case_id=payload.case_id,
            created_at=created_at
        )


class UserContext(BaseModel):
    """Authenticated caller of a request."""

    user_id: str = Field(..., description="Authenticated user ID")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
