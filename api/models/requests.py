# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from .entities import CaseDetails, GeoPoint, QUIET_HOURS_PATTERN
from .enums import CaseStatus, CaseType, DevicePlatform, UrgencyLevel, VolunteerStatus


class CreateCaseRequest(BaseModel):
    """Request model for reporting a new case."""

    model_config = ConfigDict(use_enum_values=True)

    case_type: CaseType = Field(..., description="Kind of rescue")
    urgency: UrgencyLevel = Field(default=UrgencyLevel.MEDIUM, description="Urgency level")
    latitude: float = Field(..., ge=-90, le=90, description="Case latitude")
    longitude: float = Field(..., ge=-180, le=180, description="Case longitude")
    address: Optional[str] = Field(None, max_length=500, description="Human readable address")
    location_note: Optional[str] = Field(None, max_length=500, description="Directions or landmarks")
    title: str = Field(..., min_length=5, max_length=200, description="Short summary")
    description: Optional[str] = Field(None, max_length=5000, description="Free text description")
    reporter_name: Optional[str] = Field(None, max_length=100, description="Reporter display name")
    reporter_phone: Optional[str] = Field(None, min_length=10, max_length=20, description="Reporter phone")
    is_anonymous: bool = Field(default=False, description="Hide reporter identity")
    max_volunteers: int = Field(default=5, ge=1, le=50, description="Volunteer capacity")
    media_urls: List[str] = Field(default_factory=list, max_length=10, description="Attached media")
    details: CaseDetails = Field(..., description="Type specific details")

    @model_validator(mode='before')
    @classmethod
    def tag_details(cls, data: Any) -> Any:
        """Tag an untagged details block with the case type it was sent with."""
        if isinstance(data, dict):
            details = data.get('details')
            if isinstance(details, dict) and 'case_type' not in details and 'caseType' not in details:
                data = dict(data)
                case_type = data.get('case_type')
                data['details'] = {**details, 'case_type': getattr(case_type, 'value', case_type)}
        return data

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError('Case title cannot be empty')
        return v.strip()

    def location(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class UpdateCaseRequest(BaseModel):
    """Reporter's partial update of a case."""

    model_config = ConfigDict(use_enum_values=True)

    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    urgency: Optional[UrgencyLevel] = None
    status: Optional[CaseStatus] = Field(None, description="Reporter status override")
    address: Optional[str] = Field(None, max_length=500)
    location_note: Optional[str] = Field(None, max_length=500)
    max_volunteers: Optional[int] = Field(None, ge=1, le=50)
    media_urls: Optional[List[str]] = Field(None, max_length=10)

    def changes(self) -> dict:
        """Non-null fields present in the patch, status excluded."""
        return self.model_dump(exclude_unset=True, exclude_none=True, exclude={'status'})


class AcceptCaseRequest(BaseModel):
    """Volunteer acceptance, optionally with the volunteer's current position."""

    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @model_validator(mode='after')
    def validate_pair(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError('latitude and longitude must be provided together')
        return self

    def location(self) -> Optional[GeoPoint]:
        if self.latitude is None:
            return None
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class UpdateVolunteerStatusRequest(BaseModel):
    """Volunteer progress report."""

    model_config = ConfigDict(use_enum_values=True)

    status: VolunteerStatus
    note: Optional[str] = Field(None, max_length=1000)


class CaseUpdateRequest(BaseModel):
    """Free text timeline entry posted by a participant."""

    content: str = Field(..., min_length=1, max_length=2000)
    media_urls: List[str] = Field(default_factory=list, max_length=10)


class CommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class PaginationParams(BaseModel):
    """Pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=20, ge=1, le=100, description="Items per page")


class CaseListQuery(PaginationParams):
    """Filters for case listing."""

    model_config = ConfigDict(use_enum_values=True)

    q: Optional[str] = Field(None, max_length=200, description="Search in title and address")
    type: Optional[CaseType] = Field(None, description="Filter by case type")
    status: Optional[CaseStatus] = Field(None, description="Filter by status")
    urgency: Optional[UrgencyLevel] = Field(None, description="Filter by urgency")


class NearbyCasesQuery(BaseModel):
    """Query for active cases around a point."""

    model_config = ConfigDict(use_enum_values=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(default=10, ge=1, le=100)
    types: List[CaseType] = Field(default_factory=list, description="Restrict to these case types")
    limit: int = Field(default=20, ge=1, le=100)

    def location(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class UpdateLocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class UpdateAvailabilityRequest(BaseModel):
    is_available: bool


class UpdatePreferencesRequest(BaseModel):
    """Partial update of a volunteer's notification preferences."""

    model_config = ConfigDict(use_enum_values=True)

    push_enabled: Optional[bool] = None
    case_types: Optional[List[CaseType]] = None
    notification_radius_km: Optional[int] = Field(None, ge=1, le=100)
    center_latitude: Optional[float] = Field(None, ge=-90, le=90)
    center_longitude: Optional[float] = Field(None, ge=-180, le=180)
    use_current_location: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None

    @field_validator('quiet_hours_start', 'quiet_hours_end')
    @classmethod
    def validate_quiet_hours(cls, v):
        if v is not None and not QUIET_HOURS_PATTERN.match(v):
            raise ValueError('Quiet hours must use HH:MM format')
        return v

    @model_validator(mode='after')
    def validate_center(self):
        if (self.center_latitude is None) != (self.center_longitude is None):
            raise ValueError('center_latitude and center_longitude must be provided together')
        return self


class RegisterPushTokenRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    token: str = Field(..., min_length=1, max_length=500)
    platform: DevicePlatform
    device_id: Optional[str] = Field(None, max_length=200)


class ReverseGeocodeQuery(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class GeocodeSearchQuery(BaseModel):
    q: str = Field(..., min_length=2, max_length=200)
    limit: int = Field(default=5, ge=1, le=20)


class UpsertProfileRequest(BaseModel):
    """Create or edit the caller's own profile."""

    display_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, min_length=10, max_length=20)
    email: Optional[str] = Field(None, max_length=254)
