# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Volunteer profile management: location, availability, preferences and devices.
"""

import logging
from datetime import datetime
from typing import Callable

from models.base import utc_now
from models.entities import GeoPoint, PushToken, VolunteerProfile
from models.enums import VolunteerStatus
from models.requests import RegisterPushTokenRequest, UpdatePreferencesRequest, UpsertProfileRequest
from models.responses import UserStats
from services.errors import NotFoundError, user_not_found
from services.storage import CaseStore

logger = logging.getLogger(__name__)

IN_PROGRESS_STATUSES = (
    VolunteerStatus.ACCEPTED,
    VolunteerStatus.EN_ROUTE,
    VolunteerStatus.ON_SITE,
    VolunteerStatus.HANDLING,
)


class VolunteerProfileService:
    """Self service operations on the caller's own profile."""

    def __init__(self, store: CaseStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def get_profile(self, user_id: str) -> VolunteerProfile:
        user = self.store.get_user(user_id)
        if user is None:
            raise user_not_found(user_id)
        return user

    def upsert_profile(self, user_id: str, request: UpsertProfileRequest) -> VolunteerProfile:
        """Create the profile on first use, otherwise update its contact fields."""
        existing = self.store.get_user(user_id)
        if existing is None:
            profile = VolunteerProfile(id=user_id, **request.model_dump())
            self.store.save_user(profile)
            logger.info("Volunteer profile created", extra={"user_id": user_id})
            return profile
        return self.store.update_user_fields(user_id, request.model_dump(exclude_unset=True))

    def update_location(self, user_id: str, latitude: float, longitude: float) -> VolunteerProfile:
        updated = self.store.update_user_fields(user_id, {
            "location": GeoPoint(latitude=latitude, longitude=longitude),
            "location_updated_at": self.clock()
        })
        if updated is None:
            raise user_not_found(user_id)
        return updated

    def set_availability(self, user_id: str, is_available: bool) -> VolunteerProfile:
        updated = self.store.update_user_fields(user_id, {"is_available": is_available})
        if updated is None:
            raise user_not_found(user_id)
        logger.info("Volunteer availability changed", extra={"user_id": user_id, "available": is_available})
        return updated

    def update_preferences(self, user_id: str, request: UpdatePreferencesRequest) -> VolunteerProfile:
        """
        Merge a partial preferences update into the stored preferences.

        Args:
            user_id: Profile owner
            request: Fields to change; omitted fields keep their value

        Returns:
            The updated profile
        """
        user = self.get_profile(user_id)
        changes = request.model_dump(exclude_unset=True)
        center_lat = changes.pop("center_latitude", None)
        center_lng = changes.pop("center_longitude", None)
        if center_lat is not None and center_lng is not None:
            changes["center_location"] = GeoPoint(latitude=center_lat, longitude=center_lng)

        preferences = user.preferences.model_validate({**user.preferences.model_dump(), **changes})
        return self.store.update_user_fields(user_id, {"preferences": preferences})

    def register_push_token(self, user_id: str, request: RegisterPushTokenRequest) -> PushToken:
        token = PushToken(
            token=request.token,
            platform=request.platform,
            device_id=request.device_id,
            last_used_at=self.clock()
        )
        if not self.store.add_push_token(user_id, token):
            raise user_not_found(user_id)
        return token

    def remove_push_token(self, user_id: str, token: str) -> None:
        """
        Unregister one of the caller's device tokens.

        Raises:
            NotFoundError: PUSH_TOKEN_NOT_FOUND when the caller has no such token
        """
        if not self.store.remove_push_token(user_id, token):
            raise NotFoundError("PUSH_TOKEN_NOT_FOUND", "Push token is not registered for this user")
        logger.info("Push token removed", extra={"user_id": user_id})

    def get_stats(self, user_id: str) -> UserStats:
        """Reported and resolved totals plus counts taken from the volunteer records."""
        user = self.get_profile(user_id)
        return UserStats(
            cases_reported=user.total_cases_reported,
            cases_accepted=self.store.count_volunteer_records(user_id),
            cases_completed=user.total_cases_resolved,
            cases_in_progress=self.store.count_volunteer_records(user_id, IN_PROGRESS_STATUSES)
        )
