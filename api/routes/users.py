# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Endpoints for the caller's own volunteer profile and case history.
"""

from flask import current_app, g, jsonify
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field
import logging

from models.requests import (
    PaginationParams,
    RegisterPushTokenRequest,
    UpdateAvailabilityRequest,
    UpdateLocationRequest,
    UpdatePreferencesRequest,
    UpsertProfileRequest,
)
from middleware.auth import require_auth
from services.profiles import VolunteerProfileService
from utils.serialization import page_to_api, to_api

logger = logging.getLogger(__name__)

users_tag = Tag(name="Users", description="Volunteer profile and history")
users_bp = APIBlueprint('users', __name__, url_prefix='/api/users/me', abp_tags=[users_tag])


class PushTokenPath(BaseModel):
    token: str = Field(..., description="Device registration token")


def _profiles() -> VolunteerProfileService:
    return current_app.extensions['profiles']


@users_bp.get('')
@require_auth
def get_profile():
    return jsonify(to_api(_profiles().get_profile(g.user_context.user_id)))


@users_bp.put('')
@require_auth
def upsert_profile(body: UpsertProfileRequest):
    """Create the caller's profile on first use or update its contact fields."""
    return jsonify(to_api(_profiles().upsert_profile(g.user_context.user_id, body)))


@users_bp.put('/location')
@require_auth
def update_location(body: UpdateLocationRequest):
    profile = _profiles().update_location(g.user_context.user_id, body.latitude, body.longitude)
    return jsonify(to_api(profile))


@users_bp.put('/availability')
@require_auth
def update_availability(body: UpdateAvailabilityRequest):
    profile = _profiles().set_availability(g.user_context.user_id, body.is_available)
    return jsonify(to_api(profile))


@users_bp.put('/preferences')
@require_auth
def update_preferences(body: UpdatePreferencesRequest):
    profile = _profiles().update_preferences(g.user_context.user_id, body)
    return jsonify(to_api(profile.preferences))


@users_bp.post('/push-tokens')
@require_auth
def register_push_token(body: RegisterPushTokenRequest):
    token = _profiles().register_push_token(g.user_context.user_id, body)
    return jsonify(to_api(token)), 201


@users_bp.delete('/push-tokens/<token>')
@require_auth
def remove_push_token(path: PushTokenPath):
    _profiles().remove_push_token(g.user_context.user_id, path.token)
    return '', 204


@users_bp.get('/stats')
@require_auth
def get_stats():
    """Participation counters of the caller."""
    return jsonify(to_api(_profiles().get_stats(g.user_context.user_id)))


@users_bp.get('/cases/reported')
@require_auth
def reported_cases(query: PaginationParams):
    coordinator = current_app.extensions['coordinator']
    result = coordinator.reported_cases(g.user_context.user_id, page=query.page, limit=query.limit)
    return jsonify(page_to_api(result))


@users_bp.get('/cases/accepted')
@require_auth
def accepted_cases(query: PaginationParams):
    coordinator = current_app.extensions['coordinator']
    result = coordinator.accepted_cases(g.user_context.user_id, page=query.page, limit=query.limit)
    return jsonify(page_to_api(result))
