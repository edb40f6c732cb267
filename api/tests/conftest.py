# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import time
import pytest
import jwt
from datetime import datetime, timezone
from typing import Any, Dict
from unittest.mock import Mock

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ['STORAGE_BACKEND'] = 'memory'
os.environ['JWT_SECRET'] = 'test-secret-key-for-unit-tests'
os.environ.pop('FCM_SERVER_KEY', None)

from domain.matching import MatchingConfig, VolunteerMatcher
from models.entities import GeoPoint, VolunteerPreferences, VolunteerProfile
from models.requests import CreateCaseRequest
from services.coordinator import CaseLifecycleCoordinator
from services.dispatcher import BackgroundRunner, NotificationDispatcher
from services.memory_store import InMemoryCaseStore
from services.notifications import NotificationInbox

TEST_JWT_SECRET = 'test-secret-key-for-unit-tests'
NOON_UTC = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    """Fixed clock at noon UTC."""
    return lambda: NOON_UTC


@pytest.fixture
def store():
    return InMemoryCaseStore()


@pytest.fixture
def runner():
    """Background runner that executes side effects inline."""
    return BackgroundRunner(synchronous=True)


@pytest.fixture
def push():
    """Push transport double recording every send."""
    return Mock()


@pytest.fixture
def matcher(store, fixed_now):
    return VolunteerMatcher(store, MatchingConfig(), clock=fixed_now)


@pytest.fixture
def coordinator(store, matcher, push, runner, fixed_now):
    dispatcher = NotificationDispatcher(push, NotificationInbox(store, clock=fixed_now))
    return CaseLifecycleCoordinator(store, matcher, dispatcher, runner, clock=fixed_now)


@pytest.fixture
def make_volunteer(store):
    """Save a volunteer profile and return it."""
    def _make(user_id: str, latitude: float = 10.78, longitude: float = 106.71,
              available: bool = True, **preferences: Any) -> VolunteerProfile:
        profile = VolunteerProfile(
            id=user_id,
            display_name=f"Volunteer {user_id}",
            is_available=available,
            location=GeoPoint(latitude=latitude, longitude=longitude),
            preferences=VolunteerPreferences(**preferences)
        )
        store.save_user(profile)
        return profile
    return _make


@pytest.fixture
def case_payload():
    """Valid case creation payload for a flood case."""
    def _payload(**overrides: Any) -> Dict[str, Any]:
        payload = {
            "case_type": "flood",
            "urgency": "critical",
            "latitude": 10.77,
            "longitude": 106.70,
            "title": "Family trapped on roof",
            "description": "Water rising fast",
            "max_volunteers": 3,
            "details": {"people_count": 4, "has_children": True}
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def create_case(coordinator, case_payload):
    """Create a case through the coordinator."""
    def _create(reporter_id: str = "reporter-1", **overrides: Any):
        return coordinator.create_case(CreateCaseRequest(**case_payload(**overrides)), reporter_id=reporter_id)
    return _create


@pytest.fixture
def make_token():
    """Issue HS256 tokens the way the identity service does."""
    def _token(user_id: str, expires_in: int = 900, secret: str = TEST_JWT_SECRET) -> str:
        now = int(time.time())
        claims = {
            "sub": user_id,
            "user_id": user_id,
            "email": f"{user_id}@example.com",
            "iss": "rescue-app",
            "iat": now,
            "exp": now + expires_in
        }
        return jwt.encode(claims, secret, algorithm="HS256")
    return _token


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _headers


@pytest.fixture
def geocoder():
    return Mock()


@pytest.fixture
def app(store, runner, push, geocoder):
    from app import create_app
    application = create_app(
        store=store,
        runner=runner,
        push=push,
        geocoder=geocoder,
        config={'TESTING': True, 'OTEL_ENABLED': False, 'JWT_SECRET': TEST_JWT_SECRET}
    )
    return application


@pytest.fixture
def client(app):
    return app.test_client()
