# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the in-process case store.
"""

import pytest
from datetime import datetime, timezone

from domain.geo import bounding_box
from models.entities import (
    Case,
    CaseVolunteer,
    GeoPoint,
    Notification,
    PushToken,
    VolunteerPreferences,
    VolunteerProfile,
)
from services.errors import ConflictError
from services.memory_store import InMemoryCaseStore
from services.storage import CaseFilters


def make_case(**overrides):
    data = {
        "case_type": "accident",
        "location": GeoPoint(latitude=-23.55, longitude=-46.63),
        "title": "Motorbike crash",
        "max_volunteers": 2,
    }
    data.update(overrides)
    return Case(**data)


def notification(user_id, title, created_at):
    return Notification(user_id=user_id, notification_type="system", title=title, created_at=created_at)


class TestInMemoryCaseStore:
    """Store primitives."""

    def setup_method(self):
        self.store = InMemoryCaseStore()

    def test_returned_entities_are_copies(self):
        case = make_case()
        self.store.insert_case(case)

        loaded = self.store.get_case(case.id)
        loaded.title = "Changed locally"

        assert self.store.get_case(case.id).title == "Motorbike crash"

    def test_conditional_increment_respects_capacity(self):
        case = make_case(max_volunteers=1)
        self.store.insert_case(case)

        assert self.store.increment_volunteer_count(case.id)
        assert not self.store.increment_volunteer_count(case.id)
        assert self.store.get_case(case.id).volunteer_count == 1

    def test_field_update_stamps_updated_at(self):
        case = make_case(updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        self.store.insert_case(case)

        updated = self.store.update_case_fields(case.id, {"title": "Motorbike crash, two hurt"})

        assert updated.updated_at > case.updated_at
        assert self.store.get_case(case.id).title == "Motorbike crash, two hurt"

    def test_increment_rejected_when_closed(self):
        case = make_case(status="cancelled")
        self.store.insert_case(case)

        assert not self.store.increment_volunteer_count(case.id)

    def test_decrement_floors_at_zero(self):
        case = make_case()
        self.store.insert_case(case)

        self.store.decrement_volunteer_count(case.id)

        assert self.store.get_case(case.id).volunteer_count == 0

    def test_transition_is_compare_and_set(self):
        case = make_case()
        self.store.insert_case(case)

        assert not self.store.transition_case_status(case.id, ["accepted"], "in_progress")
        assert self.store.transition_case_status(case.id, ["pending"], "accepted")
        assert self.store.get_case(case.id).status == "accepted"

    def test_transaction_rolls_back_on_error(self):
        case = make_case()
        self.store.insert_case(case)

        with pytest.raises(RuntimeError):
            with self.store.transaction() as session:
                self.store.increment_volunteer_count(case.id, session=session)
                raise RuntimeError("abort")

        assert self.store.get_case(case.id).volunteer_count == 0

    def test_volunteer_record_unique(self):
        record = CaseVolunteer(case_id="c1", volunteer_id="v1")
        self.store.insert_volunteer(record)

        with pytest.raises(ConflictError) as exc_info:
            self.store.insert_volunteer(CaseVolunteer(case_id="c1", volunteer_id="v1"))
        assert exc_info.value.code == "ALREADY_ACCEPTED"

    def test_update_volunteer_checks_expected_status(self):
        self.store.insert_volunteer(CaseVolunteer(case_id="c1", volunteer_id="v1"))

        assert not self.store.update_volunteer("c1", "v1", ["en_route"], {"status": "on_site"})
        assert self.store.update_volunteer("c1", "v1", ["accepted"], {"status": "en_route"})
        assert self.store.get_volunteer("c1", "v1").status == "en_route"

    def test_find_cases_filters_and_paginates(self):
        for i in range(5):
            self.store.insert_case(make_case(title=f"Crash number {i}", urgency="high" if i % 2 else "low"))

        result = self.store.find_cases(CaseFilters(urgency="high"), page=1, limit=1)

        assert result.total == 2
        assert len(result.items) == 1
        assert result.total_pages == 2
        assert result.has_next and not result.has_prev

    def test_find_cases_in_box(self):
        inside = make_case()
        outside = make_case(location=GeoPoint(latitude=0, longitude=0))
        closed = make_case(status="resolved")
        for case in (inside, outside, closed):
            self.store.insert_case(case)

        box = bounding_box(GeoPoint(latitude=-23.55, longitude=-46.63), 10)
        found = self.store.find_cases_in_box(box, ["pending"])

        assert [c.id for c in found] == [inside.id]

    def test_find_volunteers_matches_live_or_center(self):
        box = bounding_box(GeoPoint(latitude=-23.55, longitude=-46.63), 10)
        live = VolunteerProfile(id="live", display_name="Live", is_available=True,
                                location=GeoPoint(latitude=-23.56, longitude=-46.64))
        centered = VolunteerProfile(
            id="centered", display_name="Centered", is_available=True,
            preferences=VolunteerPreferences(center_location=GeoPoint(latitude=-23.54, longitude=-46.62))
        )
        offline = VolunteerProfile(id="offline", display_name="Offline", is_available=False,
                                   location=GeoPoint(latitude=-23.55, longitude=-46.63))
        for user in (live, centered, offline):
            self.store.save_user(user)

        found = sorted(u.id for u in self.store.find_volunteers_in_box(box))

        assert found == ["centered", "live"]

    def test_push_tokens_replace_same_token(self):
        self.store.save_user(VolunteerProfile(id="u1", display_name="User"))

        self.store.add_push_token("u1", PushToken(token="abc", platform="android"))
        self.store.add_push_token("u1", PushToken(token="abc", platform="ios"))
        self.store.add_push_token("u1", PushToken(token="def", platform="web"))

        assert self.store.get_push_tokens("u1") == ["abc", "def"]
        assert not self.store.add_push_token("ghost", PushToken(token="x", platform="web"))

    def test_user_counter(self):
        self.store.save_user(VolunteerProfile(id="u1", display_name="User"))

        self.store.increment_user_counter("u1", "total_cases_resolved")
        self.store.increment_user_counter("ghost", "total_cases_resolved")

        assert self.store.get_user("u1").total_cases_resolved == 1

    def test_health_check(self):
        assert self.store.health_check()["status"] == "healthy"

    def test_remove_push_token(self):
        self.store.save_user(VolunteerProfile(id="u1", display_name="User"))
        self.store.add_push_token("u1", PushToken(token="abc", platform="android"))

        assert self.store.remove_push_token("u1", "abc")
        assert not self.store.remove_push_token("u1", "abc")
        assert not self.store.remove_push_token("ghost", "abc")
        assert self.store.get_push_tokens("u1") == []

    def test_count_volunteer_records(self):
        for case_id, status in (("c1", "accepted"), ("c2", "completed"), ("c3", "withdrawn")):
            self.store.insert_volunteer(CaseVolunteer(case_id=case_id, volunteer_id="v1", status=status))

        assert self.store.count_volunteer_records("v1") == 3
        assert self.store.count_volunteer_records("v1", ["accepted", "en_route"]) == 1
        assert self.store.count_volunteer_records("v2") == 0


class TestNotificationInboxStore:
    """Inbox primitives."""

    def setup_method(self):
        self.store = InMemoryCaseStore()
        self.older = notification("u1", "Older", datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc))
        self.newer = notification("u1", "Newer", datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc))
        self.other = notification("u2", "Other", datetime(2026, 10, 18, 11, 0, tzinfo=timezone.utc))
        self.store.insert_notifications([self.older, self.newer, self.other])

    def test_list_newest_first(self):
        page = self.store.list_notifications("u1", page=1, limit=1)

        assert [n.title for n in page.items] == ["Newer"]
        assert page.total == 2

    def test_mark_read_only_for_owner(self):
        assert not self.store.mark_notification_read(self.older.id, "u2")
        assert self.store.mark_notification_read(self.older.id, "u1")
        assert not self.store.mark_notification_read("missing", "u1")

        assert self.store.count_unread_notifications("u1") == 1

    def test_mark_all_read(self):
        assert self.store.mark_all_notifications_read("u1") == 2
        assert self.store.mark_all_notifications_read("u1") == 0

        assert self.store.count_unread_notifications("u1") == 0
        assert self.store.count_unread_notifications("u2") == 1

    def test_empty_insert(self):
        self.store.insert_notifications([])

        assert self.store.health_check()["notifications"] == 3
