# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the case lifecycle coordinator against the in-memory store.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import patch

from models.entities import GeoPoint
from models.requests import CaseListQuery, CreateCaseRequest, UpdateCaseRequest
from services.errors import ConflictError, ForbiddenError, InternalError, NotFoundError, ValidationError

NOON_UTC = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def active_count(store, case_id):
    return len(store.list_volunteers(case_id, include_withdrawn=False))


class TestCreateCase:
    """Case creation and fan-out."""

    def test_creates_pending_case_with_timeline(self, create_case, store):
        case = create_case()

        stored = store.get_case(case.id)
        assert stored.status == "pending"
        assert stored.details.case_type == "flood"
        assert stored.details.people_count == 4
        updates = store.list_updates(case.id)
        assert [u.update_type for u in updates] == ["system"]
        assert updates[0].new_status == "pending"

    def test_notifies_matched_volunteers_but_not_reporter(self, create_case, make_volunteer, push):
        make_volunteer("v1")
        make_volunteer("reporter-1")

        create_case(reporter_id="reporter-1")

        notified = [c.args[0] for c in push.send_to_user.call_args_list]
        assert notified == ["v1"]
        payload = push.send_to_user.call_args.args[1]
        assert payload.type == "new_case_nearby"
        assert payload.urgency == "critical"

    def test_credits_reporter(self, create_case, make_volunteer, store):
        make_volunteer("reporter-1")

        create_case(reporter_id="reporter-1")

        assert store.get_user("reporter-1").total_cases_reported == 1

    def test_anonymous_report(self, create_case, store):
        case = create_case(reporter_id=None)

        assert store.get_case(case.id).reporter_id is None

    def test_details_must_match_type(self, coordinator, case_payload):
        request = CreateCaseRequest(**case_payload(
            details={"case_type": "animal", "animal_type": "dog", "condition": "injured"}
        ))

        with pytest.raises(ValidationError) as exc_info:
            coordinator.create_case(request, reporter_id="reporter-1")
        assert exc_info.value.code == "DETAILS_MISMATCH"

    def test_push_failure_does_not_fail_creation(self, create_case, make_volunteer, push, store):
        make_volunteer("v1")
        push.send_to_user.side_effect = RuntimeError("gateway down")

        case = create_case()

        assert store.get_case(case.id) is not None


class TestAccept:
    """Volunteer acceptance."""

    def test_first_accept_moves_case_to_accepted(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()

        record = coordinator.accept(case.id, "v1", GeoPoint(latitude=10.78, longitude=106.71))

        stored = store.get_case(case.id)
        assert stored.status == "accepted"
        assert stored.accepted_at == NOON_UTC
        assert stored.volunteer_count == 1
        assert record.status == "accepted"
        assert record.distance_km == pytest.approx(1.56, abs=0.01)
        assert store.list_updates(case.id)[-1].update_type == "volunteer_joined"

    def test_second_accept_keeps_status(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        make_volunteer("v2")
        case = create_case()
        coordinator.accept(case.id, "v1")
        coordinator.update_volunteer_status(case.id, "v1", "on_site")

        coordinator.accept(case.id, "v2")

        stored = store.get_case(case.id)
        assert stored.status == "in_progress"
        assert stored.volunteer_count == 2

    def test_notifies_reporter(self, coordinator, create_case, make_volunteer, push):
        make_volunteer("v1")
        case = create_case(reporter_id="reporter-1")
        push.reset_mock()

        coordinator.accept(case.id, "v1")

        push.send_to_user.assert_called_once()
        user_id, payload = push.send_to_user.call_args.args
        assert user_id == "reporter-1"
        assert payload.type == "case_accepted"

    def test_capacity_enforced(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        make_volunteer("v2")
        case = create_case(max_volunteers=1)
        coordinator.accept(case.id, "v1")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.accept(case.id, "v2")
        assert exc_info.value.code == "MAX_VOLUNTEERS"

    def test_double_accept_rejected(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        case = create_case()
        coordinator.accept(case.id, "v1")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.accept(case.id, "v1")
        assert exc_info.value.code == "ALREADY_ACCEPTED"

    def test_closed_case_rejected(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        case = create_case(reporter_id="reporter-1")
        coordinator.delete_case(case.id, "reporter-1")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.accept(case.id, "v1")
        assert exc_info.value.code == "CASE_CLOSED"

    def test_missing_case(self, coordinator, make_volunteer):
        make_volunteer("v1")

        with pytest.raises(NotFoundError) as exc_info:
            coordinator.accept("missing", "v1")
        assert exc_info.value.code == "CASE_NOT_FOUND"

    def test_unknown_volunteer(self, coordinator, create_case):
        case = create_case()

        with pytest.raises(NotFoundError) as exc_info:
            coordinator.accept(case.id, "ghost")
        assert exc_info.value.code == "USER_NOT_FOUND"

    def test_full_case_reported_before_existing_record(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        case = create_case(max_volunteers=1)
        coordinator.accept(case.id, "v1")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.accept(case.id, "v1")
        assert exc_info.value.code == "MAX_VOLUNTEERS"

    def test_closed_case_reported_before_unknown_volunteer(self, coordinator, create_case):
        case = create_case(reporter_id="reporter-1")
        coordinator.delete_case(case.id, "reporter-1")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.accept(case.id, "ghost")
        assert exc_info.value.code == "CASE_CLOSED"

    def test_storage_failure_rolls_back(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()

        with patch.object(store, "insert_volunteer", side_effect=InternalError("STORAGE_ERROR", "write failed")):
            with pytest.raises(InternalError):
                coordinator.accept(case.id, "v1")

        stored = store.get_case(case.id)
        assert stored.volunteer_count == 0
        assert stored.status == "pending"


class TestWithdraw:
    """Withdrawal and re-acceptance."""

    def test_withdraw_decrements_count(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()
        coordinator.accept(case.id, "v1")

        record = coordinator.withdraw(case.id, "v1")

        assert record.status == "withdrawn"
        assert store.get_case(case.id).volunteer_count == 0
        assert store.list_updates(case.id)[-1].update_type == "volunteer_withdrawn"

    def test_withdraw_without_record(self, coordinator, create_case):
        case = create_case()

        with pytest.raises(ConflictError) as exc_info:
            coordinator.withdraw(case.id, "v1")
        assert exc_info.value.code == "NOT_ACCEPTED"

    def test_reaccept_reuses_record(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()
        first = coordinator.accept(case.id, "v1")
        coordinator.update_volunteer_status(case.id, "v1", "on_site")
        coordinator.withdraw(case.id, "v1")

        again = coordinator.accept(case.id, "v1")

        assert again.id == first.id
        assert again.status == "accepted"
        assert again.arrived_at is None
        assert store.get_case(case.id).volunteer_count == 1
        assert len(store.list_volunteers(case.id)) == 1

    def test_completed_record_may_withdraw(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        make_volunteer("v2")
        case = create_case()
        coordinator.accept(case.id, "v1")
        coordinator.accept(case.id, "v2")
        coordinator.update_volunteer_status(case.id, "v1", "completed")

        record = coordinator.withdraw(case.id, "v1")

        assert record.status == "withdrawn"
        stored = store.get_case(case.id)
        assert stored.volunteer_count == active_count(store, case.id) == 1
        assert stored.status == "accepted"

    def test_count_matches_active_records(self, coordinator, create_case, make_volunteer, store):
        for volunteer_id in ("v1", "v2", "v3"):
            make_volunteer(volunteer_id)
        case = create_case()
        coordinator.accept(case.id, "v1")
        coordinator.accept(case.id, "v2")
        coordinator.withdraw(case.id, "v1")
        coordinator.accept(case.id, "v3")
        coordinator.accept(case.id, "v1")
        coordinator.withdraw(case.id, "v2")

        assert store.get_case(case.id).volunteer_count == active_count(store, case.id) == 2


class TestVolunteerProgress:
    """Progress updates and auto-resolution."""

    def test_arrival_stamps_and_starts_work(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()
        coordinator.accept(case.id, "v1")

        record = coordinator.update_volunteer_status(case.id, "v1", "on_site", note="At the gate")

        assert record.arrived_at == NOON_UTC
        assert record.note == "At the gate"
        assert store.get_case(case.id).status == "in_progress"

    def test_arrival_is_one_timeline_entry(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()
        coordinator.accept(case.id, "v1")
        before = len(store.list_updates(case.id))

        coordinator.update_volunteer_status(case.id, "v1", "on_site")

        updates = store.list_updates(case.id)
        assert len(updates) == before + 1
        assert updates[-1].update_type == "volunteer_update"
        assert (updates[-1].old_status, updates[-1].new_status) == ("accepted", "in_progress")

    def test_progress_without_case_change_has_no_status(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()
        coordinator.accept(case.id, "v1")

        coordinator.update_volunteer_status(case.id, "v1", "en_route")

        last = store.list_updates(case.id)[-1]
        assert last.update_type == "volunteer_update"
        assert (last.old_status, last.new_status) == (None, None)

    def test_resolution_is_carried_on_completion_entry(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        case = create_case()
        coordinator.accept(case.id, "v1")
        coordinator.update_volunteer_status(case.id, "v1", "on_site")
        before = len(store.list_updates(case.id))

        coordinator.update_volunteer_status(case.id, "v1", "completed")

        updates = store.list_updates(case.id)
        assert len(updates) == before + 1
        assert updates[-1].update_type == "volunteer_update"
        assert (updates[-1].old_status, updates[-1].new_status) == ("in_progress", "resolved")

    def test_backwards_rejected(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        case = create_case()
        coordinator.accept(case.id, "v1")
        coordinator.update_volunteer_status(case.id, "v1", "handling")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.update_volunteer_status(case.id, "v1", "en_route")
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_not_accepted(self, coordinator, create_case):
        case = create_case()

        with pytest.raises(ConflictError) as exc_info:
            coordinator.update_volunteer_status(case.id, "v1", "en_route")
        assert exc_info.value.code == "NOT_ACCEPTED"

    def test_last_completion_resolves(self, coordinator, create_case, make_volunteer, store, push):
        make_volunteer("v1")
        make_volunteer("reporter-1")
        case = create_case(reporter_id="reporter-1")
        coordinator.accept(case.id, "v1")

        record = coordinator.update_volunteer_status(case.id, "v1", "completed")

        stored = store.get_case(case.id)
        assert record.completed_at == NOON_UTC
        assert stored.status == "resolved"
        assert stored.resolved_at == NOON_UTC
        assert store.get_user("v1").total_cases_resolved == 1
        recipients, payload = push.send_to_users.call_args.args
        assert recipients == ["v1", "reporter-1"]
        assert payload.type == "case_resolved"

    def test_open_volunteer_blocks_resolution(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        make_volunteer("v2")
        case = create_case()
        coordinator.accept(case.id, "v1")
        coordinator.accept(case.id, "v2")

        coordinator.update_volunteer_status(case.id, "v1", "completed")

        assert store.get_case(case.id).status == "accepted"
        assert store.get_user("v1").total_cases_resolved == 0

    def test_withdrawal_of_last_open_volunteer_resolves(self, coordinator, create_case, make_volunteer, store):
        make_volunteer("v1")
        make_volunteer("v2")
        case = create_case()
        coordinator.accept(case.id, "v1")
        coordinator.accept(case.id, "v2")
        coordinator.update_volunteer_status(case.id, "v1", "completed")

        coordinator.withdraw(case.id, "v2")

        assert store.get_case(case.id).status == "resolved"
        assert store.get_user("v1").total_cases_resolved == 1
        assert store.get_user("v2").total_cases_resolved == 0
        last = store.list_updates(case.id)[-1]
        assert last.update_type == "volunteer_withdrawn"
        assert (last.old_status, last.new_status) == ("accepted", "resolved")
        assert [u.new_status for u in store.list_updates(case.id)].count("resolved") == 1

    def test_closed_case_rejects_progress(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        case = create_case(reporter_id="reporter-1")
        coordinator.accept(case.id, "v1")
        coordinator.delete_case(case.id, "reporter-1")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.update_volunteer_status(case.id, "v1", "en_route")
        assert exc_info.value.code == "CASE_CLOSED"


class TestReporterOperations:
    """Reporter edits and cancellation."""

    def test_only_reporter_may_update(self, coordinator, create_case):
        case = create_case(reporter_id="reporter-1")

        with pytest.raises(ForbiddenError):
            coordinator.update_case(case.id, "someone-else", UpdateCaseRequest(title="Hijacked title"))

    def test_anonymous_case_cannot_be_edited(self, coordinator, create_case):
        case = create_case(reporter_id=None)

        with pytest.raises(ForbiddenError):
            coordinator.update_case(case.id, "anyone", UpdateCaseRequest(title="Some new title"))

    def test_update_fields(self, coordinator, create_case):
        case = create_case(reporter_id="reporter-1")

        updated = coordinator.update_case(case.id, "reporter-1", UpdateCaseRequest(title="Water now at second floor"))

        assert updated.title == "Water now at second floor"
        assert updated.status == "pending"

    def test_status_override_logged(self, coordinator, create_case, store):
        case = create_case(reporter_id="reporter-1")

        updated = coordinator.update_case(case.id, "reporter-1", UpdateCaseRequest(status="resolved"))

        assert updated.status == "resolved"
        assert updated.resolved_at == NOON_UTC
        last = store.list_updates(case.id)[-1]
        assert last.update_type == "status_change"
        assert (last.old_status, last.new_status) == ("pending", "resolved")

    def test_capacity_below_current_count(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        make_volunteer("v2")
        case = create_case(reporter_id="reporter-1")
        coordinator.accept(case.id, "v1")
        coordinator.accept(case.id, "v2")

        with pytest.raises(ValidationError) as exc_info:
            coordinator.update_case(case.id, "reporter-1", UpdateCaseRequest(max_volunteers=1))
        assert exc_info.value.code == "INVALID_CAPACITY"

    def test_delete_cancels_and_keeps_history(self, coordinator, create_case, store):
        case = create_case(reporter_id="reporter-1")

        coordinator.delete_case(case.id, "reporter-1")
        coordinator.delete_case(case.id, "reporter-1")

        assert store.get_case(case.id).status == "cancelled"
        assert [u.update_type for u in store.list_updates(case.id)] == ["system", "status_change"]

    def test_delete_resolved_case(self, coordinator, create_case):
        case = create_case(reporter_id="reporter-1")
        coordinator.update_case(case.id, "reporter-1", UpdateCaseRequest(status="resolved"))

        with pytest.raises(ConflictError) as exc_info:
            coordinator.delete_case(case.id, "reporter-1")
        assert exc_info.value.code == "CASE_CLOSED"


class TestQueries:
    """Listing, nearby search and history."""

    def test_list_with_filters(self, coordinator, create_case):
        create_case(title="Dog trapped under car", case_type="animal",
                    details={"animal_type": "dog", "condition": "trapped"})
        create_case()

        result = coordinator.list_cases(CaseListQuery(type="animal"))
        assert result.total == 1
        assert result.items[0].case_type == "animal"

        result = coordinator.list_cases(CaseListQuery(q="roof"))
        assert result.total == 1

    def test_nearby(self, coordinator, create_case):
        near = create_case(urgency="low")
        urgent = create_case(urgency="critical", latitude=10.80, longitude=106.70)
        create_case(latitude=12.0, longitude=108.0)

        ranked = coordinator.nearby_cases(GeoPoint(latitude=10.77, longitude=106.70), radius_km=10)

        assert [case.id for case, _ in ranked] == [urgent.id, near.id]

    def test_reported_and_accepted(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        case = create_case(reporter_id="reporter-1")
        create_case(reporter_id="reporter-2")
        coordinator.accept(case.id, "v1")

        assert coordinator.reported_cases("reporter-1").total == 1
        accepted = coordinator.accepted_cases("v1")
        assert [c.id for c in accepted.items] == [case.id]

    def test_updates_limited_to_participants(self, coordinator, create_case, make_volunteer):
        make_volunteer("v1")
        case = create_case(reporter_id="reporter-1")
        coordinator.accept(case.id, "v1")

        assert coordinator.add_update(case.id, "reporter-1", "Still waiting").update_type == "reporter_update"
        assert coordinator.add_update(case.id, "v1", "Five minutes away").update_type == "volunteer_update"
        with pytest.raises(ForbiddenError):
            coordinator.add_update(case.id, "stranger", "Hello")

    def test_comments(self, coordinator, create_case):
        case = create_case()
        comment = coordinator.add_comment(case.id, "u1", "  I can bring a boat  ")
        assert comment.content == "I can bring a boat"

        with pytest.raises(ForbiddenError):
            coordinator.delete_comment(comment.id, "u2")
        coordinator.delete_comment(comment.id, "u1")

        assert coordinator.list_comments(case.id).total == 0
        with pytest.raises(NotFoundError) as exc_info:
            coordinator.delete_comment(comment.id, "u1")
        assert exc_info.value.code == "COMMENT_NOT_FOUND"
