# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Case lifecycle coordinator.

Orchestrates case creation, volunteer acceptance, withdrawal, progress
updates and completion aggregation. Every multi-step mutation runs inside a
single storage transaction. Notifications and counter updates are handed to
the background runner after the transaction commits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

from opentelemetry import trace

from domain.cases import (
    ACTIVE_STATUSES,
    CompletionOutcome,
    can_accept_volunteers,
    can_transition_case,
    completion_outcome,
    is_active,
    moves_case_in_progress,
    reactivation_fields,
    status_override_stamps,
    transition_sources,
    validate_volunteer_transition,
    volunteer_status_stamps,
)
from domain.geo import bounding_box, distance_km
from domain.matching import VolunteerMatcher, rank_nearby_cases
from models.base import utc_now
from models.entities import Case, CaseComment, CaseUpdate, CaseVolunteer, GeoPoint
from models.enums import CaseStatus, UpdateType, VolunteerStatus
from models.requests import CaseListQuery, CreateCaseRequest, UpdateCaseRequest
from services.dispatcher import BackgroundRunner, NotificationDispatcher
from services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    already_accepted,
    case_closed,
    case_not_found,
    max_volunteers,
    not_accepted,
    user_not_found,
)
from services.storage import CaseFilters, CaseStore, PaginationResult

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """A finished completion aggregation and the case status change it made."""
    outcome: CompletionOutcome
    status_change: Tuple[str, str]


class CaseLifecycleCoordinator:
    """Apply case lifecycle operations atomically against the store."""

    def __init__(
        self,
        store: CaseStore,
        matcher: VolunteerMatcher,
        dispatcher: NotificationDispatcher,
        runner: BackgroundRunner,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.matcher = matcher
        self.dispatcher = dispatcher
        self.runner = runner
        self.clock = clock

    # Creation

    def create_case(self, request: CreateCaseRequest, reporter_id: Optional[str] = None) -> Case:
        """
        Persist a new pending case and start volunteer fan-out.

        Args:
            request: Validated case draft with its type specific details
            reporter_id: Authenticated reporter, None for anonymous reports

        Returns:
            The stored case

        Raises:
            ValidationError: DETAILS_MISMATCH when details describe another case type
        """
        with tracer.start_as_current_span("coordinator.create_case") as span:
            if request.details.case_type != request.case_type:
                raise ValidationError(
                    "DETAILS_MISMATCH",
                    f"Details for {request.details.case_type} do not match case type {request.case_type}"
                )

            case = Case(
                case_type=request.case_type,
                status=CaseStatus.PENDING,
                urgency=request.urgency,
                location=request.location(),
                address=request.address,
                location_note=request.location_note,
                title=request.title,
                description=request.description,
                reporter_id=reporter_id,
                reporter_name=request.reporter_name,
                reporter_phone=request.reporter_phone,
                is_anonymous=request.is_anonymous,
                max_volunteers=request.max_volunteers,
                details=request.details,
                media_urls=request.media_urls,
                created_at=self.clock(),
                updated_at=self.clock()
            )

            with self.store.transaction() as session:
                self.store.insert_case(case, session=session)
                self._append_update(
                    case.id, UpdateType.SYSTEM, session,
                    content="Case created", status_change=(None, CaseStatus.PENDING)
                )

            span.set_attributes({
                "case.id": case.id,
                "case.type": case.case_type,
                "case.urgency": case.urgency,
                "case.anonymous": reporter_id is None
            })
            logger.info(
                "Case created",
                extra={"case_id": case.id, "case_type": case.case_type, "urgency": case.urgency}
            )

        self.runner.submit("notify_new_case", self._fan_out_new_case, case)
        if reporter_id:
            self.runner.submit(
                "credit_reporter", self.store.increment_user_counter, reporter_id, "total_cases_reported"
            )
        return case

    def _fan_out_new_case(self, case: Case) -> None:
        excluded = [case.reporter_id] if case.reporter_id else []
        matches = self.matcher.match(case.location, case.case_type, case.urgency, exclude_user_ids=excluded)
        self.dispatcher.notify_new_case(case, matches)

    # Volunteer participation

    def accept(self, case_id: str, volunteer_id: str, location: Optional[GeoPoint] = None) -> CaseVolunteer:
        """
        Join a volunteer to a case, reactivating a withdrawn record if one exists.

        Args:
            case_id: Case identifier
            volunteer_id: Accepting user
            location: Volunteer position when accepting, optional

        Returns:
            The volunteer record after acceptance

        Raises:
            NotFoundError: CASE_NOT_FOUND or USER_NOT_FOUND
            ConflictError: CASE_CLOSED, MAX_VOLUNTEERS or ALREADY_ACCEPTED
        """
        with tracer.start_as_current_span("coordinator.accept") as span:
            span.set_attributes({"case.id": case_id, "volunteer.id": volunteer_id})

            case = self._require_case(case_id)
            if not is_active(case.status):
                raise case_closed(case_id, case.status)
            if not can_accept_volunteers(case):
                raise max_volunteers(case_id)

            existing = self.store.get_volunteer(case_id, volunteer_id)
            if existing is not None and not existing.is_withdrawn():
                raise already_accepted(case_id, volunteer_id)
            volunteer = self.store.get_user(volunteer_id)
            if volunteer is None:
                raise user_not_found(volunteer_id)

            now = self.clock()
            distance = distance_km(location, case.location) if location is not None else None

            with self.store.transaction() as session:
                if not self.store.increment_volunteer_count(case_id, session=session):
                    current = self.store.get_case(case_id, session=session)
                    if current is None:
                        raise case_not_found(case_id)
                    if not is_active(current.status):
                        raise case_closed(case_id, current.status)
                    raise max_volunteers(case_id)

                if existing is not None:
                    reactivated = self.store.update_volunteer(
                        case_id, volunteer_id, [VolunteerStatus.WITHDRAWN],
                        reactivation_fields(now, location, distance), session=session
                    )
                    if not reactivated:
                        raise already_accepted(case_id, volunteer_id)
                else:
                    self.store.insert_volunteer(CaseVolunteer(
                        case_id=case_id,
                        volunteer_id=volunteer_id,
                        volunteer_name=volunteer.display_name,
                        status=VolunteerStatus.ACCEPTED,
                        accepted_location=location,
                        distance_km=distance,
                        accepted_at=now,
                        created_at=now
                    ), session=session)

                became_accepted = self.store.transition_case_status(
                    case_id, transition_sources(CaseStatus.ACCEPTED), CaseStatus.ACCEPTED,
                    {"accepted_at": now}, session=session
                )
                self._append_update(
                    case_id, UpdateType.VOLUNTEER_JOINED, session,
                    user_id=volunteer_id,
                    content=f"{volunteer.display_name} joined the rescue",
                    status_change=(CaseStatus.PENDING, CaseStatus.ACCEPTED) if became_accepted else None
                )

            span.set_attributes({"volunteer.reactivated": existing is not None})
            logger.info(
                "Volunteer accepted case",
                extra={"case_id": case_id, "volunteer_id": volunteer_id, "reactivated": existing is not None}
            )

        updated_case = self.store.get_case(case_id)
        if updated_case is not None:
            self.runner.submit(
                "notify_case_accepted", self.dispatcher.notify_case_accepted,
                updated_case, volunteer.display_name
            )
        return self.store.get_volunteer(case_id, volunteer_id)

    def withdraw(self, case_id: str, volunteer_id: str) -> CaseVolunteer:
        """
        Withdraw a volunteer from a case, whatever progress the record made.

        Raises:
            NotFoundError: CASE_NOT_FOUND
            ConflictError: NOT_ACCEPTED when there is no active record
        """
        with tracer.start_as_current_span("coordinator.withdraw") as span:
            span.set_attributes({"case.id": case_id, "volunteer.id": volunteer_id})
            self._require_case(case_id)

            with self.store.transaction() as session:
                record = self.store.get_volunteer(case_id, volunteer_id, session=session)
                if record is None or record.is_withdrawn():
                    raise not_accepted(case_id, volunteer_id)
                validate_volunteer_transition(record.status, VolunteerStatus.WITHDRAWN)

                if not self.store.update_volunteer(
                    case_id, volunteer_id, [record.status],
                    {"status": VolunteerStatus.WITHDRAWN}, session=session
                ):
                    raise not_accepted(case_id, volunteer_id)

                self.store.decrement_volunteer_count(case_id, session=session)
                resolution = self._aggregate_completion(case_id, session)
                self._append_update(
                    case_id, UpdateType.VOLUNTEER_WITHDRAWN, session,
                    user_id=volunteer_id,
                    content=f"{record.volunteer_name or 'A volunteer'} withdrew",
                    status_change=resolution.status_change if resolution else None
                )

            logger.info("Volunteer withdrew", extra={"case_id": case_id, "volunteer_id": volunteer_id})

        if resolution is not None:
            self._after_resolution(case_id, resolution.outcome)
        return self.store.get_volunteer(case_id, volunteer_id)

    def update_volunteer_status(self, case_id: str, volunteer_id: str, status: str,
                                note: Optional[str] = None) -> CaseVolunteer:
        """
        Record a volunteer's progress on a case.

        Arrival and handling move an accepted case to in_progress. Completion
        runs completion aggregation in the same transaction. Either case
        status change is carried on the single volunteer_update entry.

        Args:
            case_id: Case identifier
            volunteer_id: Reporting volunteer
            status: New volunteer status
            note: Optional free text attached to the timeline entry

        Returns:
            The updated volunteer record

        Raises:
            NotFoundError: CASE_NOT_FOUND
            ConflictError: NOT_ACCEPTED, CASE_CLOSED or INVALID_TRANSITION
        """
        status = VolunteerStatus(status)
        if status == VolunteerStatus.WITHDRAWN:
            return self.withdraw(case_id, volunteer_id)

        with tracer.start_as_current_span("coordinator.update_volunteer_status") as span:
            span.set_attributes({"case.id": case_id, "volunteer.id": volunteer_id, "volunteer.status": status.value})
            self._require_case(case_id)
            now = self.clock()
            resolution = None
            status_change = None

            with self.store.transaction() as session:
                record = self.store.get_volunteer(case_id, volunteer_id, session=session)
                if record is None or record.is_withdrawn():
                    raise not_accepted(case_id, volunteer_id)

                case = self.store.get_case(case_id, session=session)
                if not is_active(case.status):
                    raise case_closed(case_id, case.status)
                validate_volunteer_transition(record.status, status)

                fields = {"status": status, **volunteer_status_stamps(status, now)}
                if note:
                    fields["note"] = note
                if not self.store.update_volunteer(case_id, volunteer_id, [record.status], fields, session=session):
                    raise ConflictError("INVALID_TRANSITION", "Volunteer status changed concurrently")

                if moves_case_in_progress(case.status, status):
                    if self.store.transition_case_status(
                        case_id, transition_sources(CaseStatus.IN_PROGRESS), CaseStatus.IN_PROGRESS,
                        session=session
                    ):
                        status_change = (case.status, CaseStatus.IN_PROGRESS)

                if status == VolunteerStatus.COMPLETED:
                    resolution = self._aggregate_completion(case_id, session)
                    if resolution is not None:
                        status_change = resolution.status_change

                self._append_update(
                    case_id, UpdateType.VOLUNTEER_UPDATE, session,
                    user_id=volunteer_id,
                    content=note or f"Status changed to {status.value}",
                    status_change=status_change
                )

            span.set_attribute("case.resolved", resolution is not None)

        if resolution is not None:
            self._after_resolution(case_id, resolution.outcome)
        return self.store.get_volunteer(case_id, volunteer_id)

    def _aggregate_completion(self, case_id: str, session: Any) -> Optional[Resolution]:
        """
        Resolve the case when every volunteer record is finished.

        Runs inside the caller's transaction. The case document is written on
        every call so two concurrent completions on one case conflict. The
        caller records the returned status change on its own timeline entry.
        """
        current = self.store.update_case_fields(case_id, {}, session=session)
        records = self.store.list_volunteers(case_id, include_withdrawn=True, session=session)
        outcome = completion_outcome(records)
        if not outcome.resolved or current is None:
            return None

        resolved = self.store.transition_case_status(
            case_id, transition_sources(CaseStatus.RESOLVED), CaseStatus.RESOLVED,
            {"resolved_at": self.clock()}, session=session
        )
        if not resolved:
            return None

        logger.info(
            "Case resolved",
            extra={"case_id": case_id, "completed_volunteers": len(outcome.completed_volunteer_ids)}
        )
        return Resolution(outcome, (current.status, CaseStatus.RESOLVED))

    def _after_resolution(self, case_id: str, outcome: CompletionOutcome) -> None:
        for volunteer_id in outcome.completed_volunteer_ids:
            self.runner.submit(
                "credit_volunteer", self.store.increment_user_counter, volunteer_id, "total_cases_resolved"
            )
        case = self.store.get_case(case_id)
        if case is not None:
            self.runner.submit(
                "notify_case_resolved", self.dispatcher.notify_case_resolved,
                case, outcome.completed_volunteer_ids
            )

    # Reporter operations

    def update_case(self, case_id: str, requester_id: str, patch: UpdateCaseRequest) -> Case:
        """
        Apply a reporter's edit, including an optional status override.

        Raises:
            NotFoundError: CASE_NOT_FOUND
            ForbiddenError: FORBIDDEN when the requester is not the reporter
            ValidationError: INVALID_CAPACITY when capacity drops below the volunteer count
        """
        with tracer.start_as_current_span("coordinator.update_case") as span:
            span.set_attributes({"case.id": case_id, "user.id": requester_id})
            case = self._require_reporter(case_id, requester_id)

            changes = patch.changes()
            max_volunteers = changes.get("max_volunteers")
            if max_volunteers is not None and max_volunteers < case.volunteer_count:
                raise ValidationError(
                    "INVALID_CAPACITY",
                    f"Capacity cannot be lower than the current {case.volunteer_count} volunteers"
                )

            new_status = patch.status
            status_changed = new_status is not None and new_status != case.status
            if status_changed:
                changes["status"] = new_status
                changes.update(status_override_stamps(new_status, self.clock(), case))

            with self.store.transaction() as session:
                updated = self.store.update_case_fields(case_id, changes, session=session)
                if updated is None:
                    raise case_not_found(case_id)
                if status_changed:
                    self._append_update(
                        case_id, UpdateType.STATUS_CHANGE, session,
                        user_id=requester_id,
                        content="Status changed by reporter",
                        status_change=(case.status, new_status)
                    )

            logger.info(
                "Case updated by reporter",
                extra={"case_id": case_id, "fields": sorted(changes), "status_changed": status_changed}
            )
            return updated

    def delete_case(self, case_id: str, requester_id: str) -> None:
        """
        Soft delete a case by cancelling it. History is kept.

        Raises:
            NotFoundError: CASE_NOT_FOUND
            ForbiddenError: FORBIDDEN when the requester is not the reporter
            ConflictError: CASE_CLOSED for resolved or expired cases
        """
        with tracer.start_as_current_span("coordinator.delete_case"):
            case = self._require_reporter(case_id, requester_id)
            if case.status == CaseStatus.CANCELLED:
                return
            if not can_transition_case(case.status, CaseStatus.CANCELLED):
                raise case_closed(case_id, case.status)

            with self.store.transaction() as session:
                if not self.store.transition_case_status(
                    case_id, transition_sources(CaseStatus.CANCELLED), CaseStatus.CANCELLED, session=session
                ):
                    current = self.store.get_case(case_id, session=session)
                    if current is not None and current.status == CaseStatus.CANCELLED:
                        return
                    raise case_closed(case_id, current.status if current else "missing")
                self._append_update(
                    case_id, UpdateType.STATUS_CHANGE, session,
                    user_id=requester_id,
                    content="Case cancelled by reporter",
                    status_change=(case.status, CaseStatus.CANCELLED)
                )

            logger.info("Case cancelled", extra={"case_id": case_id, "user_id": requester_id})

    # Reads

    def get_case(self, case_id: str) -> Case:
        return self._require_case(case_id)

    def list_cases(self, query: CaseListQuery) -> PaginationResult:
        filters = CaseFilters(q=query.q, case_type=query.type, status=query.status, urgency=query.urgency)
        return self.store.find_cases(filters, page=query.page, limit=query.limit)

    def nearby_cases(self, location: GeoPoint, radius_km: float = 10, types: Sequence[str] = (),
                     limit: int = 20) -> List[Tuple[Case, float]]:
        """Active cases within radius_km, most urgent first then nearest."""
        with tracer.start_as_current_span("coordinator.nearby_cases") as span:
            box = bounding_box(location, radius_km)
            candidates = self.store.find_cases_in_box(box, ACTIVE_STATUSES)
            ranked = rank_nearby_cases(location, candidates, radius_km, limit, types)
            span.set_attributes({"nearby.candidates": len(candidates), "nearby.results": len(ranked)})
            return ranked

    def list_volunteers(self, case_id: str) -> List[CaseVolunteer]:
        self._require_case(case_id)
        return self.store.list_volunteers(case_id, include_withdrawn=False)

    def reported_cases(self, user_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        return self.store.find_cases(CaseFilters(reporter_id=user_id), page=page, limit=limit)

    def accepted_cases(self, user_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        case_ids = self.store.list_volunteer_case_ids(user_id)
        return self.store.find_cases(CaseFilters(case_ids=case_ids), page=page, limit=limit)

    # Timeline and comments

    def add_update(self, case_id: str, user_id: str, content: str,
                   media_urls: Optional[List[str]] = None) -> CaseUpdate:
        """
        Post a free text timeline entry as the reporter or an active volunteer.

        Raises:
            ForbiddenError: FORBIDDEN for anyone else
        """
        case = self._require_case(case_id)
        if case.is_reported_by(user_id):
            update_type = UpdateType.REPORTER_UPDATE
        else:
            record = self.store.get_volunteer(case_id, user_id)
            if record is None or record.is_withdrawn():
                raise ForbiddenError("FORBIDDEN", "Only the reporter or a volunteer can post updates")
            update_type = UpdateType.VOLUNTEER_UPDATE

        update = CaseUpdate(
            case_id=case_id,
            update_type=update_type,
            user_id=user_id,
            content=content,
            media_urls=media_urls or [],
            created_at=self.clock()
        )
        self.store.append_update(update)
        return update

    def list_updates(self, case_id: str) -> List[CaseUpdate]:
        self._require_case(case_id)
        return self.store.list_updates(case_id)

    def add_comment(self, case_id: str, user_id: str, content: str) -> CaseComment:
        self._require_case(case_id)
        now = self.clock()
        comment = CaseComment(case_id=case_id, user_id=user_id, content=content, created_at=now, updated_at=now)
        self.store.insert_comment(comment)
        return comment

    def list_comments(self, case_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        self._require_case(case_id)
        return self.store.list_comments(case_id, page=page, limit=limit)

    def delete_comment(self, comment_id: str, user_id: str) -> None:
        """Delete one of the caller's own comments."""
        comment = self.store.get_comment(comment_id)
        if comment is None:
            raise NotFoundError("COMMENT_NOT_FOUND", f"Comment {comment_id} not found")
        if comment.user_id != user_id:
            raise ForbiddenError("FORBIDDEN", "Only the author can delete a comment")
        self.store.delete_comment(comment_id)

    # Helpers

    def _require_case(self, case_id: str) -> Case:
        case = self.store.get_case(case_id)
        if case is None:
            raise case_not_found(case_id)
        return case

    def _require_reporter(self, case_id: str, requester_id: str) -> Case:
        case = self._require_case(case_id)
        if not case.is_reported_by(requester_id):
            raise ForbiddenError("FORBIDDEN", "Only the reporter can change this case")
        return case

    def _append_update(self, case_id: str, update_type: UpdateType, session: Any,
                       user_id: Optional[str] = None, content: Optional[str] = None,
                       status_change: Optional[Tuple[Optional[str], str]] = None) -> None:
        old_status, new_status = status_change or (None, None)
        self.store.append_update(CaseUpdate(
            case_id=case_id,
            update_type=update_type,
            user_id=user_id,
            content=content,
            old_status=old_status,
            new_status=new_status,
            created_at=self.clock()
        ), session=session)
