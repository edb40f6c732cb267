# SPDX-License-Identifier: Apache-2.0

"""
Case lifecycle domain logic.

This module contains pure functions for case and volunteer status
transitions, capacity checks and completion aggregation. Nothing here
touches storage; the coordinator applies the results atomically.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from models.entities import Case, CaseVolunteer, GeoPoint
from models.enums import CaseStatus, UrgencyLevel, VolunteerStatus
from services.errors import ConflictError

ACTIVE_STATUSES = (CaseStatus.PENDING, CaseStatus.ACCEPTED, CaseStatus.IN_PROGRESS)

# Valid case status transitions
CASE_TRANSITIONS = {
    CaseStatus.PENDING: [CaseStatus.ACCEPTED, CaseStatus.CANCELLED, CaseStatus.EXPIRED],
    CaseStatus.ACCEPTED: [
        CaseStatus.IN_PROGRESS, CaseStatus.RESOLVED, CaseStatus.CANCELLED, CaseStatus.EXPIRED
    ],
    CaseStatus.IN_PROGRESS: [CaseStatus.RESOLVED, CaseStatus.CANCELLED, CaseStatus.EXPIRED],
    CaseStatus.RESOLVED: [],
    CaseStatus.CANCELLED: [],
    CaseStatus.EXPIRED: [],
}

# Progress order of a volunteer working a case
VOLUNTEER_PROGRESS = [
    VolunteerStatus.ACCEPTED,
    VolunteerStatus.EN_ROUTE,
    VolunteerStatus.ON_SITE,
    VolunteerStatus.HANDLING,
    VolunteerStatus.COMPLETED,
]

URGENCY_PRIORITY = {
    UrgencyLevel.CRITICAL: 1,
    UrgencyLevel.HIGH: 2,
    UrgencyLevel.MEDIUM: 3,
    UrgencyLevel.LOW: 4,
}


@dataclass
class CompletionOutcome:
    """Result of evaluating a case's volunteer records for auto-resolution."""
    resolved: bool
    completed_volunteer_ids: List[str] = field(default_factory=list)


def is_active(status: str) -> bool:
    """Check if a case in this status still takes volunteer work."""
    return status in ACTIVE_STATUSES


def can_accept_volunteers(case: Case) -> bool:
    return is_active(case.status) and case.volunteer_count < case.max_volunteers


def urgency_priority(urgency: str) -> int:
    """Sort key for urgency, most urgent first."""
    return URGENCY_PRIORITY.get(UrgencyLevel(urgency), len(URGENCY_PRIORITY) + 1)


def can_transition_case(current_status: str, new_status: str) -> bool:
    return CaseStatus(new_status) in CASE_TRANSITIONS.get(CaseStatus(current_status), [])


def transition_sources(new_status: str) -> List[CaseStatus]:
    """
    Statuses a case may leave to reach new_status.

    Storage uses this list as the compare-and-set precondition, so a status
    change only lands when the stored status still allows it.
    """
    target = CaseStatus(new_status)
    return [status for status, targets in CASE_TRANSITIONS.items() if target in targets]


def validate_volunteer_transition(current_status: str, new_status: str) -> None:
    """
    Validate a volunteer status change.

    Forward progress may skip steps but never goes backwards. Any record that
    is not already withdrawn may be withdrawn, completed ones included.
    Leaving withdrawn is only possible through reactivation.

    Raises:
        ConflictError: INVALID_TRANSITION when the move is not allowed
    """
    current = VolunteerStatus(current_status)
    new = VolunteerStatus(new_status)

    if new == VolunteerStatus.WITHDRAWN:
        allowed = current != VolunteerStatus.WITHDRAWN
    elif current == VolunteerStatus.WITHDRAWN:
        allowed = False
    else:
        allowed = VOLUNTEER_PROGRESS.index(new) > VOLUNTEER_PROGRESS.index(current)

    if not allowed:
        raise ConflictError(
            "INVALID_TRANSITION",
            f"Volunteer status cannot move from {current.value} to {new.value}"
        )


def volunteer_status_stamps(new_status: str, now: datetime) -> Dict[str, Any]:
    """Timestamp fields set when a volunteer reaches a status."""
    status = VolunteerStatus(new_status)
    if status == VolunteerStatus.ON_SITE:
        return {"arrived_at": now}
    if status == VolunteerStatus.COMPLETED:
        return {"completed_at": now}
    return {}


def reactivation_fields(now: datetime, location: Optional[GeoPoint],
                        distance: Optional[float]) -> Dict[str, Any]:
    """Field values that reset a withdrawn record to a fresh acceptance."""
    return {
        "status": VolunteerStatus.ACCEPTED.value,
        "accepted_at": now,
        "accepted_location": location,
        "distance_km": distance,
        "arrived_at": None,
        "completed_at": None,
    }


def moves_case_in_progress(case_status: str, volunteer_status: str) -> bool:
    """A volunteer arriving or handling pushes an accepted case into in_progress."""
    return (
        volunteer_status in (VolunteerStatus.ON_SITE, VolunteerStatus.HANDLING)
        and can_transition_case(case_status, CaseStatus.IN_PROGRESS)
    )


def completion_outcome(records: Iterable[CaseVolunteer]) -> CompletionOutcome:
    """
    Decide whether a case's volunteer work is finished.

    The case resolves when it has at least one record, every record is
    completed or withdrawn, and at least one volunteer completed.

    Args:
        records: All volunteer records of the case, withdrawn included

    Returns:
        CompletionOutcome listing the volunteers to credit
    """
    records = list(records)
    if not records:
        return CompletionOutcome(resolved=False)

    finished = (VolunteerStatus.COMPLETED, VolunteerStatus.WITHDRAWN)
    if any(record.status not in finished for record in records):
        return CompletionOutcome(resolved=False)

    completed = [r.volunteer_id for r in records if r.status == VolunteerStatus.COMPLETED]
    return CompletionOutcome(resolved=bool(completed), completed_volunteer_ids=completed)


def status_override_stamps(new_status: str, now: datetime, case: Case) -> Dict[str, Any]:
    """Timestamps a reporter status override sets when they are still empty."""
    stamps = {}
    if new_status in (CaseStatus.ACCEPTED, CaseStatus.IN_PROGRESS) and case.accepted_at is None:
        stamps["accepted_at"] = now
    if new_status == CaseStatus.RESOLVED and case.resolved_at is None:
        stamps["resolved_at"] = now
    return stamps
