# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Storage interface used by the case lifecycle coordinator and the matcher.

Every write primitive accepts an optional ``session`` so several of them can
run inside one ``transaction()``. Conditional primitives return ``False``
instead of raising when their precondition does not hold, letting the
caller decide which domain error applies.
"""

import math
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from domain.geo import BoundingBox
from models.entities import (
    Case, CaseComment, CaseUpdate, CaseVolunteer, Notification, PushToken, VolunteerProfile
)


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Any], total: int, page: int, limit: int):
        self.items = items
        self.total = total
        self.page = page
        self.limit = limit
        self.total_pages = math.ceil(total / limit) if limit else 0
        self.has_next = page < self.total_pages
        self.has_prev = page > 1

    def to_dict(self, serialize: Callable[[Any], Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "items": [serialize(item) for item in self.items],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_prev": self.has_prev
        }


@dataclass
class CaseFilters:
    """Filters for case listing queries."""
    q: Optional[str] = None
    case_type: Optional[str] = None
    status: Optional[str] = None
    urgency: Optional[str] = None
    reporter_id: Optional[str] = None
    case_ids: Optional[List[str]] = None


def storage_value(value: Any) -> Any:
    """Convert a field value to its stored representation."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [storage_value(item) for item in value]
    return value


def storage_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Map snake_case entity fields to stored camelCase keys."""
    return {to_camel(name): storage_value(value) for name, value in fields.items()}


class CaseStore(ABC):
    """Persistence collaborator for cases, volunteer records and users."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Run the enclosed primitives as one atomic unit, yielding a session."""

    # Cases

    @abstractmethod
    def insert_case(self, case: Case, session: Any = None) -> None:
        ...

    @abstractmethod
    def get_case(self, case_id: str, session: Any = None) -> Optional[Case]:
        ...

    @abstractmethod
    def update_case_fields(self, case_id: str, fields: Dict[str, Any],
                           session: Any = None) -> Optional[Case]:
        """Set fields and bump updated_at; returns the updated case or None if missing."""

    @abstractmethod
    def transition_case_status(self, case_id: str, from_statuses: Sequence[str], new_status: str,
                               stamps: Optional[Dict[str, Any]] = None, session: Any = None) -> bool:
        """Compare-and-set the status; False when the case is not in from_statuses."""

    @abstractmethod
    def increment_volunteer_count(self, case_id: str, session: Any = None) -> bool:
        """Increment only while the case is active and under capacity."""

    @abstractmethod
    def decrement_volunteer_count(self, case_id: str, session: Any = None) -> None:
        """Decrement, never below zero."""

    @abstractmethod
    def find_cases(self, filters: CaseFilters, page: int = 1, limit: int = 20) -> PaginationResult:
        """Newest first."""

    @abstractmethod
    def find_cases_in_box(self, box: BoundingBox, statuses: Sequence[str]) -> List[Case]:
        ...

    # Volunteer records

    @abstractmethod
    def insert_volunteer(self, record: CaseVolunteer, session: Any = None) -> None:
        """Raises ConflictError ALREADY_ACCEPTED when the (case, volunteer) pair exists."""

    @abstractmethod
    def get_volunteer(self, case_id: str, volunteer_id: str,
                      session: Any = None) -> Optional[CaseVolunteer]:
        ...

    @abstractmethod
    def update_volunteer(self, case_id: str, volunteer_id: str, expected_statuses: Sequence[str],
                         fields: Dict[str, Any], session: Any = None) -> bool:
        """Update the record only if its status is one of expected_statuses."""

    @abstractmethod
    def list_volunteers(self, case_id: str, include_withdrawn: bool = True,
                        session: Any = None) -> List[CaseVolunteer]:
        ...

    @abstractmethod
    def list_volunteer_case_ids(self, volunteer_id: str) -> List[str]:
        """Cases the volunteer has a non-withdrawn record on."""

    @abstractmethod
    def count_volunteer_records(self, volunteer_id: str, statuses: Optional[Sequence[str]] = None) -> int:
        """Records of the volunteer, optionally only those in statuses."""

    # Timeline

    @abstractmethod
    def append_update(self, update: CaseUpdate, session: Any = None) -> None:
        ...

    @abstractmethod
    def list_updates(self, case_id: str) -> List[CaseUpdate]:
        """Oldest first."""

    # Comments

    @abstractmethod
    def insert_comment(self, comment: CaseComment) -> None:
        ...

    @abstractmethod
    def get_comment(self, comment_id: str) -> Optional[CaseComment]:
        ...

    @abstractmethod
    def list_comments(self, case_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        """Oldest first."""

    @abstractmethod
    def delete_comment(self, comment_id: str) -> bool:
        ...

    # Users

    @abstractmethod
    def get_user(self, user_id: str, session: Any = None) -> Optional[VolunteerProfile]:
        ...

    @abstractmethod
    def save_user(self, user: VolunteerProfile) -> None:
        """Insert or replace."""

    @abstractmethod
    def update_user_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[VolunteerProfile]:
        ...

    @abstractmethod
    def find_volunteers_in_box(self, box: BoundingBox) -> List[VolunteerProfile]:
        """Available, active users whose live location or fixed center lies in the box."""

    @abstractmethod
    def increment_user_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        ...

    @abstractmethod
    def add_push_token(self, user_id: str, token: PushToken) -> bool:
        """Register or refresh a token; False when the user does not exist."""

    @abstractmethod
    def remove_push_token(self, user_id: str, token: str) -> bool:
        """Unregister a device token; False when the user has no such token."""

    @abstractmethod
    def get_push_tokens(self, user_id: str) -> List[str]:
        """Active token strings of the user."""

    # Notification inbox

    @abstractmethod
    def insert_notifications(self, notifications: List[Notification]) -> None:
        ...

    @abstractmethod
    def list_notifications(self, user_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        """Newest first."""

    @abstractmethod
    def count_unread_notifications(self, user_id: str) -> int:
        ...

    @abstractmethod
    def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        """False when the notification does not exist or belongs to someone else."""

    @abstractmethod
    def mark_all_notifications_read(self, user_id: str) -> int:
        """Returns how many notifications changed."""

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        ...

