# SPDX-License-Identifier: Apache-2.0

"""
In-process case store for local development and tests.

This module keeps every collection in dictionaries guarded by one reentrant
lock. A transaction holds the lock for its whole duration and restores a
snapshot of all collections when the enclosed block raises, so it offers the
same all-or-nothing behaviour as the MongoDB backend within one process.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from opentelemetry import trace

from domain.cases import ACTIVE_STATUSES
from domain.geo import BoundingBox
from models.base import utc_now
from models.entities import (
    Case, CaseComment, CaseUpdate, CaseVolunteer, Notification, PushToken, VolunteerProfile
)
from models.enums import VolunteerStatus
from services.errors import ConflictError
from services.storage import CaseFilters, CaseStore, PaginationResult

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def _updated(entity, fields: Dict[str, Any]):
    """Return a validated copy of an entity with fields replaced."""
    data = entity.model_dump()
    data.update(fields)
    return type(entity).model_validate(data)


class InMemoryCaseStore(CaseStore):
    """
    Thread-safe dictionary backed store.

    Entities are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._cases: Dict[str, Case] = {}
        self._volunteers: Dict[Tuple[str, str], CaseVolunteer] = {}
        self._updates: List[CaseUpdate] = []
        self._comments: Dict[str, CaseComment] = {}
        self._users: Dict[str, VolunteerProfile] = {}
        self._notifications: Dict[str, Notification] = {}
        logger.info("In-memory case store initialized")

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "cases": copy.deepcopy(self._cases),
            "volunteers": copy.deepcopy(self._volunteers),
            "updates": list(self._updates),
            "comments": copy.deepcopy(self._comments),
            "users": copy.deepcopy(self._users),
            "notifications": copy.deepcopy(self._notifications),
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        self._cases = snapshot["cases"]
        self._volunteers = snapshot["volunteers"]
        self._updates = snapshot["updates"]
        self._comments = snapshot["comments"]
        self._users = snapshot["users"]
        self._notifications = snapshot["notifications"]

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        with self._lock:
            snapshot = self._snapshot()
            try:
                yield None
            except Exception:
                logger.debug("Rolling back in-memory transaction")
                self._restore(snapshot)
                raise

    # Cases

    def insert_case(self, case: Case, session: Any = None) -> None:
        with self._lock:
            self._cases[case.id] = case.model_copy(deep=True)

    def get_case(self, case_id: str, session: Any = None) -> Optional[Case]:
        with self._lock:
            case = self._cases.get(case_id)
            return case.model_copy(deep=True) if case else None

    def update_case_fields(self, case_id: str, fields: Dict[str, Any],
                           session: Any = None) -> Optional[Case]:
        with self._lock:
            case = self._cases.get(case_id)
            if case is None:
                return None
            updated = _updated(case, {**fields, "updated_at": utc_now()})
            self._cases[case_id] = updated
            return updated.model_copy(deep=True)

    def transition_case_status(self, case_id: str, from_statuses: Sequence[str], new_status: str,
                               stamps: Optional[Dict[str, Any]] = None, session: Any = None) -> bool:
        with self._lock:
            case = self._cases.get(case_id)
            if case is None or case.status not in from_statuses:
                return False
            fields = dict(stamps or {})
            fields["status"] = new_status
            self.update_case_fields(case_id, fields)
            return True

    def increment_volunteer_count(self, case_id: str, session: Any = None) -> bool:
        with self._lock:
            case = self._cases.get(case_id)
            if case is None or case.status not in ACTIVE_STATUSES:
                return False
            if case.volunteer_count >= case.max_volunteers:
                return False
            self.update_case_fields(case_id, {"volunteer_count": case.volunteer_count + 1})
            return True

    def decrement_volunteer_count(self, case_id: str, session: Any = None) -> None:
        with self._lock:
            case = self._cases.get(case_id)
            if case is not None:
                self.update_case_fields(case_id, {"volunteer_count": max(0, case.volunteer_count - 1)})

    def find_cases(self, filters: CaseFilters, page: int = 1, limit: int = 20) -> PaginationResult:
        with self._lock:
            matched = [c for c in self._cases.values() if self._matches(c, filters)]
        matched.sort(key=lambda c: c.created_at, reverse=True)
        start = (page - 1) * limit
        items = [c.model_copy(deep=True) for c in matched[start:start + limit]]
        return PaginationResult(items, len(matched), page, limit)

    @staticmethod
    def _matches(case: Case, filters: CaseFilters) -> bool:
        if filters.case_type and case.case_type != filters.case_type:
            return False
        if filters.status and case.status != filters.status:
            return False
        if filters.urgency and case.urgency != filters.urgency:
            return False
        if filters.reporter_id and case.reporter_id != filters.reporter_id:
            return False
        if filters.case_ids is not None and case.id not in filters.case_ids:
            return False
        if filters.q:
            needle = filters.q.lower()
            haystack = f"{case.title} {case.address or ''}".lower()
            if needle not in haystack:
                return False
        return True

    def find_cases_in_box(self, box: BoundingBox, statuses: Sequence[str]) -> List[Case]:
        with self._lock:
            return [
                c.model_copy(deep=True) for c in self._cases.values()
                if c.status in statuses and box.contains(c.location)
            ]

    # Volunteer records

    def insert_volunteer(self, record: CaseVolunteer, session: Any = None) -> None:
        key = (record.case_id, record.volunteer_id)
        with self._lock:
            if key in self._volunteers:
                raise ConflictError("ALREADY_ACCEPTED", "Volunteer already has a record on this case")
            self._volunteers[key] = record.model_copy(deep=True)

    def get_volunteer(self, case_id: str, volunteer_id: str,
                      session: Any = None) -> Optional[CaseVolunteer]:
        with self._lock:
            record = self._volunteers.get((case_id, volunteer_id))
            return record.model_copy(deep=True) if record else None

    def update_volunteer(self, case_id: str, volunteer_id: str, expected_statuses: Sequence[str],
                         fields: Dict[str, Any], session: Any = None) -> bool:
        key = (case_id, volunteer_id)
        with self._lock:
            record = self._volunteers.get(key)
            if record is None or record.status not in expected_statuses:
                return False
            self._volunteers[key] = _updated(record, fields)
            return True

    def list_volunteers(self, case_id: str, include_withdrawn: bool = True,
                        session: Any = None) -> List[CaseVolunteer]:
        with self._lock:
            records = [
                r.model_copy(deep=True) for (cid, _), r in self._volunteers.items()
                if cid == case_id and (include_withdrawn or r.status != VolunteerStatus.WITHDRAWN)
            ]
        records.sort(key=lambda r: r.accepted_at)
        return records

    def list_volunteer_case_ids(self, volunteer_id: str) -> List[str]:
        with self._lock:
            return [
                cid for (cid, vid), r in self._volunteers.items()
                if vid == volunteer_id and r.status != VolunteerStatus.WITHDRAWN
            ]

    def count_volunteer_records(self, volunteer_id: str, statuses: Optional[Sequence[str]] = None) -> int:
        with self._lock:
            return sum(
                1 for (_, vid), r in self._volunteers.items()
                if vid == volunteer_id and (statuses is None or r.status in statuses)
            )

    # Timeline

    def append_update(self, update: CaseUpdate, session: Any = None) -> None:
        with self._lock:
            self._updates.append(update)

    def list_updates(self, case_id: str) -> List[CaseUpdate]:
        with self._lock:
            return [u for u in self._updates if u.case_id == case_id]

    # Comments

    def insert_comment(self, comment: CaseComment) -> None:
        with self._lock:
            self._comments[comment.id] = comment.model_copy(deep=True)

    def get_comment(self, comment_id: str) -> Optional[CaseComment]:
        with self._lock:
            comment = self._comments.get(comment_id)
            return comment.model_copy(deep=True) if comment else None

    def list_comments(self, case_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        with self._lock:
            comments = [c for c in self._comments.values() if c.case_id == case_id]
        comments.sort(key=lambda c: c.created_at)
        start = (page - 1) * limit
        items = [c.model_copy(deep=True) for c in comments[start:start + limit]]
        return PaginationResult(items, len(comments), page, limit)

    def delete_comment(self, comment_id: str) -> bool:
        with self._lock:
            return self._comments.pop(comment_id, None) is not None

    # Users

    def get_user(self, user_id: str, session: Any = None) -> Optional[VolunteerProfile]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def save_user(self, user: VolunteerProfile) -> None:
        with self._lock:
            self._users[user.id] = user.model_copy(deep=True)

    def update_user_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[VolunteerProfile]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = _updated(user, {**fields, "updated_at": utc_now()})
            self._users[user_id] = updated
            return updated.model_copy(deep=True)

    def find_volunteers_in_box(self, box: BoundingBox) -> List[VolunteerProfile]:
        with self._lock:
            found = []
            for user in self._users.values():
                if not (user.is_available and user.is_active):
                    continue
                center = user.preferences.center_location
                in_box = (
                    (user.location is not None and box.contains(user.location))
                    or (center is not None and box.contains(center))
                )
                if in_box:
                    found.append(user.model_copy(deep=True))
            return found

    def increment_user_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                logger.warning(f"Cannot increment {counter} for unknown user {user_id}")
                return
            self._users[user_id] = _updated(user, {counter: getattr(user, counter) + amount})

    def add_push_token(self, user_id: str, token: PushToken) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            tokens = [t for t in user.push_tokens if t.token != token.token]
            tokens.append(token)
            self._users[user_id] = _updated(user, {"push_tokens": tokens})
            return True

    def remove_push_token(self, user_id: str, token: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            tokens = [t for t in user.push_tokens if t.token != token]
            if len(tokens) == len(user.push_tokens):
                return False
            self._users[user_id] = _updated(user, {"push_tokens": tokens})
            return True

    def get_push_tokens(self, user_id: str) -> List[str]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return []
            return [t.token for t in user.push_tokens if t.is_active]

    # Notification inbox

    def insert_notifications(self, notifications: List[Notification]) -> None:
        with self._lock:
            for notification in notifications:
                self._notifications[notification.id] = notification.model_copy(deep=True)

    def list_notifications(self, user_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        with self._lock:
            owned = [n for n in self._notifications.values() if n.user_id == user_id]
        owned.sort(key=lambda n: n.created_at, reverse=True)
        start = (page - 1) * limit
        items = [n.model_copy(deep=True) for n in owned[start:start + limit]]
        return PaginationResult(items, len(owned), page, limit)

    def count_unread_notifications(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for n in self._notifications.values() if n.user_id == user_id and not n.is_read)

    def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None or notification.user_id != user_id:
                return False
            self._notifications[notification_id] = _updated(notification, {"is_read": True})
            return True

    def mark_all_notifications_read(self, user_id: str) -> int:
        with self._lock:
            unread = [
                n for n in self._notifications.values()
                if n.user_id == user_id and not n.is_read
            ]
            for notification in unread:
                self._notifications[notification.id] = _updated(notification, {"is_read": True})
            return len(unread)

    def health_check(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'status': 'healthy',
                'backend': 'memory',
                'cases': len(self._cases),
                'users': len(self._users),
                'notifications': len(self._notifications)
            }
