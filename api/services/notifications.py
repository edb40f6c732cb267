# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Per-user notification inbox.

Every push the dispatcher sends is also kept as an inbox entry so users can
page through past notifications and track what they have read.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Tuple

from models.base import utc_now
from models.entities import Notification, NotificationPayload
from services.errors import NotFoundError
from services.storage import CaseStore, PaginationResult

logger = logging.getLogger(__name__)


class NotificationInbox:
    """Record, list and acknowledge notifications for users."""

    def __init__(self, store: CaseStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def record(self, user_ids: Iterable[str], payload: NotificationPayload) -> List[Notification]:
        """
        Store one inbox entry per distinct user for a payload.

        Args:
            user_ids: Recipients, duplicates ignored
            payload: Notification content

        Returns:
            The stored entries
        """
        now = self.clock()
        notifications = [
            Notification.from_payload(user_id, payload, now)
            for user_id in dict.fromkeys(user_ids)
        ]
        self.store.insert_notifications(notifications)
        return notifications

    def list_for_user(self, user_id: str, page: int = 1, limit: int = 20) -> Tuple[PaginationResult, int]:
        """A page of the user's notifications, newest first, and their unread count."""
        return self.store.list_notifications(user_id, page=page, limit=limit), self.unread_count(user_id)

    def unread_count(self, user_id: str) -> int:
        return self.store.count_unread_notifications(user_id)

    def mark_read(self, user_id: str, notification_id: str) -> None:
        """
        Mark one of the user's notifications as read.

        Raises:
            NotFoundError: NOTIFICATION_NOT_FOUND when it is missing or belongs to someone else
        """
        if not self.store.mark_notification_read(notification_id, user_id):
            raise NotFoundError("NOTIFICATION_NOT_FOUND", f"Notification {notification_id} not found")

    def mark_all_read(self, user_id: str) -> int:
        changed = self.store.mark_all_notifications_read(user_id)
        logger.info("Notifications marked read", extra={"user_id": user_id, "count": changed})
        return changed
