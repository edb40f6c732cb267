# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Background side effects and notification fan-out.

Side effects run through a BackgroundRunner: the caller submits a task and
returns immediately; failures are logged with the task name and never reach
the caller.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Optional

from opentelemetry import trace

from models.entities import Case, NotificationPayload
from models.enums import NotificationType
from services.notifications import NotificationInbox

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class BackgroundRunner:
    """Fire-and-forget task runner backed by a bounded thread pool."""

    def __init__(self, max_workers: int = 4, synchronous: bool = False):
        self.synchronous = synchronous
        self._executor: Optional[ThreadPoolExecutor] = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rescue-bg")

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> Optional[Future]:
        """
        Schedule a side effect.

        Args:
            name: Task name used in logs
            fn: Callable to run
            *args: Positional arguments for fn

        Returns:
            The future in threaded mode, None when run inline
        """
        if self.synchronous or self._executor is None:
            self._run(name, fn, *args)
            return None
        return self._executor.submit(self._run, name, fn, *args)

    @staticmethod
    def _run(name: str, fn: Callable[..., Any], *args: Any) -> None:
        with tracer.start_as_current_span(f"background.{name}") as span:
            try:
                fn(*args)
            except Exception as e:
                span.record_exception(e)
                logger.error(
                    f"Background task failed: {name}",
                    extra={"task": name, "error": str(e)},
                    exc_info=True
                )

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            logger.info("Background runner stopped")


def format_distance(km: float) -> str:
    if km < 1:
        return "< 1km"
    return f"{km:.1f}km"


class NotificationDispatcher:
    """Turn case events into inbox entries and push notifications for the right users."""

    def __init__(self, push, inbox: NotificationInbox):
        self.push = push
        self.inbox = inbox

    def notify_new_case(self, case: Case, matches: Iterable[Any]) -> int:
        """
        Notify matched volunteers about a new case nearby.

        Every match gets an inbox entry. Only volunteers whose devices
        accepted the push count as notified.

        Args:
            case: Newly created case
            matches: VolunteerMatch results for the case

        Returns:
            Number of volunteers a push was delivered to
        """
        notified = 0
        with tracer.start_as_current_span("dispatcher.new_case") as span:
            for match in matches:
                payload = NotificationPayload(
                    type=NotificationType.NEW_CASE_NEARBY,
                    title="New case near you",
                    body=f"{case.title} - {format_distance(match.distance_km)}",
                    case_id=case.id,
                    case_type=case.case_type,
                    urgency=case.urgency,
                    distance_km=match.distance_km
                )
                try:
                    self.inbox.record([match.volunteer_id], payload)
                    result = self.push.send_to_user(match.volunteer_id, payload)
                except Exception as e:
                    logger.warning(
                        "Failed to notify volunteer",
                        extra={"case_id": case.id, "user_id": match.volunteer_id, "error": str(e)}
                    )
                    continue
                if result.sent:
                    notified += 1

            span.set_attributes({"case.id": case.id, "dispatcher.notified": notified})

        logger.info(
            "Notified nearby volunteers",
            extra={"case_id": case.id, "count": notified}
        )
        return notified

    def notify_case_accepted(self, case: Case, volunteer_name: str) -> None:
        """Tell the reporter a volunteer took the case."""
        if not case.reporter_id:
            return
        payload = NotificationPayload(
            type=NotificationType.CASE_ACCEPTED,
            title="Your case was accepted",
            body=f"{volunteer_name} accepted your case",
            case_id=case.id,
            case_type=case.case_type,
            urgency=case.urgency
        )
        self.inbox.record([case.reporter_id], payload)
        self.push.send_to_user(case.reporter_id, payload)

    def notify_case_resolved(self, case: Case, volunteer_ids: List[str]) -> None:
        """Tell the reporter and the completing volunteers the case is resolved."""
        payload = NotificationPayload(
            type=NotificationType.CASE_RESOLVED,
            title="Case resolved",
            body="Thank you for taking part in the rescue!",
            case_id=case.id,
            case_type=case.case_type
        )
        recipients = list(volunteer_ids)
        if case.reporter_id:
            recipients.append(case.reporter_id)
        if recipients:
            self.inbox.record(recipients, payload)
            self.push.send_to_users(recipients, payload)
