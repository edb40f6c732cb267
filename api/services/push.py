# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Push notification transport over the FCM HTTP endpoint.

Delivery is best effort: tokens are sent in batches and a failed batch is
logged with its failure count before the next batch is attempted.
"""

import os
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

import requests
from opentelemetry import trace

from models.entities import NotificationPayload

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

FCM_BATCH_SIZE = 500


@dataclass
class PushConfig:
    """Push gateway configuration settings."""
    server_key: Optional[str] = None
    endpoint: str = "https://fcm.googleapis.com/fcm/send"
    timeout: float = 10.0
    batch_size: int = FCM_BATCH_SIZE

    @property
    def enabled(self) -> bool:
        return bool(self.server_key)


@dataclass
class DeliveryResult:
    """Outcome of a fan-out across one or more batches."""
    sent: int = 0
    failed: int = 0
    batches: int = 0

    def merge(self, other: "DeliveryResult") -> "DeliveryResult":
        return DeliveryResult(
            sent=self.sent + other.sent,
            failed=self.failed + other.failed,
            batches=self.batches + other.batches
        )


class PushTransport:
    """Send notification payloads to the devices registered for users."""

    def __init__(self, config: PushConfig, store, http: Optional[requests.Session] = None):
        self.config = config
        self.store = store
        self.http = http or requests.Session()
        if not config.enabled:
            logger.warning("FCM server key not configured, push notifications are disabled")

    def send_to_user(self, user_id: str, payload: NotificationPayload) -> DeliveryResult:
        """Send a payload to every active device of one user."""
        return self.send_to_tokens(self.store.get_push_tokens(user_id), payload)

    def send_to_users(self, user_ids: Iterable[str], payload: NotificationPayload) -> DeliveryResult:
        """Send a payload to every active device of several users."""
        tokens: List[str] = []
        for user_id in dict.fromkeys(user_ids):
            tokens.extend(self.store.get_push_tokens(user_id))
        return self.send_to_tokens(tokens, payload)

    def send_to_tokens(self, tokens: List[str], payload: NotificationPayload) -> DeliveryResult:
        """
        Send a payload to device tokens in provider sized batches.

        Args:
            tokens: Device registration tokens
            payload: Notification content

        Returns:
            DeliveryResult summing all batches
        """
        result = DeliveryResult()
        if not tokens:
            return result
        if not self.config.enabled:
            logger.debug(f"Push disabled, dropping {payload.type} for {len(tokens)} devices")
            return result

        with tracer.start_as_current_span("push.send") as span:
            size = max(1, self.config.batch_size)
            for start in range(0, len(tokens), size):
                batch = tokens[start:start + size]
                result = result.merge(self._send_batch(batch, payload))

            span.set_attributes({
                "push.type": str(payload.type),
                "push.devices": len(tokens),
                "push.batches": result.batches,
                "push.failed": result.failed
            })
        return result

    def _send_batch(self, batch: List[str], payload: NotificationPayload) -> DeliveryResult:
        message = {
            "registration_ids": batch,
            "notification": {"title": payload.title, "body": payload.body},
            "data": payload.data_fields(),
            "priority": "high"
        }
        headers = {
            "Authorization": f"key={self.config.server_key}",
            "Content-Type": "application/json"
        }
        try:
            response = self.http.post(
                self.config.endpoint, json=message, headers=headers, timeout=self.config.timeout
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(
                "Push batch failed",
                extra={"batch_size": len(batch), "failure_count": len(batch), "error": str(e)}
            )
            return DeliveryResult(sent=0, failed=len(batch), batches=1)

        failed = int(body.get("failure", 0))
        if failed:
            logger.warning(
                "Push batch partially failed",
                extra={"batch_size": len(batch), "failure_count": failed}
            )
        return DeliveryResult(sent=len(batch) - failed, failed=failed, batches=1)


def create_push_transport(store) -> PushTransport:
    """
    Factory function to create the push transport from environment settings.

    Returns:
        PushTransport: Configured transport, disabled when no server key is set
    """
    config = PushConfig(
        server_key=os.getenv('FCM_SERVER_KEY'),
        endpoint=os.getenv('FCM_ENDPOINT', 'https://fcm.googleapis.com/fcm/send'),
        timeout=float(os.getenv('FCM_TIMEOUT_SECONDS', '10'))
    )
    return PushTransport(config, store)
