# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for background side effects, notification fan-out and push delivery.
"""

import requests
from unittest.mock import Mock

from domain.matching import VolunteerMatch
from models.entities import Case, GeoPoint, NotificationPayload, VolunteerProfile
from services.dispatcher import BackgroundRunner, NotificationDispatcher, format_distance
from services.push import DeliveryResult, PushConfig, PushTransport


def make_case(**overrides):
    data = {
        "case_type": "flood",
        "urgency": "critical",
        "location": GeoPoint(latitude=10.77, longitude=106.70),
        "title": "Family trapped on roof",
        "reporter_id": "reporter-1",
    }
    data.update(overrides)
    return Case(**data)


def match(volunteer_id, distance):
    return VolunteerMatch(VolunteerProfile(id=volunteer_id, display_name=volunteer_id), distance)


def payload():
    return NotificationPayload(type="system", title="Hello", body="World", case_id="case-1")


class TestBackgroundRunner:
    """Fire-and-forget execution."""

    def test_synchronous_runs_inline(self):
        runner = BackgroundRunner(synchronous=True)
        task = Mock()

        assert runner.submit("task", task, 1, 2) is None
        task.assert_called_once_with(1, 2)

    def test_failures_do_not_propagate(self):
        runner = BackgroundRunner(synchronous=True)

        runner.submit("boom", Mock(side_effect=RuntimeError("fail")))

    def test_threaded_mode_returns_future(self):
        runner = BackgroundRunner(max_workers=1)
        task = Mock(return_value="done")
        try:
            future = runner.submit("task", task, "x")
            future.result(timeout=5)
        finally:
            runner.shutdown()

        task.assert_called_once_with("x")


class TestNotificationDispatcher:
    """Case event notifications."""

    def setup_method(self):
        self.push = Mock()
        self.push.send_to_user.return_value = DeliveryResult(sent=1, batches=1)
        self.inbox = Mock()
        self.dispatcher = NotificationDispatcher(self.push, inbox=self.inbox)

    def test_distance_formatting(self):
        assert format_distance(0.4) == "< 1km"
        assert format_distance(1.5587) == "1.6km"

    def test_new_case_notifies_each_match(self):
        case = make_case()
        matches = [match("v1", 1.56), match("v2", 0.5)]

        assert self.dispatcher.notify_new_case(case, matches) == 2

        first_user, first_payload = self.push.send_to_user.call_args_list[0][0]
        assert first_user == "v1"
        assert first_payload.type == "new_case_nearby"
        assert first_payload.body == "Family trapped on roof - 1.6km"
        assert first_payload.case_id == case.id

    def test_failed_delivery_skips_only_that_volunteer(self):
        self.push.send_to_user.side_effect = [RuntimeError("down"), DeliveryResult(sent=1, batches=1)]

        notified = self.dispatcher.notify_new_case(make_case(), [match("v1", 1.0), match("v2", 2.0)])

        assert notified == 1

    def test_volunteer_without_devices_is_not_counted(self):
        self.push.send_to_user.return_value = DeliveryResult()

        notified = self.dispatcher.notify_new_case(make_case(), [match("v1", 1.0)])

        assert notified == 0
        recipients, stored = self.inbox.record.call_args[0]
        assert recipients == ["v1"]
        assert stored.type == "new_case_nearby"

    def test_accepted_goes_to_reporter(self):
        self.dispatcher.notify_case_accepted(make_case(), "Volunteer v1")

        user_id, sent = self.push.send_to_user.call_args[0]
        assert user_id == "reporter-1"
        assert sent.type == "case_accepted"
        assert "Volunteer v1" in sent.body
        self.inbox.record.assert_called_once_with(["reporter-1"], sent)

    def test_accepted_anonymous_case_is_silent(self):
        self.dispatcher.notify_case_accepted(make_case(reporter_id=None, is_anonymous=True), "Someone")

        self.push.send_to_user.assert_not_called()
        self.inbox.record.assert_not_called()

    def test_resolved_reaches_reporter_and_volunteers(self):
        self.dispatcher.notify_case_resolved(make_case(), ["v1", "v2"])

        recipients, sent = self.push.send_to_users.call_args[0]
        assert recipients == ["v1", "v2", "reporter-1"]
        assert sent.type == "case_resolved"
        self.inbox.record.assert_called_once_with(["v1", "v2", "reporter-1"], sent)


class TestPushTransport:
    """FCM batching and failure accounting."""

    def setup_method(self):
        self.store = Mock()
        self.http = Mock()
        self.http.post.return_value.json.return_value = {"success": 1, "failure": 0}
        self.transport = PushTransport(PushConfig(server_key="key"), self.store, http=self.http)

    def test_disabled_without_key(self):
        transport = PushTransport(PushConfig(), self.store, http=self.http)

        result = transport.send_to_tokens(["t1"], payload())

        assert result.sent == 0
        self.http.post.assert_not_called()

    def test_tokens_sent_in_batches_of_500(self):
        tokens = [f"token-{i}" for i in range(1201)]

        result = self.transport.send_to_tokens(tokens, payload())

        assert result.batches == 3
        sizes = [len(call.kwargs["json"]["registration_ids"]) for call in self.http.post.call_args_list]
        assert sizes == [500, 500, 201]
        assert result.sent == 1201

    def test_message_shape(self):
        self.transport.send_to_tokens(["t1"], payload())

        call = self.http.post.call_args
        assert call.kwargs["headers"]["Authorization"] == "key=key"
        message = call.kwargs["json"]
        assert message["notification"] == {"title": "Hello", "body": "World"}
        assert message["data"]["case_id"] == "case-1"
        assert message["data"]["type"] == "system"

    def test_partial_failure_counted(self):
        self.http.post.return_value.json.return_value = {"success": 1, "failure": 2}

        result = self.transport.send_to_tokens(["a", "b", "c"], payload())

        assert result.failed == 2
        assert result.sent == 1

    def test_failed_batch_does_not_stop_the_rest(self):
        ok = Mock()
        ok.json.return_value = {"failure": 0}
        self.http.post.side_effect = [requests.ConnectionError("down"), ok]
        self.transport.config.batch_size = 2

        result = self.transport.send_to_tokens(["a", "b", "c"], payload())

        assert result.failed == 2
        assert result.sent == 1
        assert result.batches == 2

    def test_send_to_users_deduplicates(self):
        self.store.get_push_tokens.side_effect = lambda user_id: [f"{user_id}-phone"]

        self.transport.send_to_users(["u1", "u2", "u1"], payload())

        tokens = self.http.post.call_args.kwargs["json"]["registration_ids"]
        assert tokens == ["u1-phone", "u2-phone"]
