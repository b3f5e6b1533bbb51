"""Unit tests for notification dispatch, in-app notifications and renewal reminders."""

import logging

import pytest
from datetime import date

from contractflow.core.config import Settings
from contractflow.models.enums import EntityType, NotificationType
from contractflow.services.lifecycle_service import LifecycleService
from contractflow.services.notification_service import (
    DatabaseNotificationChannel,
    EmailNotificationChannel,
    NotificationDispatcher,
    NotificationMessage,
)

from tests.conftest import RecordingChannel


class FlakyChannel:
    name = "flaky"

    def __init__(self, failures):
        self.failures = failures
        self.attempts = 0
        self.delivered = []

    def deliver(self, message):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("temporarily unavailable")
        self.delivered.append(message)


class TestDispatcher:
    def test_retries_until_delivered(self):
        channel = FlakyChannel(failures=2)
        dispatcher = NotificationDispatcher([channel], max_attempts=3, retry_delay_seconds=0, max_workers=1)

        dispatcher.emit(7, NotificationType.STATUS_CHANGE, "Contract moved", EntityType.CONTRACT.value, 1)
        dispatcher.shutdown()

        assert channel.attempts == 3
        assert [m.user_id for m in channel.delivered] == [7]

    def test_gives_up_and_logs(self, caplog):
        channel = FlakyChannel(failures=10)
        dispatcher = NotificationDispatcher([channel], max_attempts=2, retry_delay_seconds=0, max_workers=1)

        with caplog.at_level(logging.WARNING):
            dispatcher.emit(7, NotificationType.SIGNING_UPDATE, "Signed")
            dispatcher.drain()

        dispatcher.shutdown()
        assert channel.attempts == 2
        assert channel.delivered == []
        assert "Giving up on SIGNING_UPDATE notification for user 7" in caplog.text

    def test_attempts_come_from_settings(self, caplog):
        channel = FlakyChannel(failures=10)
        config = Settings(NOTIFICATION_MAX_ATTEMPTS=4, NOTIFICATION_RETRY_DELAY_SECONDS=0)
        dispatcher = NotificationDispatcher([channel], max_workers=1, config=config)

        with caplog.at_level(logging.WARNING):
            dispatcher.emit(7, NotificationType.STATUS_CHANGE, "Contract moved")
            dispatcher.drain()

        dispatcher.shutdown()
        assert channel.attempts == 4
        assert "via flaky failed (attempt 4/4) for user 7: temporarily unavailable" in caplog.text

    def test_each_channel_is_independent(self):
        broken = FlakyChannel(failures=10)
        recording = RecordingChannel()
        dispatcher = NotificationDispatcher([broken, recording], max_attempts=1, retry_delay_seconds=0)

        dispatcher.emit(3, "RENEWAL_UPDATE", "Renewal queued")
        dispatcher.shutdown()

        assert [m.notification_type for m in recording.messages] == ["RENEWAL_UPDATE"]

    def test_no_recipient_is_skipped(self):
        recording = RecordingChannel()
        dispatcher = NotificationDispatcher([recording], max_attempts=1, retry_delay_seconds=0)
        dispatcher.emit(None, NotificationType.STATUS_CHANGE, "nobody")
        dispatcher.shutdown()
        assert recording.messages == []

    def test_emit_after_shutdown_is_dropped(self, caplog):
        recording = RecordingChannel()
        dispatcher = NotificationDispatcher([recording], max_attempts=1, retry_delay_seconds=0)
        dispatcher.shutdown()

        with caplog.at_level(logging.ERROR):
            dispatcher.emit(1, NotificationType.STATUS_CHANGE, "late")

        assert recording.messages == []
        assert "dispatcher is shut down" in caplog.text


class TestEmailChannel:
    def test_simulated_without_credentials(self, caplog):
        channel = EmailNotificationChannel(lambda user_id: "owner@acme.test")
        message = NotificationMessage(1, NotificationType.APPROVAL_REQUEST.value, "Please approve")

        with caplog.at_level(logging.INFO):
            channel.deliver(message)

        assert channel.fm is None
        assert "EMAIL SIMULATION to owner@acme.test: [Approval requested] Please approve" in caplog.text

    def test_user_without_email_is_skipped(self, caplog):
        channel = EmailNotificationChannel(lambda user_id: None)
        with caplog.at_level(logging.WARNING):
            channel.deliver(NotificationMessage(5, NotificationType.STATUS_CHANGE.value, "x"))
        assert "No email address for user 5" in caplog.text


@pytest.fixture
def persisted(store, clock):
    """Lifecycle whose notifications are written to the notifications table"""
    recording = RecordingChannel()
    dispatcher = NotificationDispatcher(
        [DatabaseNotificationChannel(store), recording], max_attempts=1, retry_delay_seconds=0, max_workers=1
    )
    service = LifecycleService(store=store, notifier=dispatcher, clock=clock)
    yield service, dispatcher, recording
    dispatcher.shutdown()


class TestInAppNotifications:
    def test_list_and_mark_read(self, persisted, context, make_contract, seed):
        # make_contract uses the shared lifecycle; transitions go through the persisted one
        service, dispatcher, _ = persisted
        contract = make_contract()
        service.transition(context, contract.id, "IN_REVIEW")
        dispatcher.drain()

        notifications = service.list_notifications(context)
        assert [n.notification_type for n in notifications] == [NotificationType.STATUS_CHANGE.value]
        assert notifications[0].related_entity_id == contract.id
        assert not notifications[0].is_read

        assert service.mark_notifications_read(context) == 1
        assert service.mark_notifications_read(context) == 0
        assert service.list_notifications(context)[0].is_read


class TestRenewalReminders:
    def test_reminder_sent_once_per_threshold(self, persisted, make_contract, activate, seed):
        service, dispatcher, recording = persisted
        contract = activate(make_contract(end_date=date(2024, 7, 15)).id)

        assert service.send_renewal_reminders(today=date(2024, 6, 15)) == 1
        dispatcher.drain()
        assert service.send_renewal_reminders(today=date(2024, 6, 15)) == 0

        reminders = [m for m in recording.messages if m.notification_type == NotificationType.RENEWAL_REMINDER.value]
        assert len(reminders) == 1
        assert reminders[0].user_id == seed.owner_id
        assert reminders[0].related_entity_id == contract.id
        assert "ends in 30 days" in reminders[0].message

    def test_no_reminder_off_threshold(self, persisted, make_contract, activate):
        service, _, _ = persisted
        activate(make_contract(end_date=date(2024, 7, 16)).id)
        assert service.send_renewal_reminders(today=date(2024, 6, 15)) == 0
