# =====================================================
# FILE: contractflow/services/notification_service.py
# Fire-and-forget notification dispatch (in-app + email)
# =====================================================

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, List, Optional, Set
import asyncio
import logging
import threading

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema
from tenacity import RetryCallState, RetryError, Retrying, stop_after_attempt, wait_exponential

from contractflow.core.config import Settings, settings as default_settings
from contractflow.models.enums import NotificationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    user_id: int
    notification_type: str
    message: str
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None


# =====================================================
# CHANNELS
# =====================================================

class DatabaseNotificationChannel:
    """In-app notifications: one row in the notifications table per message"""

    name = "database"

    def __init__(self, store):
        self.store = store

    def deliver(self, message: NotificationMessage):
        self.store.insert_notification(
            user_id=message.user_id,
            notification_type=message.notification_type,
            message=message.message,
            related_entity_type=message.related_entity_type,
            related_entity_id=message.related_entity_id
        )


class EmailNotificationChannel:
    """
    Email copy of each notification. Without MAIL_USERNAME / MAIL_PASSWORD the
    email is simulated and logged instead of sent.
    """

    name = "email"

    def __init__(self, resolve_email: Callable[[int], Optional[str]], config: Settings = None):
        self.config = config or default_settings
        self.resolve_email = resolve_email
        self.fm = None
        if self.config.mail_configured:
            conf = ConnectionConfig(
                MAIL_USERNAME=self.config.MAIL_USERNAME,
                MAIL_PASSWORD=self.config.MAIL_PASSWORD,
                MAIL_FROM=self.config.MAIL_FROM,
                MAIL_PORT=self.config.MAIL_PORT,
                MAIL_SERVER=self.config.MAIL_SERVER,
                MAIL_STARTTLS=True,
                MAIL_SSL_TLS=False,
                USE_CREDENTIALS=True,
                VALIDATE_CERTS=True
            )
            self.fm = FastMail(conf)
            logger.info(" Email notification channel configured")
        else:
            logger.warning(" Email credentials not configured. Notification emails will be simulated.")

    @staticmethod
    def subject_for(message: NotificationMessage) -> str:
        subjects = {
            NotificationType.STATUS_CHANGE.value: "Contract status changed",
            NotificationType.APPROVAL_REQUEST.value: "Approval requested",
            NotificationType.SIGNING_UPDATE.value: "Signing progress",
            NotificationType.RENEWAL_UPDATE.value: "Renewal update",
            NotificationType.RENEWAL_REMINDER.value: "Renewal reminder",
        }
        return subjects.get(message.notification_type, "Contract notification")

    def deliver(self, message: NotificationMessage):
        email = self.resolve_email(message.user_id)
        if not email:
            logger.warning(f" No email address for user {message.user_id}; skipping email")
            return

        if self.fm is None:
            logger.info(f"📧 EMAIL SIMULATION to {email}: [{self.subject_for(message)}] {message.message}")
            return

        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>{self.subject_for(message)}</h2>
            <p>{message.message}</p>
            <p style="color: #888; font-size: 12px;">This is an automated email. Please do not reply.</p>
        </body>
        </html>
        """
        email_message = MessageSchema(
            subject=self.subject_for(message),
            recipients=[email],
            body=html_content,
            subtype="html"
        )
        # Runs on a dispatcher worker thread, which has no event loop of its own
        asyncio.run(self.fm.send_message(email_message))
        logger.info(f" Notification email sent to {email}")


# =====================================================
# DISPATCHER
# =====================================================

class NotificationDispatcher:
    """
    emit() queues one delivery per channel on a worker pool and returns at
    once. Each delivery is retried up to max_attempts; the last failure is
    logged and dropped.
    """

    def __init__(
        self,
        channels: List,
        max_attempts: int = None,
        retry_delay_seconds: float = None,
        max_workers: int = None,
        config: Settings = None
    ):
        config = config or default_settings
        self.channels = list(channels)
        self.max_attempts = max_attempts or config.NOTIFICATION_MAX_ATTEMPTS
        self.retry_delay_seconds = (
            config.NOTIFICATION_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or config.NOTIFICATION_WORKERS,
            thread_name_prefix="notify"
        )
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def emit(
        self,
        user_id: Optional[int],
        notification_type: NotificationType,
        message: str,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[int] = None
    ):
        if user_id is None:
            return
        notification = NotificationMessage(
            user_id=user_id,
            notification_type=NotificationType(notification_type).value,
            message=message,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id
        )
        for channel in self.channels:
            try:
                future = self._executor.submit(self._deliver, channel, notification)
            except RuntimeError as e:
                logger.error(f" Notification dropped for user {user_id}, dispatcher is shut down: {e}")
                return
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._forget)

    def _forget(self, future: Future):
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, channel, notification: NotificationMessage) -> bool:
        channel_name = getattr(channel, "name", type(channel).__name__)

        def log_failure(retry_state: RetryCallState):
            logger.warning(
                f" Notification delivery via {channel_name} failed "
                f"(attempt {retry_state.attempt_number}/{self.max_attempts}) for user {notification.user_id}: "
                f"{retry_state.outcome.exception()}"
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_delay_seconds),
            after=log_failure
        )
        try:
            retrying(channel.deliver, notification)
        except RetryError:
            logger.error(
                f" Giving up on {notification.notification_type} notification for user "
                f"{notification.user_id} via {channel_name}"
            )
            return False
        return True

    def drain(self, timeout: Optional[float] = None):
        """Block until every queued delivery has finished"""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self):
        self.drain()
        self._executor.shutdown(wait=True)
        logger.info("Notification dispatcher stopped")
