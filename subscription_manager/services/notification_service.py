"""Lifecycle email notifications over SMTP.

Delivery is best-effort: every failure is logged and reported as False, never
raised into the lifecycle operation that triggered it.
"""

import smtplib
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from email.message import EmailMessage
from enum import Enum
from typing import Optional

from subscription_manager.config import get_config
from subscription_manager.logging_config import get_logger
from subscription_manager.models.catalog import UserRecord
from subscription_manager.models.settings import NotificationConfig

logger = get_logger(__name__)


class SubscriptionNotice(Enum):
    """Closed set of lifecycle notices, each with its subject and message."""

    CREATED = ("Subscription Created", "Your subscription has been successfully created.")
    UPGRADED = ("Subscription Upgraded", "Your subscription has been upgraded.")
    DOWNGRADED = ("Subscription Downgrade Scheduled", "Your subscription downgrade has been scheduled.")
    CANCELLED = ("Subscription Cancelled", "Your subscription has been cancelled.")

    def __init__(self, subject: str, message: str):
        self.subject = subject
        self.message = message

    def render(self, name: Optional[str]) -> str:
        """HTML body addressed to ``name`` (or a generic greeting)."""
        return f"<p>Hello {name or 'User'},</p><p>{self.message}</p>"


class NotificationService:
    """Sends lifecycle notices to users.

    Args:
        settings: SMTP settings; defaults to the global configuration
        username: SMTP login; defaults to SMTP_USERNAME
        password: SMTP password; defaults to SMTP_PASSWORD
    """

    def __init__(
        self,
        settings: Optional[NotificationConfig] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        if settings is None or username is None or password is None:
            config = get_config()
            settings = settings or config.notifications
            username = username if username is not None else config.smtp_username
            password = password if password is not None else config.smtp_password

        self._settings = settings
        self._username = username
        self._password = password
        self._executor: Optional[ThreadPoolExecutor] = None
        if settings.enabled and settings.async_delivery:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")

    @property
    def enabled(self) -> bool:
        return self._settings.enabled and bool(self._settings.smtp_host)

    def send(self, to: str, subject: str, html: str) -> bool:
        """Deliver one HTML email.

        Returns:
            True if the SMTP server accepted the message
        """
        if not self.enabled:
            logger.debug("email_skipped_disabled", to=to, subject=subject)
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._settings.sender
        message["To"] = to
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(
                self._settings.smtp_host,
                self._settings.smtp_port,
                timeout=self._settings.timeout_seconds,
            ) as server:
                if self._settings.use_tls:
                    server.starttls()
                if self._username and self._password:
                    server.login(self._username, self._password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_send_failed", to=to, subject=subject, error=str(e))
            return False

        logger.info("email_sent", to=to, subject=subject)
        return True

    def notify(self, user: Optional[UserRecord], notice: SubscriptionNotice) -> Optional[Future]:
        """Send a lifecycle notice to a user.

        A missing user or email is logged and skipped. With async delivery the
        send runs on a background worker and its Future is returned.
        """
        if user is None or not user.email:
            logger.warning("notice_skipped_no_recipient", notice=notice.name)
            return None

        html = notice.render(user.name)
        if self._executor is not None:
            return self._executor.submit(self.send, user.email, notice.subject, html)

        self.send(user.email, notice.subject, html)
        return None

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background worker, draining queued notices when wait is True."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


_service_instance: Optional[NotificationService] = None
_service_lock = threading.Lock()


def get_notification_service() -> NotificationService:
    """Get global notification service instance (singleton)."""
    global _service_instance
    if _service_instance is None:
        with _service_lock:
            if _service_instance is None:
                _service_instance = NotificationService()
    return _service_instance


def reset_notification_service() -> None:
    global _service_instance
    with _service_lock:
        if _service_instance is not None:
            _service_instance.shutdown(wait=False)
        _service_instance = None
