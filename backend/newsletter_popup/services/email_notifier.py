"""
Email Notifier
Sends the welcome and admin notification mails for new subscribers
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from newsletter_popup.config import settings

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Plain-text transactional mail over SMTP."""

    def __init__(self, timeout: int = 20):
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(settings.smtp_host)

    def _build_message(self, to_email: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((settings.email_from_name, settings.email_from_address))
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=self.timeout) as srv:
            srv.ehlo()
            if settings.smtp_use_tls:
                srv.starttls(context=ssl.create_default_context())
                srv.ehlo()
            if settings.smtp_username:
                srv.login(settings.smtp_username, settings.smtp_password)
            srv.send_message(msg)

    async def send(self, to_email: str, subject: str, body: str) -> bool:
        """
        Send a single message.

        Returns:
            True if the message was handed to the SMTP server
        """
        if not self.enabled:
            logger.info(f"SMTP not configured, skipping email '{subject}'")
            return False

        msg = self._build_message(to_email, subject, body)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{subject}': {e}")
            return False

        logger.info(f"Sent email '{subject}'")
        return True

    async def send_welcome_email(
        self,
        to_email: str,
        store_name: str,
        discount_code: str,
        discount_percentage: int,
        name: Optional[str] = None,
    ) -> bool:
        """Welcome a new subscriber and deliver their discount code."""
        greeting = f"Hi {name}," if name else "Hi,"
        body = (
            f"{greeting}\n\n"
            f"Thanks for subscribing to the {store_name} newsletter.\n\n"
            f"Here is your one-time {discount_percentage}% discount code: {discount_code}\n\n"
            f"Use it at checkout on your next order.\n\n"
            f"{settings.email_from_name}"
        )
        return await self.send(to_email, f"Welcome! Your {discount_percentage}% discount code", body)

    async def send_admin_notification(
        self,
        store_name: str,
        subscriber_email: str,
        details: Optional[dict] = None,
    ) -> bool:
        """Let the store admin know about a new subscriber."""
        lines = [f"New newsletter subscriber for {store_name}:", "", f"Email: {subscriber_email}"]
        for key, value in (details or {}).items():
            if value:
                lines.append(f"{key.capitalize()}: {value}")
        return await self.send(
            settings.admin_notification_email,
            f"New subscriber: {subscriber_email}",
            "\n".join(lines),
        )
