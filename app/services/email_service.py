import asyncio
import html as html_lib
import smtplib
import logging
from email.message import EmailMessage
from typing import Optional, Set
import time

from app.config import get_settings

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 150


class EmailService:
    def __init__(self):
        self.settings = get_settings()
        # Retry configuration
        self.max_retries = 3
        self.retry_delay = 2  # seconds
        self._background: Set[asyncio.Task] = set()

    def is_configured(self) -> bool:
        return bool(
            self.settings.smtp_host
            and self.settings.smtp_from_email
        )

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.smtp_port == 587 or s.smtp_use_tls:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port or 587, timeout=30)
            server.starttls()
        else:
            server = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port or 465, timeout=30)
        if s.smtp_username:
            server.login(s.smtp_username, s.smtp_password)
        return server

    def send_email(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        """Blocking send with retries. Raises RuntimeError once attempts run out."""
        if not self.is_configured():
            raise RuntimeError("SMTP is not configured")

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.settings.smtp_from_email
        message["To"] = to_email
        message.set_content(text_body)
        if html_body:
            message.add_alternative(html_body, subtype="html")

        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                with self._connect() as server:
                    server.send_message(message)
                logger.info(f"Email sent to {to_email}")
                return
            except (smtplib.SMTPException, OSError) as e:
                last_error = e
                logger.warning(f"Email send attempt {attempt}/{self.max_retries} failed: {e}")
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay)

        error_msg = f"Failed to send email after {self.max_retries} attempts: {last_error}"
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    def notify(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> Optional[asyncio.Task]:
        """Send in the background. Failures are logged, never raised to the caller."""
        if not to_email:
            return None
        if not self.is_configured():
            logger.debug(f"SMTP not configured, skipping notification to {to_email}")
            return None

        task = asyncio.get_running_loop().create_task(
            asyncio.to_thread(self.send_email, to_email, subject, text_body, html_body)
        )
        self._background.add(task)
        task.add_done_callback(self._notification_done)
        return task

    def _notification_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Notification email failed: {exc}")


def preview(content: str) -> str:
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[:PREVIEW_LENGTH] + "..."


def new_message_email(recipient_name: str, sender_name: str, subject_line: str, content: str, link: str):
    """Subject, text and html bodies for a new message notification."""
    subject = f"New message about \"{subject_line}\""
    text = (
        f"Hi {recipient_name},\n\n"
        f"You received a new message from {sender_name} about \"{subject_line}\":\n\n"
        f"\"{preview(content)}\"\n\n"
        f"View it here: {link}\n"
    )
    esc = html_lib.escape
    html = (
        "<div style=\"font-family: Arial, sans-serif; padding:16px; color:#111827;\">"
        "  <h2 style=\"margin:0 0 12px;\">New message received</h2>"
        f"  <p style=\"margin:0 0 16px;\">Hi {esc(recipient_name)}, you received a new message from "
        f"<strong>{esc(sender_name)}</strong> about <strong>{esc(subject_line)}</strong>.</p>"
        f"  <p style=\"margin:0 0 16px; font-style:italic; color:#6b7280;\">\"{esc(preview(content))}\"</p>"
        "  <p style=\"margin:0 0 16px;\">"
        f"    <a href=\"{link}\" style=\"background:#2563eb;color:#ffffff;"
        "text-decoration:none;padding:10px 16px;border-radius:6px;display:inline-block;\">"
        "View message</a>"
        "  </p>"
        "</div>"
    )
    return subject, text, html


def unread_reminder_email(recipient_name: str, unread_count: int, link: str):
    subject = f"You have {unread_count} unread message{'s' if unread_count != 1 else ''}"
    text = (
        f"Hi {recipient_name},\n\n"
        f"You have {unread_count} unread message{'s' if unread_count != 1 else ''} waiting.\n"
        f"Read them here: {link}\n\n"
        "You can turn these reminders off in your settings."
    )
    return subject, text


email_service = EmailService()
