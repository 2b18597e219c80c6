"""SMTP email connector for teaching request notifications."""

import asyncio
import smtplib
import time
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Dict, List, Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from teachmatch.config import settings
from teachmatch.utils.logging import get_logger, log_external_call

logger = get_logger(__name__)


SUBJECT_LINES = {
    "request_received": "New Teaching Request",
    "request_reassigned": "Teaching Request Reassigned",
    "request_accepted": "Teaching Request Accepted",
    "request_rejected": "Teaching Request Declined",
    "request_failed": "No Teacher Available",
    "class_cancelled": "Session Cancelled",
    "reschedule_proposed": "Reschedule Proposed",
    "reschedule_accepted": "Reschedule Accepted",
    "reschedule_declined": "Reschedule Declined",
}


class SMTPEmailConnector:
    """SMTP connector for sending plain-text notification emails."""

    def __init__(self):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USER
        self.password = settings.SMTP_PASS
        self.from_email = settings.SMTP_FROM
        self.from_name = settings.SMTP_FROM_NAME

    @property
    def is_enabled(self) -> bool:
        return settings.ENABLE_EMAIL_NOTIFICATIONS and bool(self.host)

    async def send_email(
        self,
        to_recipients: List[str],
        subject: str,
        body: str,
        reply_to: Optional[str] = None
    ) -> bool:
        """Send an email via SMTP. Returns False instead of raising."""
        if not self.is_enabled:
            logger.debug("Email delivery disabled", subject=subject[:50])
            return False

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = ", ".join(to_recipients)
        if reply_to:
            msg["Reply-To"] = reply_to
        msg["X-Mailer"] = settings.APP_NAME

        started = time.monotonic()
        try:
            await asyncio.to_thread(self._deliver, to_recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            log_external_call(
                logger,
                "smtp",
                "send_email",
                success=False,
                duration_ms=(time.monotonic() - started) * 1000,
                to_count=len(to_recipients),
                subject=subject[:50],
                error=str(e)
            )
            return False

        log_external_call(
            logger,
            "smtp",
            "send_email",
            success=True,
            duration_ms=(time.monotonic() - started) * 1000,
            to_count=len(to_recipients),
            subject=subject[:50]
        )
        return True

    @retry(
        retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True
    )
    def _deliver(self, to_recipients: List[str], message: str) -> None:
        with smtplib.SMTP(self.host, self.port) as server:
            server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.from_email, to_recipients, message)

    async def send_request_email(
        self,
        to_email: str,
        notification_type: str,
        recipient_name: Optional[str],
        subject: str,
        schedule: Dict[str, str],
        message: str,
        old_schedule: Optional[Dict[str, str]] = None,
        reason: Optional[str] = None
    ) -> bool:
        """Send the email counterpart of an in-app notification."""
        greeting = f"Dear {recipient_name}," if recipient_name else "Hello,"

        lines = [
            greeting,
            "",
            message,
            "",
            "Session Details:",
            f"- Subject: {subject}",
            f"- Date: {schedule.get('date', 'TBD')}",
            f"- Time: {schedule.get('time', 'TBD')}",
        ]
        if old_schedule:
            lines.append(f"- Previously: {old_schedule.get('date')} at {old_schedule.get('time')}")
        if reason:
            lines.append(f"- Reason: {reason}")
        lines.extend([
            "",
            "Sign in to TeachMatch to respond or view the full request.",
            "",
            "---",
            "This is an automated message. Please do not reply to this email.",
        ])

        title = SUBJECT_LINES.get(notification_type, "TeachMatch Update")
        return await self.send_email(
            to_recipients=[to_email],
            subject=f"[TeachMatch] {title}: {subject}",
            body="\n".join(lines)
        )
