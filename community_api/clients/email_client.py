"""
Outbound email over SMTP (aiosmtplib).

Only the notification fan-out sends mail, and it treats every failure here
as best-effort. ``send`` therefore raises ExternalServiceError for all
transport problems, including an unconfigured SMTP host, and leaves the
decision to swallow it to the caller.
"""
import logging
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from community_api.config import Settings
from community_api.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(
        self,
        host: Optional[str],
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        start_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.start_tls = start_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.email_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            start_tls=settings.smtp_start_tls,
            timeout=settings.smtp_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.host)

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        if not self.configured:
            raise ExternalServiceError("Email delivery is not configured")

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.start_tls,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise ExternalServiceError("Failed to send email") from exc
        logger.info("Email sent to %s (%s)", to, subject)
