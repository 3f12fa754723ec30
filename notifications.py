"""
Outgoing mail: best-effort SMTP delivery using the relay stored in the
admin config.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from models import AdminConfig

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, host: str, port: int, username: str, password: str, timeout: float = 10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Optional[AdminConfig]) -> Optional["Mailer"]:
        """Build a mailer from the stored relay settings, or None if incomplete."""
        if config is None:
            return None
        if not (config.smtp_email and config.smtp_password and config.smtp_host and config.smtp_port):
            return None
        try:
            port = int(config.smtp_port)
        except ValueError:
            logger.warning("Ignoring SMTP relay with non-numeric port %r", config.smtp_port)
            return None
        return cls(config.smtp_host, port, config.smtp_email, config.smtp_password)

    def send(self, recipient: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.username
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)

        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.login(self.username, self.password)
                smtp.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                smtp.login(self.username, self.password)
                smtp.send_message(msg)
        logger.info("Mail '%s' sent to %s", subject, recipient)
