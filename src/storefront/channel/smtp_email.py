"""SMTP email adapter.

Configured from ``SMTP_HOST``, ``SMTP_PORT``, ``SMTP_USER``,
``SMTP_PASSWORD`` and ``EMAIL_FROM``.
"""

import os
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from storefront.channel.email_port import Delivery, EmailPort

SMTP_TIMEOUT = 10


class SMTPEmailAdapter(EmailPort):
    def __init__(self) -> None:
        self.host = os.getenv("SMTP_HOST", "localhost")
        self.port = int(os.getenv("SMTP_PORT", "587"))
        self.user = os.getenv("SMTP_USER")
        self.password = os.getenv("SMTP_PASSWORD")
        self.sender = os.getenv("EMAIL_FROM", "orders@storefront.example.com")

    def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> Delivery:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(body)
        if html_body:
            message.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT) as smtp:
                smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            return Delivery(error=str(exc))

        return Delivery(message_id=message["Message-ID"])
