"""Outgoing email: SMTP delivery and an in-memory outbox for tests.

`SmtpMailer` uses implicit TLS when `secure` is set (port 465) and
STARTTLS otherwise (port 587).
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import make_msgid
from typing import List, Protocol

logger = logging.getLogger("livraria.mail")


class MailDeliveryError(Exception):
    pass


class Mailer(Protocol):
    """What services need from an email transport."""

    def send(self, to: str, subject: str, html: str) -> str:
        ...


@dataclass
class SentMail:
    to: str
    subject: str
    html: str
    message_id: str


@dataclass
class InMemoryMailer:
    """Test double that keeps every message in `outbox`."""

    outbox: List[SentMail] = field(default_factory=list)
    fail: bool = False

    def send(self, to: str, subject: str, html: str) -> str:
        if self.fail:
            raise MailDeliveryError(f"could not deliver mail to {to}")
        message_id = make_msgid(domain="livraria.test")
        self.outbox.append(SentMail(to=to, subject=subject, html=html, message_id=message_id))
        return message_id

    def clear(self) -> None:
        self.outbox.clear()
        self.fail = False


@dataclass
class SmtpMailer:
    host: str
    port: int
    username: str
    password: str
    sender: str
    secure: bool = False
    timeout: float = 20.0

    def send(self, to: str, subject: str, html: str) -> str:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content("Este email requer um cliente com suporte a HTML.")
        msg.add_alternative(html, subtype="html")
        context = ssl.create_default_context()
        try:
            if self.secure:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as smtp:
                    self._deliver(smtp, msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                    smtp.starttls(context=context)
                    self._deliver(smtp, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("mail_failed to=%s subject=%r error=%s", to, subject, exc)
            raise MailDeliveryError(f"could not deliver mail to {to}: {exc}") from exc
        logger.info("mail_sent to=%s message_id=%s", to, msg["Message-ID"])
        return msg["Message-ID"]

    def _deliver(self, smtp: smtplib.SMTP, msg: EmailMessage) -> None:
        if self.username:
            smtp.login(self.username, self.password)
        smtp.send_message(msg)
