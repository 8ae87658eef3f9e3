"""
notifier.py

Email delivery for fare drop alerts.

Transports, first configured wins:
  SENDGRID_API_KEY                -> SendGridTransport (HTTP v3 mail send)
  MAILGUN_API_KEY + MAILGUN_DOMAIN -> MailgunTransport (HTTP form post)
  SMTP_USERNAME + SMTP_PASSWORD    -> SmtpTransport (STARTTLS)

With nothing configured build_transport() returns a DisabledTransport whose
send() raises, so the trigger records a failed notification and retries on
the next cycle instead of pretending the email went out.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional, Protocol

import requests

from config import (
    ALERT_FROM_EMAIL,
    EMAIL_TIMEOUT_SECONDS,
    MAILGUN_API_KEY,
    MAILGUN_DOMAIN,
    NOTIFY_TO,
    SENDGRID_API_KEY,
    SENDGRID_FROM_EMAIL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USERNAME,
)
from schemas.watches import NotificationChannel, WatchRecord

logger = logging.getLogger(__name__)

FROM_NAME = "Travel Orchestrator"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
MAILGUN_URL = "https://api.mailgun.net/v3/{domain}/messages"


class NotificationError(Exception):
    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


@dataclass
class EmailMessagePayload:
    to: str
    subject: str
    html: str
    text: str

    def validate(self) -> None:
        if not self.to or not self.subject or not (self.html or self.text):
            raise NotificationError("email payload missing required fields: to, subject, and html or text")


@dataclass
class SendResult:
    message_id: str
    provider: str


class EmailTransport(Protocol):
    name: str

    def send(self, payload: EmailMessagePayload) -> SendResult:
        ...


# =======================================
# SECTION: HTTP TRANSPORTS
# =======================================

class SendGridTransport:
    name = "sendgrid"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        timeout: float = EMAIL_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self.http = session or requests.Session()

    def send(self, payload: EmailMessagePayload) -> SendResult:
        payload.validate()
        body = {
            "personalizations": [{"to": [{"email": payload.to}]}],
            "from": {"email": self.from_email, "name": FROM_NAME},
            "subject": payload.subject,
            "content": [
                {"type": "text/plain", "value": payload.text},
                {"type": "text/html", "value": payload.html},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            resp = self.http.post(SENDGRID_URL, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotificationError(f"SendGrid request failed: {e}", provider=self.name)

        if resp.status_code >= 300:
            raise NotificationError(
                f"SendGrid API error: {resp.status_code}. {(resp.text or '')[:300]}",
                provider=self.name,
            )

        message_id = resp.headers.get("X-Message-Id") or make_msgid(domain="sendgrid")
        return SendResult(message_id=message_id, provider=self.name)


class MailgunTransport:
    name = "mailgun"

    def __init__(
        self,
        api_key: str,
        domain: str,
        from_email: Optional[str] = None,
        timeout: float = EMAIL_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email or f"alerts@{domain}"
        self.timeout = timeout
        self.http = session or requests.Session()

    def send(self, payload: EmailMessagePayload) -> SendResult:
        payload.validate()
        data = {
            "from": f"{FROM_NAME} <{self.from_email}>",
            "to": payload.to,
            "subject": payload.subject,
            "text": payload.text,
            "html": payload.html,
        }

        try:
            resp = self.http.post(
                MAILGUN_URL.format(domain=self.domain),
                auth=("api", self.api_key),
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NotificationError(f"Mailgun request failed: {e}", provider=self.name)

        if resp.status_code >= 300:
            raise NotificationError(
                f"Mailgun API error: {resp.status_code}. Body: {(resp.text or '')[:300]}",
                provider=self.name,
            )

        try:
            message_id = (resp.json() or {}).get("id")
        except ValueError:
            message_id = None
        return SendResult(message_id=message_id or make_msgid(domain=self.domain), provider=self.name)


# =======================================
# SECTION: SMTP TRANSPORT
# =======================================

class SmtpTransport:
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        timeout: float = EMAIL_TIMEOUT_SECONDS,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.timeout = timeout

    def build_message(self, payload: EmailMessagePayload) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = payload.subject
        msg["From"] = f"{FROM_NAME} <{self.from_email}>"
        msg["To"] = payload.to
        msg["Message-ID"] = make_msgid()
        msg.set_content(payload.text)
        msg.add_alternative(payload.html, subtype="html")
        return msg

    def send(self, payload: EmailMessagePayload) -> SendResult:
        payload.validate()
        msg = self.build_message(payload)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP send failed: {e}", provider=self.name)

        return SendResult(message_id=msg["Message-ID"], provider=self.name)


class DisabledTransport:
    name = "disabled"

    def send(self, payload: EmailMessagePayload) -> SendResult:
        raise NotificationError(
            "No email transport configured (SENDGRID_API_KEY, MAILGUN_API_KEY+MAILGUN_DOMAIN or SMTP credentials)",
            provider=self.name,
        )


# =======================================
# SECTION: FACTORY AND RECIPIENTS
# =======================================

def build_transport() -> EmailTransport:
    from_email = SENDGRID_FROM_EMAIL or ALERT_FROM_EMAIL

    if SENDGRID_API_KEY:
        logger.info("[notifier] using sendgrid transport")
        return SendGridTransport(SENDGRID_API_KEY, from_email)

    if MAILGUN_API_KEY and MAILGUN_DOMAIN:
        logger.info("[notifier] using mailgun transport")
        return MailgunTransport(MAILGUN_API_KEY, MAILGUN_DOMAIN, from_email=SENDGRID_FROM_EMAIL)

    if SMTP_USERNAME and SMTP_PASSWORD:
        logger.info(f"[notifier] using smtp transport host={SMTP_HOST}:{SMTP_PORT}")
        return SmtpTransport(SMTP_HOST, SMTP_PORT, SMTP_USERNAME, SMTP_PASSWORD, ALERT_FROM_EMAIL)

    logger.warning("[notifier] email disabled, no transport configured")
    return DisabledTransport()


def resolve_recipient(watch: WatchRecord, fallback: Optional[str] = NOTIFY_TO) -> Optional[str]:
    if watch.channel in (NotificationChannel.EMAIL, NotificationChannel.BOTH) and watch.email:
        return watch.email
    return fallback or None
