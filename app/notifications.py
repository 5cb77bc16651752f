"""
Outbound notifications (OTP codes, security notices and loan desk alerts).

The services only see the NotificationSender interface:

    await sender.send(recipient, subject, body) -> bool

Two implementations ship with the API:
  - LogNotificationSender: writes the message to the log (development,
    and whenever SMTP_HOST is empty)
  - SmtpNotificationSender: delivers through an SMTP relay; the blocking
    smtplib call runs in a worker thread so the event loop isn't stalled

A sender returns False (or raises) when delivery fails. The transfer
orchestrator treats that as a hard failure of OTP issuance.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

from app.config import settings
from app.utils import from_cents

logger = logging.getLogger(__name__)


class NotificationSender(ABC):
    """Abstract base class for notification delivery channels"""

    @abstractmethod
    async def send(self, recipient: str, subject: str, body: str) -> bool:
        """Deliver a message. Returns True on success."""
        ...


class LogNotificationSender(NotificationSender):
    """Logs notifications instead of delivering them"""

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        logger.info(
            "Notification logged",
            extra={"recipient": recipient, "subject": subject, "body": body},
        )
        return True


class SmtpNotificationSender(NotificationSender):
    """Sends plain-text email through an SMTP relay"""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender_address: str = "",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender_address = sender_address
        self.timeout = timeout

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        message = EmailMessage()
        message["From"] = self.sender_address
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError):
            logger.exception(
                "SMTP delivery failed",
                extra={"recipient": recipient, "subject": subject},
            )
            return False
        return True


def build_notification_sender() -> NotificationSender:
    """Pick the sender implementation from settings."""
    if not settings.SMTP_HOST:
        return LogNotificationSender()
    return SmtpNotificationSender(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        use_tls=settings.SMTP_USE_TLS,
        sender_address=settings.MAIL_FROM,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
    )


_sender: NotificationSender | None = None


def get_notification_sender() -> NotificationSender:
    """FastAPI dependency returning the process-wide sender (overridable in tests)."""
    global _sender
    if _sender is None:
        _sender = build_notification_sender()
    return _sender


_ACTIONS = {
    "transfer": "transfer",
    "bill_payment": "bill payment",
    "password_reset": "password reset",
}


def otp_email(first_name: str, code: str, purpose: str) -> tuple[str, str]:
    """Subject and body of a verification-code email."""
    action = _ACTIONS.get(purpose, "transfer")
    subject = f"Your {action} verification code"
    body = (
        f"Hello {first_name},\n\n"
        f"Your verification code for the {action} you just requested is: {code}\n\n"
        f"The code expires in {settings.OTP_EXPIRE_MINUTES} minutes and can be used once.\n"
        "If you did not request this, contact support immediately and do not share the code.\n"
    )
    return subject, body


def password_changed_email(first_name: str) -> tuple[str, str]:
    subject = "Your password was changed"
    body = (
        f"Hello {first_name},\n\n"
        "The password on your account was just reset.\n"
        "If this wasn't you, contact support immediately.\n"
    )
    return subject, body


def loan_application_email(application, applicant) -> tuple[str, str]:
    """Notice sent to the lending desk when a member applies for a loan."""
    subject = f"New loan application {application.application_id}"
    purpose = application.custom_purpose or application.purpose
    body = (
        f"Application: {application.application_id}\n"
        f"Applicant: {applicant.full_name} <{applicant.email}>\n"
        f"Amount: {from_cents(application.amount_cents)} {settings.DEFAULT_CURRENCY}\n"
        f"Term: {application.term_months} months\n"
        f"Employment: {application.employment_type.value}\n"
        f"Purpose: {purpose}\n"
    )
    return subject, body
