"""Utilities for sending transactional emails."""

from __future__ import annotations

from email.message import EmailMessage
import logging
import smtplib
from typing import Callable, Protocol

from fastapi import BackgroundTasks

from identity.core.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when an email could not be delivered."""


class Mailer(Protocol):
    """Outbound link delivery used by the registration and auth flows."""

    def send_activation(self, recipient: str, link: str) -> None: ...

    def send_password_reset(self, recipient: str, link: str) -> None: ...

    def send_email_change_confirmation(self, recipient: str, new_email: str, link: str) -> None: ...


def build_link_email(recipient: str, subject: str, intro: str, action: str, link: str) -> EmailMessage:
    """Construct a plain-text plus HTML message carrying a single action link."""

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.email_sender
    message["To"] = recipient
    message.set_content(
        (
            f"{intro}\n\n"
            f"{action}:\n"
            f"{link}\n\n"
            "If you did not request this, you can ignore this email."
        )
    )
    message.add_alternative(
        (
            f"<p>{intro}</p>"
            f"<p><a href=\"{link}\">{action}</a></p>"
            "<p>If you did not request this, you can ignore this email.</p>"
        ),
        subtype="html",
    )
    return message


def send_email(message: EmailMessage) -> None:
    """Send an email using the configured SMTP server."""

    host = settings.smtp_host
    port = settings.smtp_port
    username = settings.smtp_username or None
    password = settings.smtp_password or None
    use_tls = settings.smtp_use_tls

    try:
        with smtplib.SMTP(host=host, port=port) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - network failure path
        raise EmailDeliveryError("Failed to send email") from exc


class SmtpMailer:
    """:class:`Mailer` that delivers through the configured SMTP relay."""

    def send_activation(self, recipient: str, link: str) -> None:
        send_email(
            build_link_email(
                recipient,
                "Activate your account",
                "Thanks for signing up! Please confirm your email address.",
                "Activate my account",
                link,
            )
        )

    def send_password_reset(self, recipient: str, link: str) -> None:
        send_email(
            build_link_email(
                recipient,
                "Reset your password",
                "We received a request to reset the password for your account.",
                "Choose a new password",
                link,
            )
        )

    def send_email_change_confirmation(self, recipient: str, new_email: str, link: str) -> None:
        send_email(
            build_link_email(
                recipient,
                "Confirm your new email address",
                f"Please confirm that {new_email} should become the email address of your account.",
                "Confirm my new email",
                link,
            )
        )


def deliver_quietly(send: Callable[..., None], recipient: str, *args: str) -> None:
    """Run ``send`` and log, rather than raise, a delivery failure."""

    try:
        send(recipient, *args)
    except EmailDeliveryError:
        logger.warning(
            "Email delivery failed",
            exc_info=True,
            extra={"recipient": recipient, "mail": getattr(send, "__name__", repr(send))},
        )


def dispatch_email(
    send: Callable[..., None],
    recipient: str,
    *args: str,
    background_tasks: BackgroundTasks | None = None,
) -> None:
    """Deliver now, or after the response when ``background_tasks`` is given."""

    if background_tasks is not None:
        background_tasks.add_task(deliver_quietly, send, recipient, *args)
    else:
        deliver_quietly(send, recipient, *args)


__all__ = [
    "EmailDeliveryError",
    "Mailer",
    "SmtpMailer",
    "build_link_email",
    "deliver_quietly",
    "dispatch_email",
    "send_email",
]
