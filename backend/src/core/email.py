"""Outbound account e-mails (verification and password reset)."""
import asyncio
import logging
import smtplib
from email.message import EmailMessage

from core.config import Settings

logger = logging.getLogger(__name__)


def _build_message(settings: Settings, to: str, subject: str, text: str, html: str) -> EmailMessage:  # noqa: E501
    message = EmailMessage()
    message["From"] = settings.email_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


def _send_smtp(settings: Settings, message: EmailMessage) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
        if settings.smtp_use_tls:
            smtp.starttls()
        if settings.smtp_username:
            smtp.login(settings.smtp_username, settings.smtp_password)
        smtp.send_message(message)


async def send_email(settings: Settings, to: str, subject: str, text: str, html: str) -> bool:
    """
    Deliver an e-mail, best effort.

    Without SMTP_HOST the message is only logged, which is how local
    development surfaces verification links. Delivery failures are logged and
    reported through the return value; they never raise.

    Returns:
        True if the message was handed to the SMTP server (or logged), False on failure.
    """
    message = _build_message(settings, to, subject, text, html)
    if not settings.smtp_enabled:
        logger.info("SMTP disabled; e-mail to %s (%s):\n%s", to, subject, text)
        return True

    try:
        # smtplib is blocking; keep it off the event loop
        await asyncio.to_thread(_send_smtp, settings, message)
    except (smtplib.SMTPException, OSError):
        logger.warning("Failed to send '%s' e-mail to %s", subject, to, exc_info=True)
        return False
    logger.info("Sent '%s' e-mail to %s", subject, to)
    return True


async def send_verification_email(settings: Settings, to: str, token: str) -> bool:
    """Send the e-mail address verification link."""
    link = f"{settings.frontend_url.rstrip('/')}/verify-email/{token}"
    hours = settings.email_verification_expire_hours
    return await send_email(
        settings,
        to,
        "Verify Your Email",
        text=(
            "Please open the link below to verify your email address:\n"
            f"{link}\n\nThis link will expire in {hours} hours."
        ),
        html=(
            "<h2>Verify Your Email Address</h2>"
            "<p>Please click the link below to verify your email address:</p>"
            f'<a href="{link}">Verify Email</a>'
            f"<p>This link will expire in {hours} hours.</p>"
            "<p>If you didn't request this verification, please ignore this email.</p>"
        ),
    )


async def send_password_reset_email(settings: Settings, to: str, token: str) -> bool:
    """Send the password reset link."""
    link = f"{settings.frontend_url.rstrip('/')}/reset-password/{token}"
    hours = settings.password_reset_expire_hours
    return await send_email(
        settings,
        to,
        "Password Reset Request",
        text=(
            "You requested to reset your password. Open the link below to proceed:\n"
            f"{link}\n\nThis link will expire in {hours} hour(s)."
        ),
        html=(
            "<h2>Reset Your Password</h2>"
            "<p>You requested to reset your password. Click the link below to proceed:</p>"
            f'<a href="{link}">Reset Password</a>'
            f"<p>This link will expire in {hours} hour(s).</p>"
            "<p>If you didn't request this reset, please ignore this email.</p>"
        ),
    )
