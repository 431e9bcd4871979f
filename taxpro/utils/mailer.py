"""
Outbound notification emails sent through Flask-Mail.

Mail is optional: with no MAIL_SERVER configured every send is skipped, and
MAIL_SUPPRESS_SEND makes Flask-Mail record messages instead of delivering them.
Delivery failures are logged and reported as False; they never fail the
request that triggered them.
"""

from flask import current_app
from flask_mail import Message
from smtplib import SMTPException
import logging

from taxpro import mail

logger = logging.getLogger(__name__)


def _send(subject: str, recipients: list, body: str) -> bool:
    if not current_app.config.get('MAIL_SERVER'):
        logger.debug(f"Mail disabled, not sending {subject!r} to {recipients}")
        return False

    message = Message(subject=subject, recipients=recipients, body=body)
    try:
        mail.send(message)
    except (SMTPException, OSError) as e:
        logger.error(f"Failed to send {subject!r} to {recipients}: {e}")
        return False
    logger.info(f"Sent {subject!r} to {recipients}")
    return True


def _frontend_link(path: str, token: str) -> str:
    base = current_app.config.get('FRONTEND_URL') or 'http://localhost:3000'
    return f"{base.rstrip('/')}/{path}?token={token}"


def send_verification_email(user) -> bool:
    link = _frontend_link('verify-email', user.verification_token)
    body = (
        f"Hi {user.first_name},\n\n"
        f"Welcome to TaxPro. Please confirm your email address by visiting:\n{link}\n"
    )
    return _send('Verify your TaxPro account', [user.email], body)


def send_password_reset_email(user, token: str) -> bool:
    link = _frontend_link('reset-password', token)
    body = (
        f"Hi {user.first_name},\n\n"
        f"A password reset was requested for your account. This link expires in one hour:\n{link}\n\n"
        "If you did not request this, you can ignore this email.\n"
    )
    return _send('Reset your TaxPro password', [user.email], body)


def send_inquiry_confirmation(inquiry) -> bool:
    body = (
        f"Hi {inquiry.first_name},\n\n"
        f"Thanks for getting in touch. We received your message \"{inquiry.subject}\" "
        "and will get back to you within 24 hours.\n"
    )
    return _send('We received your message', [inquiry.email], body)


def send_inquiry_notification(inquiry) -> bool:
    """Let support know a new inquiry arrived."""
    support = current_app.config.get('MAIL_DEFAULT_SENDER')
    if not support:
        return False
    body = (
        f"New {inquiry.inquiry_type} inquiry from {inquiry.first_name} {inquiry.last_name} "
        f"<{inquiry.email}>\n\nSubject: {inquiry.subject}\n\n{inquiry.message}\n"
    )
    return _send(f'New contact inquiry: {inquiry.subject}', [support], body)
