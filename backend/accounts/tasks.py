"""Celery tasks for account emails."""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


@shared_task
def send_otp_email_task(email: str, code: str):
    """Send the verification code by email."""
    try:
        send_mail(
            subject="Your Animal Rescue verification code",
            message=(
                f"Your verification code is {code}. "
                f"It expires in {settings.OTP_TTL_SECONDS // 60} minutes."
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[email],
            fail_silently=False,
        )
        logger.info("Sent OTP email to %s", email)
        return True
    except Exception as e:
        logger.error("Failed to send OTP email to %s: %s", email, e)
        return False
