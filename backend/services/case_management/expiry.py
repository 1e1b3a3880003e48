"""Advisory expiry of open reports (display only, never stored)."""

from datetime import timedelta

from django.conf import settings
from django.utils import timezone


def expiry_window() -> timedelta:
    return timedelta(days=getattr(settings, "REPORT_EXPIRY_DAYS", 3))


def is_expired(report, now=None) -> bool:
    """An open report older than the expiry window is shown as expired."""
    if report.status != "open" or report.created_at is None:
        return False
    now = now or timezone.now()
    return now - report.created_at >= expiry_window()


def expiry_cutoff(now=None):
    """Reports created at or before this instant are past the window."""
    return (now or timezone.now()) - expiry_window()
