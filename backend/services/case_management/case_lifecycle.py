"""
Core report lifecycle operations.

States:
    open -> claimed -> {arrived, resolved} -> closed

Every guard runs before anything is written, and nearby clients are only
notified once the transaction has committed.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction

from common.exceptions import Forbidden, InvalidCoordinate, InvalidState, NotFound
from common.utils import bounding_box
from realtime.events import EventKind
from realtime.geo import validate_coordinate
from reports.models import Report, ReportPhoto, Response
from .expiry import expiry_cutoff

logger = logging.getLogger(__name__)


CASE_TRANSITIONS = {
    Report.STATUS_OPEN: {Report.STATUS_CLAIMED},
    Report.STATUS_CLAIMED: {Report.STATUS_ARRIVED, Report.STATUS_RESOLVED, Report.STATUS_CLOSED},
    Report.STATUS_ARRIVED: {Report.STATUS_RESOLVED, Report.STATUS_CLOSED},
    Report.STATUS_RESOLVED: {Report.STATUS_CLOSED},
    Report.STATUS_CLOSED: set(),
}

# Statuses reachable through update_case_status (claiming has its own operation)
PROGRESS_STATUSES = {Report.STATUS_ARRIVED, Report.STATUS_RESOLVED, Report.STATUS_CLOSED}

NEARBY_LIMIT = 200


@dataclass
class CaseResult:
    """Result object for case operations."""
    success: bool
    report: Optional[Report] = None
    response: Optional[Response] = None
    message: str = ""


# ===================== Helpers =====================

def _to_decimal(value: float) -> Decimal:
    return Decimal(str(round(value, 6)))


def _lock_report(report_id) -> Report:
    try:
        return Report.objects.select_for_update().get(id=report_id)
    except (Report.DoesNotExist, ValueError, TypeError):
        raise NotFound("Report not found")


def _notify_on_commit(kind: EventKind, report: Report, payload: dict):
    """Fan out to nearby connections once the surrounding transaction commits."""
    from realtime.notifications import notify_report_event

    transaction.on_commit(lambda: notify_report_event(kind, report, payload))


def _report_payload(report: Report) -> dict:
    from reports.serializers import ReportSerializer
    return dict(ReportSerializer(report).data)


def _response_payload(response: Response) -> dict:
    from reports.serializers import ResponseSerializer
    return dict(ResponseSerializer(response).data)


def _is_engaged_volunteer(report: Report, user) -> bool:
    """True if `user` has an accepted (or further progressed) response on the report."""
    return report.responses.filter(volunteer=user).exclude(
        status__in=[Response.STATUS_OFFERED, Response.STATUS_DECLINED]
    ).exists()


# ===================== Reporter Operations =====================

@transaction.atomic
def create_case(
    reporter,
    latitude,
    longitude,
    title: str = "",
    description: str = "",
    severity: Optional[str] = None,
    category: Optional[str] = None,
    location_text: Optional[str] = None,
    photos: Iterable = (),
) -> CaseResult:
    """
    Create a new open report and notify nearby volunteers.

    Args:
        reporter: User model instance
        latitude / longitude: Location of the animal
        title, description, severity, category, location_text: Report details
        photos: Uploaded files to attach

    Returns:
        CaseResult with the created report

    Raises:
        InvalidCoordinate: If latitude/longitude are missing or out of range
    """
    lat, lon = validate_coordinate(latitude, longitude)

    report = Report.objects.create(
        reporter=reporter,
        title=title or "",
        description=description or "",
        latitude=_to_decimal(lat),
        longitude=_to_decimal(lon),
        severity=severity or None,
        category=category or None,
        location_text=location_text or None,
        status=Report.STATUS_OPEN,
    )

    for upload in photos:
        ReportPhoto.objects.create(report=report, file=upload)

    logger.info("Report %s created by user %s at (%s, %s)", report.id, reporter.id, lat, lon)

    _notify_on_commit(EventKind.NEW_CASE, report, _report_payload(report))

    return CaseResult(success=True, report=report, message="Report created")


@transaction.atomic
def claim_case(actor, report_id, response_id) -> CaseResult:
    """
    Reporter accepts a volunteer's response: case -> claimed, response -> accepted.

    Other offered responses on the case are declined.

    Raises:
        NotFound: Report does not exist
        InvalidState: Report is not open, or the response is not an offer on it
        Forbidden: Actor is not the reporter
    """
    report = _lock_report(report_id)

    if report.status != Report.STATUS_OPEN:
        raise InvalidState(f"Report is {report.status}, not open")

    if report.reporter_id != actor.id:
        raise Forbidden("Only the reporter may claim this report")

    try:
        response = report.responses.select_for_update().get(id=response_id)
    except (Response.DoesNotExist, ValueError, TypeError):
        raise InvalidState("Response not found on this report")

    if response.status != Response.STATUS_OFFERED:
        raise InvalidState(f"Response is {response.status}, not offered")

    response.status = Response.STATUS_ACCEPTED
    response.save(update_fields=["status", "updated_at"])

    report.status = Report.STATUS_CLAIMED
    report.save(update_fields=["status", "updated_at"])

    declined = report.responses.exclude(id=response.id).filter(
        status=Response.STATUS_OFFERED
    ).update(status=Response.STATUS_DECLINED)

    logger.info(
        "Report %s claimed with response %s (volunteer %s), %d other offers declined",
        report.id, response.id, response.volunteer_id, declined,
    )

    _notify_on_commit(EventKind.CASE_CLAIMED, report, {
        "report_id": report.id,
        "status": report.status,
        "response": _response_payload(response),
    })

    return CaseResult(
        success=True,
        report=report,
        response=response,
        message="Volunteer accepted",
    )


# ===================== Volunteer Operations =====================

@transaction.atomic
def respond_to_case(volunteer, report_id, message: str = "") -> CaseResult:
    """
    Offer help on an open report.

    Raises:
        NotFound: Report does not exist
        Forbidden: Volunteer is the reporter
        InvalidState: Report is no longer open
    """
    report = _lock_report(report_id)

    if report.reporter_id == volunteer.id:
        raise Forbidden("Reporter cannot respond to own report")

    if report.status != Report.STATUS_OPEN:
        raise InvalidState(f"Report is {report.status}, not accepting offers")

    response = Response.objects.create(
        report=report,
        volunteer=volunteer,
        message=message or None,
        status=Response.STATUS_OFFERED,
    )

    logger.info("User %s offered help on report %s (response %s)", volunteer.id, report.id, response.id)

    _notify_on_commit(EventKind.NEW_RESPONSE, report, {
        "report_id": report.id,
        "response": _response_payload(response),
    })

    return CaseResult(success=True, report=report, response=response, message="Offer sent")


# ===================== Status Progression =====================

@transaction.atomic
def update_case_status(actor, report_id, status: str, response_id=None) -> CaseResult:
    """
    Move a claimed report forward (arrived / resolved / closed).

    Allowed for the reporter and for the volunteer whose response was
    accepted. If response_id is given, that response takes the same status.

    Raises:
        NotFound: Report does not exist
        InvalidState: Transition not allowed, or response not engaged on this report
        Forbidden: Actor is neither the reporter nor the accepted volunteer
    """
    report = _lock_report(report_id)

    if status not in PROGRESS_STATUSES:
        raise InvalidState(f"Cannot set status to {status!r}")

    if status not in CASE_TRANSITIONS.get(report.status, set()):
        raise InvalidState(f"Cannot move report from {report.status} to {status}")

    if report.reporter_id != actor.id and not _is_engaged_volunteer(report, actor):
        raise Forbidden("Only the reporter or the accepted volunteer may update this report")

    response = None
    if response_id is not None:
        try:
            response = report.responses.select_for_update().get(id=response_id)
        except (Response.DoesNotExist, ValueError, TypeError):
            raise InvalidState("Response not found on this report")

        if response.status in (Response.STATUS_OFFERED, Response.STATUS_DECLINED):
            raise InvalidState(f"Response is {response.status}, not engaged on this report")

    previous = report.status
    report.status = status
    report.save(update_fields=["status", "updated_at"])

    if response is not None:
        response.status = status
        response.save(update_fields=["status", "updated_at"])

    logger.info("Report %s status %s -> %s by user %s", report.id, previous, status, actor.id)

    _notify_on_commit(EventKind.CASE_STATUS_CHANGED, report, {
        "report_id": report.id,
        "status": status,
        "previous_status": previous,
        "response_id": response.id if response else None,
    })

    return CaseResult(success=True, report=report, response=response, message=f"Report {status}")


# ===================== Queries =====================

def get_case(report_id) -> Report:
    try:
        return Report.objects.select_related("reporter").prefetch_related("photos").get(id=report_id)
    except (Report.DoesNotExist, ValueError, TypeError):
        raise NotFound("Report not found")


def list_cases_near(latitude, longitude, radius_km: Optional[float] = None):
    """
    Reports inside a rough bounding box around a point, newest first.

    The box is `radius_km` from the point on each side, so hits in its
    corners can be up to radius_km * sqrt(2) away.

    Raises:
        InvalidCoordinate: bad latitude/longitude or a non-positive radius
    """
    lat, lon = validate_coordinate(latitude, longitude)
    radius_km = radius_km or settings.NEARBY_DEFAULT_RADIUS_KM
    if not math.isfinite(radius_km) or radius_km <= 0:
        raise InvalidCoordinate(f"radius {radius_km} must be a positive number")

    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius_km)
    return (
        Report.objects
        .filter(
            latitude__gte=_to_decimal(min_lat),
            latitude__lte=_to_decimal(max_lat),
            longitude__gte=_to_decimal(min_lon),
            longitude__lte=_to_decimal(max_lon),
        )
        .select_related("reporter")
        .prefetch_related("photos")
        .order_by("-created_at")[:NEARBY_LIMIT]
    )


def list_cases_all(status: Optional[str] = None, expired: Optional[bool] = None):
    """All reports, newest first, optionally filtered by status or expiry."""
    qs = Report.objects.select_related("reporter").prefetch_related("photos").order_by("-created_at")

    if status:
        qs = qs.filter(status=status)

    if expired is True:
        qs = qs.filter(status=Report.STATUS_OPEN, created_at__lte=expiry_cutoff())
    elif expired is False:
        qs = qs.exclude(status=Report.STATUS_OPEN, created_at__lte=expiry_cutoff())

    return qs


def list_cases_by_reporter(user):
    return list_cases_all().filter(reporter=user)


def list_responses(report_id):
    report = get_case(report_id)
    return report.responses.select_related("volunteer").all()
