import logging
import math

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from common.exceptions import Forbidden, InvalidCoordinate, InvalidState, NotFound, RescueError
from services import case_management
from .serializers import (
    ClaimSerializer,
    ReportCreateSerializer,
    ReportSerializer,
    RespondSerializer,
    ResponseSerializer,
    StatusUpdateSerializer,
    validate_uploads,
)

logger = logging.getLogger(__name__)


def error_response(exc: RescueError):
    """Map a domain error to an HTTP response."""
    if isinstance(exc, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, Forbidden):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, InvalidCoordinate):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, InvalidState):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response({'error': str(exc)}, status=code)


def _parse_bool(value):
    if value is None:
        return None
    return value.lower() in ('1', 'true', 'yes')


# ==================== Report APIs ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser, JSONParser])
def reports(request):
    """
    GET:  All reports, newest first (?status=open, ?expired=true|false), paginated
    POST: Create a report (multipart; any number of photo files)
    """
    if request.method == 'GET':
        qs = case_management.list_cases_all(
            status=request.query_params.get('status'),
            expired=_parse_bool(request.query_params.get('expired')),
        )
        paginator = PageNumberPagination()
        page = paginator.paginate_queryset(qs, request)
        serializer = ReportSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(serializer.data)

    serializer = ReportCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    photos = [f for key in request.FILES for f in request.FILES.getlist(key)]
    validate_uploads(photos)

    try:
        result = case_management.create_case(
            reporter=request.user,
            photos=photos,
            **serializer.validated_data,
        )
    except RescueError as e:
        return error_response(e)

    return Response(
        {'report': ReportSerializer(result.report, context={'request': request}).data},
        status=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@permission_classes([AllowAny])
def nearby_reports(request):
    """
    Reports near a point

    Query: ?lat=..&lng=..&radiusKm=5
    Simple bounding box; precise enough for listing around the user.
    """
    lat = request.query_params.get('lat', request.query_params.get('latitude'))
    lng = request.query_params.get('lng', request.query_params.get('longitude'))

    radius_km = request.query_params.get('radiusKm')
    if radius_km is not None:
        try:
            radius_km = float(radius_km)
        except ValueError:
            radius_km = None
        if radius_km is None or not math.isfinite(radius_km) or radius_km <= 0:
            return Response(
                {'error': 'radiusKm must be a positive number'},
                status=status.HTTP_400_BAD_REQUEST,
            )

    try:
        qs = case_management.list_cases_near(lat, lng, radius_km)
    except InvalidCoordinate:
        return Response({'error': 'lat and lng required'}, status=status.HTTP_400_BAD_REQUEST)

    return Response({'reports': ReportSerializer(qs, many=True, context={'request': request}).data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_reports(request):
    """Reports created by the current user"""
    qs = case_management.list_cases_by_reporter(request.user)
    return Response({'reports': ReportSerializer(qs, many=True, context={'request': request}).data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def report_detail(request, report_id):
    try:
        report = case_management.get_case(report_id)
    except RescueError as e:
        return error_response(e)

    return Response({'report': ReportSerializer(report, context={'request': request}).data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def report_responses(request, report_id):
    """Volunteer responses on a report"""
    try:
        responses = case_management.list_responses(report_id)
    except RescueError as e:
        return error_response(e)

    return Response({'responses': ResponseSerializer(responses, many=True).data})


# ==================== Lifecycle APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def respond_to_report(request, report_id):
    """Any authenticated user other than the reporter offers help"""
    serializer = RespondSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = case_management.respond_to_case(
            request.user, report_id, serializer.validated_data['message']
        )
    except RescueError as e:
        return error_response(e)

    return Response(
        {'response': ResponseSerializer(result.response).data},
        status=status.HTTP_201_CREATED,
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def claim_report(request, report_id):
    """
    Reporter accepts a volunteer

    POST Body: { "response_id": 12 }
    """
    serializer = ClaimSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = case_management.claim_case(
            request.user, report_id, serializer.validated_data['response_id']
        )
    except RescueError as e:
        return error_response(e)

    return Response({
        'ok': True,
        'report': ReportSerializer(result.report, context={'request': request}).data,
        'response': ResponseSerializer(result.response).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def update_report_status(request, report_id):
    """
    Move a claimed report forward

    POST Body: { "status": "arrived" | "resolved" | "closed", "response_id": 12 (optional) }
    """
    serializer = StatusUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = case_management.update_case_status(
            request.user,
            report_id,
            serializer.validated_data['status'],
            response_id=serializer.validated_data['response_id'],
        )
    except RescueError as e:
        return error_response(e)

    return Response({
        'ok': True,
        'report': ReportSerializer(result.report, context={'request': request}).data,
    })
