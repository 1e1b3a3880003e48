import redis
from django.conf import settings
from django.db import connection
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from realtime.registry import get_connection_registry


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Health check endpoint for monitoring system status"""
    
    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "services": {}
    }

    # Database check
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Redis check (only when the channel layer runs on Redis)
    if "redis" in settings.CHANNEL_LAYERS["default"]["BACKEND"].lower():
        try:
            redis.Redis.from_url(settings.REDIS_URL, socket_timeout=3).ping()
            health_status["services"]["redis"] = "healthy"
        except Exception as e:
            health_status["services"]["redis"] = f"unhealthy: {e}"
            health_status["status"] = "unhealthy"

    # Channel layer check
    try:
        channel_layer = get_channel_layer()
        if channel_layer is not None:
            health_status["services"]["channels"] = "healthy"
        else:
            health_status["services"]["channels"] = "unhealthy: no channel layer"
            health_status["status"] = "unhealthy"
    except Exception as e:
        health_status["services"]["channels"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    # Realtime registry (process-local)
    health_status["services"]["realtime"] = {
        "connections": get_connection_registry().snapshot()["connections"],
    }

    status_code = (
        status.HTTP_200_OK
        if health_status["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )

    return Response(health_status, status=status_code)


@api_view(["GET"])
@permission_classes([AllowAny])
def connections_debug(request):
    """Connections and cell occupancy of this process (development only)"""
    if not settings.DEBUG:
        return Response({"error": "Not available"}, status=status.HTTP_404_NOT_FOUND)
    return Response(get_connection_registry().snapshot())
