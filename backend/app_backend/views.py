import redis
from django.conf import settings
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from rides.models import Ride
from rides.tasks import expire_pending_ride_task, handle_ride_status_change_task


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Health check endpoint for monitoring system status"""

    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "services": {}
    }

    def mark(service, problem=None):
        if problem is None:
            health_status["services"][service] = "healthy"
        else:
            health_status["services"][service] = f"unhealthy: {problem}"
            health_status["status"] = "unhealthy"

    # Database check
    try:
        Ride.objects.exists()
        mark("database")
    except Exception as e:
        mark("database", e)

    # Redis check
    try:
        redis_client = redis.Redis.from_url(settings.REDIS_URL, socket_timeout=3)
        redis_client.ping()
        mark("redis")
    except Exception as e:
        mark("redis", e)

    # Channel layer check
    try:
        if get_channel_layer() is not None:
            mark("channels")
        else:
            mark("channels", "no channel layer")
    except Exception as e:
        mark("channels", e)

    # Celery check
    if expire_pending_ride_task and handle_ride_status_change_task:
        mark("celery")
    else:
        mark("celery", "task not registered")

    status_code = (
        status.HTTP_200_OK
        if health_status["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )

    return Response(health_status, status=status_code)
