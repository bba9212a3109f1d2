"""
Notification helpers for sending WebSocket messages to connected clients.

This module provides functions to:
- Publish committed ride status changes on the live-update channel
- Send ride-related events to drivers and riders

Every rider/driver event carries a ``notification`` payload of
``{title, body, rideId, status}`` for the push layer to render.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

RIDE_FEED_GROUP = "ride_feed"

NOTIFICATION_TITLES = {
    "ride_requested": "New ride request",
    "ride_accepted": "Ride accepted",
    "ride_started": "Trip started",
    "ride_completed": "Trip completed",
    "ride_cancelled": "Ride cancelled",
    "reassignment_needed": "Driver unavailable",
}


def ride_group(ride_id: str) -> str:
    return f"ride_{ride_id}"


def driver_group(driver_id: int) -> str:
    return f"driver_{driver_id}"


def user_group(user_id: int) -> str:
    return f"user_{user_id}"


def build_notification(event_type: str, ride, body: str = "") -> Dict[str, Any]:
    return {
        "title": NOTIFICATION_TITLES.get(event_type, "Ride update"),
        "body": body,
        "rideId": ride.ride_id,
        "status": ride.status,
    }


def _serialize(ride) -> Dict[str, Any]:
    from rides.serializers import RideSerializer
    return dict(RideSerializer(ride).data)


def _send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available for %s", group)
        return False

    logger.debug("WS -> %s: %s", group, payload.get("type"))
    async_to_sync(channel_layer.group_send)(group, payload)
    return True


# ---------------------- Live ride state ----------------------

def publish_ride_update(ride_id: str, status: str, previous_status: Optional[str], version: int) -> bool:
    """
    Broadcast a committed status change to the ride's watchers and to the
    driver-side ride feed.
    """
    event = {
        "ride_id": ride_id,
        "status": status,
        "previous_status": previous_status,
        "version": version,
    }
    sent = _send(ride_group(ride_id), {"type": "ride_status_changed", **event})
    _send(RIDE_FEED_GROUP, {"type": "ride_feed_changed", **event})
    return sent


# ---------------------- Ride Event Notifications ----------------------

def notify_driver_event(
    event_type: str,
    ride,
    driver_id: int | None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to a specific driver using their personal group: driver_<driver_id>

    Args:
        event_type: Handler name in consumer (ride_requested, ride_cancelled, ...)
        ride: Ride model instance
        driver_id: Target driver's user ID
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent successfully, False otherwise
    """
    if not driver_id:
        return False

    payload = {
        "type": event_type,
        "ride_id": ride.ride_id,
        "driver_id": driver_id,
        "status": ride.status,
        "ride_data": _serialize(ride),
        "notification": build_notification(event_type, ride, message),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _send(driver_group(driver_id), payload)


def notify_rider_event(
    event_type: str,
    ride,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send ride-related event to the rider through: user_<rider_id>

    Args:
        event_type: Handler name in consumer (ride_accepted, reassignment_needed, ...)
        ride: Ride model instance
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent successfully, False otherwise
    """
    rider_id = ride.rider_id
    if not rider_id:
        return False

    payload = {
        "type": event_type,
        "ride_id": ride.ride_id,
        "status": ride.status,
        "ride_data": _serialize(ride),
        "notification": build_notification(event_type, ride, message),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _send(user_group(rider_id), payload)
