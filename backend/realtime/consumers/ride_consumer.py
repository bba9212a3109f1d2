"""Ride tracking WebSocket consumer for real-time ride updates."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.notifications import ride_group

logger = logging.getLogger(__name__)


class RideConsumer(BaseConsumer):
    """
    WebSocket consumer for ride tracking.

    Used by both drivers and riders to:
        - Receive ride status updates of a ride they take part in
        - Send/receive live driver location during an active ride
    """

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Ride tracking connection established",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle ride tracking messages."""

        if msg_type == "start_tracking":
            await self._handle_start_tracking(data)
        elif msg_type == "stop_tracking":
            await self._handle_stop_tracking(data)
        elif msg_type == "tracking_update":
            await self._handle_tracking_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_start_tracking(self, data: Dict[str, Any]):
        """
        Watch a ride. Both driver and rider join ride_<ride_id> to share
        status changes and location updates.
        """
        ride_id = data.get("ride_id")

        if not ride_id:
            await self.send_error("start_tracking requires ride_id")
            return

        if not await self._validate_ride_participant(ride_id):
            await self.send_error("You are not authorized to track this ride")
            return

        await self._watch_ride(ride_id)
        await self.send_success("tracking_started", ride_id=ride_id)

    async def _handle_stop_tracking(self, data: Dict[str, Any]):
        ride_id = data.get("ride_id")

        if not ride_id:
            return

        await self._unsubscribe(f"ride:{ride_id}")
        await self.send_success("tracking_stopped", ride_id=ride_id)

    async def _handle_tracking_update(self, data: Dict[str, Any]):
        """
        Driver sends location update during an active ride.
        Broadcasts to everyone watching the ride.
        """
        if self.role != "driver":
            await self.send_error("Only drivers can send tracking updates")
            return

        ride_id = data.get("ride_id")
        lat = data.get("latitude")
        lon = data.get("longitude")

        if not ride_id or lat is None or lon is None:
            await self.send_error("tracking_update requires ride_id, latitude, and longitude")
            return

        if f"ride:{ride_id}" not in self.subscriptions:
            await self.send_error("Call start_tracking before sending tracking updates")
            return

        await self._update_driver_location_db(lat, lon)

        await self.channel_layer.group_send(ride_group(ride_id), {
            "type": "driver_track_location",
            "user_id": self.user_id,
            "latitude": float(lat),
            "longitude": float(lon),
        })

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def driver_track_location(self, event):
        """Forward driver location during ride tracking."""
        await self.send_json({
            "type": "driver_track_location",
            "user_id": event.get("user_id"),
            "latitude": event.get("latitude"),
            "longitude": event.get("longitude"),
        })

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _validate_ride_participant(self, ride_id: str) -> bool:
        """Check if user is the ride's rider or its current driver."""
        from rides.models import Ride

        ride = Ride.objects.filter(ride_id=ride_id).only("rider_id", "driver_id").first()
        if ride is None:
            return False
        return self.user_id in (ride.rider_id, ride.driver_id)

    @database_sync_to_async
    def _update_driver_location_db(self, lat, lon) -> bool:
        from drivers.models import DriverProfile
        from drivers.services import update_driver_location
        from services.ride_management.exceptions import RideServiceError

        try:
            return update_driver_location(DriverProfile.objects.get(user_id=self.user_id), lat, lon)
        except (DriverProfile.DoesNotExist, RideServiceError):
            logger.warning("Rejected tracking location from driver %s", self.user_id)
            return False
