"""Driver WebSocket consumer for location updates and the nearby-rides feed."""

import logging
from typing import Dict, Any, List, Optional

from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.notifications import driver_group
from realtime.subscriptions import NearbyRidesSubscription, Subscription, watch_nearby_rides

logger = logging.getLogger(__name__)

FEED_KEY = "nearby_rides"


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Handles:
        - Driver location updates (moves under the threshold are ignored)
        - The nearby-rides feed, refreshed at most once per debounce window
        - Ride requests addressed to this driver
        - Status changes (available/offline)
    """

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        if self.role != "driver":
            await self.send_error("This endpoint is for drivers only")
            await self.close()
            return

        # Driver-specific group for targeted notifications
        await self._subscribe(Subscription(self.channel_layer, self.channel_name,
                                           [driver_group(self.user_id)], key="driver"))

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Driver connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""

        if msg_type == "driver_location_update":
            await self._handle_location_update(data)
        elif msg_type == "driver_status_update":
            await self._handle_status_update(data)
        elif msg_type == "watch_nearby_rides":
            await self._handle_watch_nearby_rides()
        elif msg_type == "unwatch_nearby_rides":
            await self._unsubscribe(FEED_KEY)
            await self.send_success("nearby_rides_unwatched")
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    @property
    def feed(self) -> Optional[NearbyRidesSubscription]:
        return self.subscriptions.get(FEED_KEY)

    # ---------------------- Message Handlers ----------------------

    async def _handle_location_update(self, data: Dict[str, Any]):
        """
        Persist the driver's position if it moved at least
        DRIVER_LOCATION_MIN_MOVE_METERS, then refresh the feed (debounced).
        """
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("driver_location_update requires latitude and longitude")
            return

        moved = await self._update_driver_location_db(lat, lon)
        if moved is None:
            await self.send_error("Invalid location")
            return

        if moved and self.feed is not None:
            self.feed.request_refresh()

        logger.debug("Driver %s location update: lat=%s, lon=%s, moved=%s", self.user_id, lat, lon, moved)

    async def _handle_status_update(self, data: Dict[str, Any]):
        """Handle driver status change (available/offline)."""
        status = data.get("status")

        if status not in ["available", "offline"]:
            await self.send_error("Invalid status. Must be: available or offline")
            return

        error = await self._update_driver_status_db(status)
        if error:
            await self.send_error(error)
            return

        if status == "offline":
            await self._unsubscribe(FEED_KEY)

        await self.send_success("status_updated", status=status)

    async def _handle_watch_nearby_rides(self):
        if self.feed is None:
            subscription = await watch_nearby_rides(self.channel_layer, self.channel_name, self._send_nearby_rides)
            self.subscriptions[subscription.key] = subscription
        await self._send_nearby_rides()

    async def _send_nearby_rides(self):
        rides = await self._load_nearby_rides()
        await self.send_json({
            "type": "nearby_rides",
            "count": len(rides),
            "rides": rides,
        })

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def ride_feed_changed(self, event):
        """Some pending ride changed; coalesce into one feed refresh."""
        if self.feed is not None:
            self.feed.request_refresh()

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _update_driver_location_db(self, lat, lon) -> Optional[bool]:
        """Returns whether the stored location changed, or None if it was rejected."""
        from drivers.models import DriverProfile
        from drivers.services import update_driver_location
        from services.ride_management.exceptions import RideServiceError

        try:
            return update_driver_location(DriverProfile.objects.get(user_id=self.user_id), lat, lon)
        except RideServiceError:
            return None

    @database_sync_to_async
    def _update_driver_status_db(self, status: str) -> Optional[str]:
        from drivers.models import DriverProfile
        from drivers.services import update_driver_status
        from services.ride_management.exceptions import RideServiceError

        try:
            update_driver_status(DriverProfile.objects.get(user_id=self.user_id), status)
        except RideServiceError as e:
            return e.message
        return None

    @database_sync_to_async
    def _load_nearby_rides(self) -> List[Dict[str, Any]]:
        from drivers.models import DriverProfile
        from rides.serializers import RideSerializer
        from services.matching import find_nearby_rides_for_driver

        profile = DriverProfile.objects.get(user_id=self.user_id)
        if not profile.is_available or profile.current_latitude is None:
            return []

        rides = []
        for item in find_nearby_rides_for_driver(self.user, profile.current_latitude, profile.current_longitude):
            data = dict(RideSerializer(item.ride).data)
            data["distance_meters"] = round(item.distance_meters, 2)
            rides.append(data)
        return rides
