"""Rider WebSocket consumer for ride notifications and live ride state."""

import logging
from typing import Dict, Any, Optional

from channels.db import database_sync_to_async

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class RiderConsumer(BaseConsumer):
    """
    WebSocket consumer for riders.

    Handles:
        - Ride notifications addressed to the rider (accepted, reassignment needed, ...)
        - Watching the live status of the rider's own rides

    On connect the rider's current ride, if any, is watched automatically.
    """

    async def on_connect(self):
        """Set up rider-specific connection."""
        if self.role != "rider":
            await self.send_error("This endpoint is for riders only")
            await self.close()
            return

        current = await self._get_current_ride_id()
        if current:
            await self._watch_ride(current)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "current_ride_id": current,
            "message": "Rider connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle rider-specific messages."""

        if msg_type == "watch_ride":
            await self._handle_watch_ride(data)
        elif msg_type == "unwatch_ride":
            await self._handle_unwatch_ride(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_watch_ride(self, data: Dict[str, Any]):
        ride_id = data.get("ride_id")
        if not ride_id:
            await self.send_error("watch_ride requires ride_id")
            return

        if not await self._owns_ride(ride_id):
            await self.send_error("You are not authorized to watch this ride")
            return

        await self._watch_ride(ride_id)
        await self.send_success("ride_watched", ride_id=ride_id)

    async def _handle_unwatch_ride(self, data: Dict[str, Any]):
        ride_id = data.get("ride_id")
        if not ride_id:
            return
        await self._unsubscribe(f"ride:{ride_id}")
        await self.send_success("ride_unwatched", ride_id=ride_id)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _get_current_ride_id(self) -> Optional[str]:
        from services.ride_management import get_current_rider_ride

        ride = get_current_rider_ride(self.user)
        return ride.ride_id if ride else None

    @database_sync_to_async
    def _owns_ride(self, ride_id: str) -> bool:
        from rides.models import Ride
        return Ride.objects.filter(ride_id=ride_id, rider_id=self.user_id).exists()
