"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from realtime.notifications import user_group
from realtime.subscriptions import Subscription, watch_ride

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.

    Every group membership is held as a Subscription handle in
    ``self.subscriptions``; all of them are closed on disconnect.

    Subclasses should override:
        - on_connect(): custom connect logic
        - handle_message(msg_type, data): handle incoming messages
    """

    async def connect(self):
        self.user = self.scope["user"]
        self.subscriptions: Dict[str, Subscription] = {}

        if self.user.is_anonymous:
            await self.close()
            return

        # Basic attributes available to all consumers
        self.user_id = getattr(self.user, "id", None)
        self.role = getattr(self.user, "role", None)

        await self.accept()

        # Personal group (targeted server->user messages)
        await self._subscribe(Subscription(self.channel_layer, self.channel_name,
                                           [user_group(self.user_id)], key="user"))
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        """Dispose every subscription, including pending debounce timers."""
        try:
            for key in list(getattr(self, "subscriptions", {})):
                await self._unsubscribe(key)
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'user_id', 'unknown'))

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return

        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Subscription Helpers ----------------------

    async def _subscribe(self, subscription: Subscription) -> Subscription:
        """Open a subscription and keep its handle; replaces one with the same key."""
        await self._unsubscribe(subscription.key)
        await subscription.open()
        self.subscriptions[subscription.key] = subscription
        return subscription

    async def _unsubscribe(self, key: str) -> bool:
        subscription = self.subscriptions.pop(key, None)
        if subscription is None:
            return False
        await subscription.close()
        return True

    async def _watch_ride(self, ride_id: str) -> Subscription:
        await self._unsubscribe(f"ride:{ride_id}")
        subscription = await watch_ride(self.channel_layer, self.channel_name, ride_id)
        self.subscriptions[subscription.key] = subscription
        return subscription

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
        })

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })

    # ---------------------- Common Event Handlers ----------------------
    # These handle group_send events from server-side code

    async def _forward_ride_event(self, event):
        await self.send_json({
            "type": event["type"],
            "ride_id": event.get("ride_id"),
            "status": event.get("status"),
            "message": event.get("message", ""),
            "ride": event.get("ride_data", {}),
            "notification": event.get("notification"),
            **({"options": event["options"]} if "options" in event else {}),
        })

    async def ride_requested(self, event):
        """Sent to a driver a rider picked for a ride."""
        await self._forward_ride_event(event)

    async def ride_accepted(self, event):
        """Sent to the rider when the driver accepts."""
        await self._forward_ride_event(event)

    async def ride_started(self, event):
        await self._forward_ride_event(event)

    async def ride_completed(self, event):
        await self._forward_ride_event(event)

    async def ride_cancelled(self, event):
        """Sent when a ride is cancelled."""
        await self._forward_ride_event(event)

    async def reassignment_needed(self, event):
        """Sent to the rider when their driver dropped out; carries retry/cancel options."""
        await self._forward_ride_event(event)

    async def ride_status_changed(self, event):
        """Committed status change of a watched ride."""
        await self.send_json({
            "type": "ride_status_changed",
            "ride_id": event.get("ride_id"),
            "status": event.get("status"),
            "previous_status": event.get("previous_status"),
            "version": event.get("version"),
        })
