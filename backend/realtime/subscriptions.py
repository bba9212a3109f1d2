"""
Caller-owned subscriptions to live ride data.

A subscription is an explicit handle: it joins its channel-layer groups on
``open()`` and leaves them on ``close()``. Consumers keep the handles they
open and close them all on disconnect, so nothing keeps delivering to a
socket that has gone away.

    async with await watch_ride(layer, channel_name, ride_id):
        ...
"""

import logging
from typing import Awaitable, Callable, Iterable, Optional

from django.conf import settings

from .debounce import Debouncer
from .notifications import RIDE_FEED_GROUP, ride_group

logger = logging.getLogger(__name__)


class Subscription:
    """Membership of one channel in a fixed set of groups."""

    def __init__(self, channel_layer, channel_name: str, groups: Iterable[str], key: str = ""):
        self.channel_layer = channel_layer
        self.channel_name = channel_name
        self.groups = tuple(groups)
        self.key = key or ",".join(self.groups)
        self.active = False

    async def open(self) -> "Subscription":
        if self.active:
            return self
        for group in self.groups:
            await self.channel_layer.group_add(group, self.channel_name)
        self.active = True
        logger.debug("Subscription %s opened for %s", self.key, self.channel_name)
        return self

    async def close(self):
        if not self.active:
            return
        self.active = False
        for group in self.groups:
            await self.channel_layer.group_discard(group, self.channel_name)
        logger.debug("Subscription %s closed for %s", self.key, self.channel_name)

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class NearbyRidesSubscription(Subscription):
    """
    Watch on the driver-side ride feed.

    Every feed change or driver move calls ``request_refresh()``; the
    ``refresh`` coroutine runs once per quiet window instead of once per event.
    """

    def __init__(self, channel_layer, channel_name: str,
                 refresh: Callable[[], Awaitable[None]], delay: Optional[float] = None):
        super().__init__(channel_layer, channel_name, [RIDE_FEED_GROUP], key="nearby_rides")
        if delay is None:
            delay = settings.RIDE_FEED_DEBOUNCE_SECONDS
        self.debouncer = Debouncer(delay, refresh)

    def request_refresh(self):
        if self.active:
            self.debouncer.trigger()

    async def close(self):
        self.debouncer.cancel()
        await super().close()


async def watch_ride(channel_layer, channel_name: str, ride_id: str) -> Subscription:
    """Subscribe a channel to live updates of one ride."""
    subscription = Subscription(channel_layer, channel_name, [ride_group(ride_id)], key=f"ride:{ride_id}")
    return await subscription.open()


async def watch_nearby_rides(channel_layer, channel_name: str,
                             refresh: Callable[[], Awaitable[None]],
                             delay: Optional[float] = None) -> NearbyRidesSubscription:
    """Subscribe a channel to the debounced nearby-rides feed."""
    subscription = NearbyRidesSubscription(channel_layer, channel_name, refresh, delay)
    await subscription.open()
    return subscription
