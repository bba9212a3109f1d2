"""Trip quoting: price = base_fare + price_per_km * distance_km."""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from django.conf import settings

from common.utils import Coordinate
from rides.models import FareSetting
from services.ride_management.exceptions import RideValidationError

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class TripQuote:
    transport_class: str
    distance_km: Decimal
    estimated_minutes: int
    price: Decimal
    polyline: str = ""


def get_fare_rates(transport_class: str) -> Tuple[Decimal, Decimal]:
    """Return (base_fare, price_per_km) from the settings record, else Django settings."""
    setting = FareSetting.objects.filter(transport_class=transport_class).first()
    if setting is not None:
        return setting.base_fare, setting.price_per_km

    defaults = settings.RIDE_FARE_DEFAULTS.get(transport_class)
    if defaults is None:
        raise RideValidationError(f"Unknown transport class '{transport_class}'.")
    return Decimal(str(defaults["base_fare"])), Decimal(str(defaults["price_per_km"]))


def calculate_price(transport_class: str, distance_km) -> Decimal:
    base_fare, per_km = get_fare_rates(transport_class)
    price = base_fare + per_km * Decimal(str(distance_km))
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)


def quote_trip(pickup: Coordinate, dropoff: Coordinate, transport_class: str,
               routing_client=None) -> TripQuote:
    """Route the trip through the routing provider and price it."""
    if routing_client is None:
        from services.providers import get_routing_client
        routing_client = get_routing_client()

    route = routing_client.route(pickup, dropoff)
    distance_km = Decimal(str(route.distance_km)).quantize(CENTS, rounding=ROUND_HALF_UP)

    quote = TripQuote(
        transport_class=transport_class,
        distance_km=distance_km,
        estimated_minutes=route.duration_minutes,
        price=calculate_price(transport_class, distance_km),
        polyline=route.polyline,
    )
    logger.debug("Quoted %s trip: %s km, %s", transport_class, quote.distance_km, quote.price)
    return quote


def final_fare(transport_class: str, trip_distance_km, quoted_price: Optional[Decimal] = None) -> Decimal:
    """Fare stamped at completion; never below the quoted price."""
    fare = calculate_price(transport_class, trip_distance_km)
    if quoted_price is not None and fare < quoted_price:
        return Decimal(quoted_price).quantize(CENTS, rounding=ROUND_HALF_UP)
    return fare
