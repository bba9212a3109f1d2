"""
HTTP clients for the external routing and geocoding providers.

Routing follows the OpenRouteService directions API, geocoding follows the
OpenCage forward geocoding API. Both fail with ProviderUnavailableError on
connectivity problems or malformed responses; there is no retry loop here,
callers surface a retry affordance to the user instead.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests
from django.conf import settings

from common.utils import Coordinate
from services.ride_management.exceptions import ProviderUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class RouteSummary:
    distance_meters: float
    duration_seconds: float
    polyline: str = ""

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000

    @property
    def duration_minutes(self) -> int:
        return int(round(self.duration_seconds / 60))


@dataclass
class GeocodeResult:
    address: str
    latitude: float
    longitude: float


class RoutingClient:
    """Driving directions between two coordinates."""

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.api_url = api_url or settings.ROUTING_API_URL
        self.api_key = api_key if api_key is not None else settings.ROUTING_API_KEY
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def route(self, origin: Coordinate, destination: Coordinate) -> RouteSummary:
        body = {
            "coordinates": [
                [origin.longitude, origin.latitude],
                [destination.longitude, destination.latitude],
            ]
        }
        headers = {"Authorization": self.api_key, "Content-Type": "application/json"}

        try:
            response = self.session.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Routing request failed: %s", exc)
            raise ProviderUnavailableError("Could not fetch a route. Please try again.") from exc

        routes = data.get("routes") or []
        if not routes:
            raise ProviderUnavailableError("No route found between pickup and dropoff.")

        summary = routes[0].get("summary") or {}
        return RouteSummary(
            distance_meters=float(summary.get("distance", 0.0)),
            duration_seconds=float(summary.get("duration", 0.0)),
            polyline=routes[0].get("geometry") or "",
        )


class GeocodingClient:
    """Free-text address search."""

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.api_url = api_url or settings.GEOCODING_API_URL
        self.api_key = api_key if api_key is not None else settings.GEOCODING_API_KEY
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def geocode(self, query: str, limit: int = 5) -> List[GeocodeResult]:
        params = {"q": query, "key": self.api_key, "limit": limit}
        try:
            response = self.session.get(self.api_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Geocoding request failed for %r: %s", query, exc)
            raise ProviderUnavailableError("Could not search addresses. Please try again.") from exc

        results = []
        for item in data.get("results", []):
            geometry = item.get("geometry") or {}
            if "lat" not in geometry or "lng" not in geometry:
                continue
            results.append(GeocodeResult(
                address=item.get("formatted", ""),
                latitude=float(geometry["lat"]),
                longitude=float(geometry["lng"]),
            ))
        return results


def get_routing_client() -> RoutingClient:
    return RoutingClient()


def get_geocoding_client() -> GeocodingClient:
    return GeocodingClient()
