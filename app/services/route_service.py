"""
Route computation over an ordered list of stops.

Driving routes come from an OSRM server. The first point is the origin,
the last the destination, everything in between a waypoint visited in the
given order; OSRM's ``route`` service never reorders waypoints, so the
route always follows the user's itinerary.
"""

import hashlib
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from app.config import settings
from app.exceptions import ProviderError, ValidationError
from app.models.plans import LocationItem, RouteLeg, RouteSummary
from app.services.route_cache import RouteCache, route_cache

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def format_distance(meters: float) -> str:
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    return f"{round(seconds / 60)} min"


def validate_coordinates(lat: float, lng: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lng <= 180


def points_from_locations(locations: Sequence[LocationItem]) -> List[Point]:
    return [(location.lat, location.lng) for location in locations]


class RouteService:
    """Directions adapter with per-leg and total distance/duration."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[RouteCache] = None,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.http_client = http_client
        self.cache = cache if cache is not None else route_cache
        self.base_url = (base_url or settings.osrm_base_url).rstrip("/")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout

    def _cache_key(self, profile: str, coords: str) -> str:
        digest = hashlib.md5(f"{profile}:{coords}".encode()).hexdigest()
        return f"route:{digest}"

    async def _fetch(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        if self.http_client is not None:
            response = await self.http_client.get(url, params=params)
            response.raise_for_status()
            return response.json()

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()

    async def calculate(self, points: Sequence[Point], profile: Optional[str] = None) -> RouteSummary:
        """
        Compute a driving route through ``points`` in order.

        Args:
            points: Ordered ``(lat, lng)`` pairs, at least two.
            profile: OSRM profile, defaults to the configured one.

        Returns:
            RouteSummary with one leg per consecutive pair of points.

        Raises:
            ValidationError: Fewer than two points or out-of-range coordinates.
            ProviderError: The provider failed or found no route.
        """
        if len(points) < 2:
            raise ValidationError("Need at least 2 points to compute a route")
        for lat, lng in points:
            if not validate_coordinates(lat, lng):
                raise ValidationError(f"Invalid coordinates: {lat},{lng}")

        profile = profile or self.profile
        # OSRM expects lon,lat
        coords = ";".join(f"{lng},{lat}" for lat, lng in points)

        cache_key = self._cache_key(profile, coords)
        cached = self.cache.load(cache_key)
        if cached:
            return RouteSummary(**cached)

        url = f"{self.base_url}/route/v1/{profile}/{coords}"
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }

        try:
            data = await self._fetch(url, params)
        except httpx.HTTPError as e:
            logger.error(f"OSRM API error: {e}")
            raise ProviderError("Directions provider unavailable") from e
        except ValueError as e:
            logger.error(f"OSRM returned invalid JSON: {e}")
            raise ProviderError("Directions provider returned an invalid response") from e

        if data.get("code") != "Ok" or not data.get("routes"):
            logger.error(f"OSRM returned error: {data.get('code')} {data.get('message', 'Unknown')}")
            raise ProviderError("No route found between the stops")

        route = data["routes"][0]
        raw_legs = route.get("legs") or []
        if len(raw_legs) != len(points) - 1:
            logger.error(f"OSRM returned {len(raw_legs)} legs for {len(points)} points")
            raise ProviderError("Directions provider returned an incomplete route")

        legs = [
            RouteLeg(
                distance_meters=float(leg.get("distance", 0.0)),
                duration_seconds=float(leg.get("duration", 0.0)),
                distance_text=format_distance(float(leg.get("distance", 0.0))),
                duration_text=format_duration(float(leg.get("duration", 0.0))),
            )
            for leg in raw_legs
        ]
        total_distance = sum(leg.distance_meters for leg in legs)
        total_duration = sum(leg.duration_seconds for leg in legs)

        summary = RouteSummary(
            legs=legs,
            total_distance_meters=total_distance,
            total_duration_seconds=total_duration,
            total_distance_text=format_distance(total_distance),
            total_duration_text=format_duration(total_duration),
            geometry=route.get("geometry"),
        )

        self.cache.store(cache_key, summary.model_dump())
        return summary

    async def try_calculate(self, points: Sequence[Point], profile: Optional[str] = None) -> Optional[RouteSummary]:
        """Like ``calculate`` but a failure only means "no route overlay"."""
        if len(points) < 2:
            return None
        try:
            return await self.calculate(points, profile=profile)
        except (ProviderError, ValidationError) as e:
            logger.warning(f"Route omitted: {e}")
            return None


def get_route_service() -> RouteService:
    """FastAPI dependency returning the route adapter."""
    return RouteService()
