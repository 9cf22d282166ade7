"""
MovieGlu showtimes — cinemas near a GPS position and today's screenings.

Every failure is logged and degrades to an empty result; the showtimes
widget is an optional part of the detail page.
"""
import logging
import math
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from cinescope.core.cache import TTL_SHOWTIMES, cache
from cinescope.core.config import settings

logger = logging.getLogger(__name__)

MAX_DISTANCE_KM = 25
EARTH_RADIUS_KM = 6371
API_VERSION = "v201"
NEARBY_CINEMA_COUNT = 10
MOVIEGLU_TIMEOUT_SECONDS = 10.0
SANDBOX_TERRITORY = "XX"
SANDBOX_GEOLOCATION = "-22.0;14.0"
LOCAL_TZ = ZoneInfo("Europe/Paris")

# MovieGlu failures that degrade to an empty result
PROVIDER_ERRORS = (httpx.HTTPError, ValueError, TypeError, AttributeError, KeyError)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


class ShowtimesProvider:
    """
    Async MovieGlu client.

    *transport* and *now* are injectable for tests.
    """

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        now: datetime | None = None,
    ) -> None:
        self.api_url = settings.MOVIEGLU_API_URL.rstrip("/")
        self.territory = settings.MOVIEGLU_TERRITORY
        self._transport = transport
        self._now = now

    def _local_now(self) -> datetime:
        return self._now or datetime.now(LOCAL_TZ)

    def headers(self, latitude: float, longitude: float) -> dict[str, str]:
        if self.territory == SANDBOX_TERRITORY:
            geolocation = SANDBOX_GEOLOCATION
        else:
            geolocation = f"{latitude:.4f};{longitude:.4f}"
        return {
            "client": settings.MOVIEGLU_CLIENT,
            "x-api-key": settings.MOVIEGLU_API_KEY,
            "authorization": settings.MOVIEGLU_AUTH,
            "territory": self.territory,
            "api-version": API_VERSION,
            "device-datetime": self._local_now().strftime("%Y-%m-%dT%H:%M:%S.000Z"),
            "geolocation": geolocation,
            "accept": "application/json",
        }

    async def _get(self, path: str, params: dict, latitude: float, longitude: float) -> dict:
        async with httpx.AsyncClient(timeout=MOVIEGLU_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = await client.get(
                f"{self.api_url}{path}",
                params=params,
                headers=self.headers(latitude, longitude),
            )
        if response.status_code != 200:
            logger.warning("MovieGlu non-200 response path=%s status=%s", path, response.status_code)
            return {}
        return response.json()

    async def find_nearby_cinemas(self, latitude: float, longitude: float) -> list[dict[str, Any]]:
        """Cinemas within MAX_DISTANCE_KM, distance rounded to 0.1 km."""
        try:
            data = await self._get("/cinemasNearby/", {"n": NEARBY_CINEMA_COUNT}, latitude, longitude)
            return self._parse_cinemas(data, latitude, longitude)
        except PROVIDER_ERRORS as exc:
            logger.error("MovieGlu cinemasNearby failed: %r", exc)
            return []

    @staticmethod
    def _parse_cinemas(data: dict, latitude: float, longitude: float) -> list[dict[str, Any]]:
        cinemas = []
        for cinema in data.get("cinemas") or []:
            distance = haversine_km(latitude, longitude, cinema.get("lat") or 0, cinema.get("lng") or 0)
            if distance > MAX_DISTANCE_KM:
                continue
            cinemas.append({
                "cinema_id": cinema.get("cinema_id"),
                "name": cinema.get("cinema_name") or "Cinéma inconnu",
                "address": cinema.get("address") or "",
                "city": cinema.get("city") or "",
                "distance": round(distance, 1),
                "lat": cinema.get("lat"),
                "lng": cinema.get("lng"),
            })
        return cinemas

    async def get_cinema_showtimes(
        self,
        cinema_id: str,
        latitude: float,
        longitude: float,
        movie_id: int | None = None,
    ) -> list[dict[str, Any]]:
        """Today's Standard screenings at one cinema, optionally for one film."""
        params = {"cinema_id": cinema_id, "date": self._local_now().strftime("%Y-%m-%d")}
        try:
            data = await self._get("/cinemaShowTimes/", params, latitude, longitude)
            return self._parse_showtimes(data, movie_id)
        except PROVIDER_ERRORS as exc:
            logger.error("MovieGlu cinemaShowTimes failed cinema_id=%s error=%r", cinema_id, exc)
            return []

    @staticmethod
    def _parse_showtimes(data: dict, movie_id: int | None) -> list[dict[str, Any]]:
        showtimes = []
        for film in data.get("films") or []:
            film_id = film.get("film_id")
            if movie_id and film_id is not None and str(film_id) != str(movie_id):
                continue
            standard = ((film.get("showings") or {}).get("Standard") or {}).get("times") or []
            for slot in standard:
                showtimes.append({
                    "film_id": film_id,
                    "title": film.get("film_name") or "",
                    "time": slot.get("start_time") or "N/A",
                    "screen": slot.get("screen_name"),
                })
        return showtimes

    async def _collect(self, latitude: float, longitude: float, movie_id: int | None) -> list[dict]:
        cinemas = await self.find_nearby_cinemas(latitude, longitude)
        with_showtimes = []
        for cinema in cinemas:
            showtimes = await self.get_cinema_showtimes(str(cinema["cinema_id"]), latitude, longitude, movie_id)
            if showtimes:
                with_showtimes.append({**cinema, "showtimes": showtimes})
        with_showtimes.sort(key=lambda c: c["distance"])
        return with_showtimes

    async def find_nearby_showtimes(
        self,
        latitude: float,
        longitude: float,
        movie_id: int | None = None,
    ) -> list[dict[str, Any]]:
        """Nearby cinemas that have screenings today, closest first."""
        key = f"showtimes_{latitude}_{longitude}_{movie_id or 'all'}"
        return await cache.get_or_set(
            key,
            TTL_SHOWTIMES,
            lambda: self._collect(latitude, longitude, movie_id),
            cache_empty=False,
        )


def get_showtimes_provider() -> ShowtimesProvider:
    """Factory used by the router; patched in tests."""
    return ShowtimesProvider()
