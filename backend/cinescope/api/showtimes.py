"""
Showtimes API — /api/showtimes
──────────────────────────────
Endpoints:
  GET /api/showtimes/nearby?lat=..&lng=..[&movieId=..] — Cinemas near a position
"""
import logging

from fastapi import APIRouter, HTTPException, Query, status

from cinescope.schemas.showtimes import NearbyShowtimesResponse
from cinescope.services.showtimes_provider import get_showtimes_provider, is_valid_coordinate

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def _parse_float(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        return None


@router.get("/nearby", response_model=NearbyShowtimesResponse)
async def nearby_showtimes(
    lat: str | None = Query(default=None),
    lng: str | None = Query(default=None),
    movie_id: int | None = Query(default=None, alias="movieId"),
) -> dict:
    latitude = _parse_float(lat)
    longitude = _parse_float(lng)
    if latitude is None or longitude is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error("MISSING_COORDINATES", "Les paramètres lat et lng sont requis"),
        )
    if not is_valid_coordinate(latitude, longitude):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error("INVALID_COORDINATES", "Coordonnées GPS invalides"),
        )

    logger.info("Showtime search lat=%s lng=%s movie_id=%s", latitude, longitude, movie_id)
    cinemas = await get_showtimes_provider().find_nearby_showtimes(latitude, longitude, movie_id)
    return {
        "success": True,
        "cinemas": cinemas,
        "count": len(cinemas),
        "location": {"latitude": latitude, "longitude": longitude},
    }
