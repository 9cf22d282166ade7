"""
Showtimes response schemas.
"""
from pydantic import BaseModel


class Showtime(BaseModel):
    film_id: int | str | None = None
    title: str
    time: str
    screen: str | None = None


class CinemaShowtimes(BaseModel):
    cinema_id: int | str | None = None
    name: str
    address: str = ""
    city: str = ""
    distance: float
    lat: float | None = None
    lng: float | None = None
    showtimes: list[Showtime]


class Location(BaseModel):
    latitude: float
    longitude: float


class NearbyShowtimesResponse(BaseModel):
    """Returned by GET /api/showtimes/nearby."""

    success: bool = True
    cinemas: list[CinemaShowtimes]
    count: int
    location: Location
