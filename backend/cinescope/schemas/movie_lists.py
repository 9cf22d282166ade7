"""
Watchlist request/response schemas.
"""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TmdbType = Literal["movie", "tv"]


class CreateMovieListRequest(BaseModel):
    """Payload of the "create a list" form."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)


class ToggleFavoriteRequest(BaseModel):
    """JSON body of POST /mes-listes/favoris/toggle."""

    tmdb_id: int = Field(gt=0, alias="tmdbId")
    tmdb_type: TmdbType = Field(alias="tmdbType")

    model_config = ConfigDict(populate_by_name=True)


class ToggleFavoriteResponse(BaseModel):
    success: bool = True
    is_favorite: bool
    message: str


class AddItemResponse(BaseModel):
    message: str
    list_name: str
    item_id: int


class CheckedItem(BaseModel):
    list_name: str
    list_id: int
    item_id: int
    csrf_token: str


class CheckItemResponse(BaseModel):
    """Lists of the current user that contain one title."""

    lists: list[str]
    items: list[CheckedItem]
    count: int


class MovieListSummary(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_system: bool
    created_at: datetime
    item_count: int = 0

    model_config = ConfigDict(from_attributes=True)
