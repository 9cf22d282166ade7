"""
Recommendation response schemas.
"""
from pydantic import BaseModel


class RecommendationItem(BaseModel):
    """One scored candidate."""

    id: int
    kind: str
    is_series: bool
    title: str | None = None
    poster_path: str | None = None
    vote_average: float
    year: str
    score: float
    reasons: list[str]


class RecommendationsResponse(BaseModel):
    results: list[RecommendationItem]
    count: int
