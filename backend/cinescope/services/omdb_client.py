"""
OMDb lookups — IMDb, Rotten Tomatoes and Metacritic scores for detail pages.

OMDb is optional: every failure path returns None so the detail page simply
hides the ratings block.
"""
import logging
from typing import Any

import httpx

from cinescope.core.cache import TTL_DAY, cache
from cinescope.core.config import settings
from cinescope.services.badge_service import parse_omdb_scores

logger = logging.getLogger(__name__)

OMDB_BASE_URL = "https://www.omdbapi.com/"
OMDB_TIMEOUT_SECONDS = 8.0


def imdb_id_of(item: dict[str, Any]) -> str | None:
    """IMDb id from a TMDb payload (movies carry it inline, TV via external_ids)."""
    return item.get("imdb_id") or (item.get("external_ids") or {}).get("imdb_id")


def normalize_omdb_payload(data: dict[str, Any]) -> dict[str, Any]:
    """
    Add numeric score fields for the templates:
      imdb_rating_float        "8.8"    -> 8.8
      rotten_tomatoes_percent  "88%"    -> 88.0
      metacritic_score_int     "73/100" -> 73.0
    plus the display strings MetacriticScore / RottenTomatoesScore.
    """
    normalized = dict(data)
    imdb, rt, mc = parse_omdb_scores(data)
    normalized["imdb_rating_float"] = imdb
    normalized["rotten_tomatoes_percent"] = rt
    normalized["metacritic_score_int"] = mc

    if "MetacriticScore" not in normalized and mc is not None:
        normalized["MetacriticScore"] = f"{mc:g}/100"
    if "RottenTomatoesScore" not in normalized and rt is not None:
        normalized["RottenTomatoesScore"] = f"{rt:g}%"
    return normalized


async def _request_omdb(imdb_id: str, transport: httpx.AsyncBaseTransport | None) -> dict | None:
    params = {"i": imdb_id, "apikey": settings.OMDB_API_KEY, "r": "json"}
    async with httpx.AsyncClient(timeout=OMDB_TIMEOUT_SECONDS, transport=transport) as client:
        response = await client.get(OMDB_BASE_URL, params=params)
    if response.status_code != 200:
        logger.warning("OMDb non-200 response imdb_id=%s status=%s", imdb_id, response.status_code)
        return None
    data = response.json()
    if data.get("Response") == "False":
        return None
    return normalize_omdb_payload(data)


async def fetch_omdb_scores(
    item: dict[str, Any],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any] | None:
    """Return normalized OMDb data for a TMDb *item*, or None."""
    if not settings.OMDB_API_KEY:
        return None

    imdb_id = imdb_id_of(item)
    if not imdb_id:
        return None

    try:
        return await cache.get_or_set(
            f"omdb_{imdb_id}",
            TTL_DAY,
            lambda: _request_omdb(imdb_id, transport),
            cache_empty=False,
        )
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("OMDb lookup failed item_id=%s error=%s", item.get("id"), exc)
        return None
