"""
Detail pages — movies, TV shows and people.

A movie/TV page combines the TMDb payload (with credits, videos, keywords,
recommendations and watch providers appended), OMDb scores, external links
and badges.
"""
import logging
import re
import unicodedata
from typing import Any

from cinescope.core.cache import TTL_CONTENT, TTL_DAY, cache
from cinescope.core.config import settings
from cinescope.services.badge_service import decide_badges
from cinescope.services.omdb_client import fetch_omdb_scores, imdb_id_of
from cinescope.services.tmdb_client import (
    CONTENT_KINDS,
    TMDBConfigError,
    TMDBUpstreamError,
    get_tmdb_client,
)

logger = logging.getLogger(__name__)

DETAIL_APPEND = "videos,credits,recommendations,similar,external_ids,keywords,watch/providers"
PROVIDER_TYPES = ("flatrate", "rent", "buy")
MISSING_DATE = "1900-01-01"
DEFAULT_SLUG = "titre"

# Letters NFKD does not decompose into ASCII
_LIGATURES = str.maketrans({"œ": "oe", "æ": "ae", "ß": "ss", "ø": "o", "đ": "d", "ł": "l"})


class ContentNotFoundError(Exception):
    """Raised when a movie, TV show or person cannot be loaded from TMDb."""


# ── Movies & TV ───────────────────────────────────────────────────────────────

async def get_content_detail(kind: str, tmdb_id: int) -> dict:
    """
    Full TMDb payload for one movie or TV show.

    Raises:
        ContentNotFoundError: unknown kind, unknown id or TMDb unavailable.
    """
    if kind not in CONTENT_KINDS:
        raise ContentNotFoundError(f"Unknown content kind {kind!r}")

    async def load() -> dict:
        return await get_tmdb_client().details(kind, tmdb_id, DETAIL_APPEND)

    try:
        item = await cache.get_or_set(f"detail_{kind}_{tmdb_id}", TTL_CONTENT, load, cache_empty=False)
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("Content detail failed type=%s id=%s error=%s", kind, tmdb_id, exc)
        raise ContentNotFoundError(f"{kind}/{tmdb_id} could not be loaded") from exc

    if not item:
        raise ContentNotFoundError(f"{kind}/{tmdb_id} not found")
    return item


def extract_watch_providers(item: dict[str, Any], region: str | None = None) -> dict[str, list]:
    """Streaming / rent / buy providers for *region* (defaults to TMDB_REGION)."""
    region = region or settings.TMDB_REGION
    providers: dict[str, list] = {kind: [] for kind in PROVIDER_TYPES}
    root = ((item.get("watch/providers") or {}).get("results") or {}).get(region)
    if not root:
        return providers
    for kind in PROVIDER_TYPES:
        providers[kind] = list(root.get(kind) or [])
    return providers


def _slugify(title: str, separator: str) -> str:
    text = title.lower().translate(_LIGATURES)
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", separator, text).strip(separator)
    return slug or DEFAULT_SLUG


def slug_with_underscores(title: str) -> str:
    """Rotten Tomatoes style: "Le Fabuleux Destin d'Amélie" -> "le_fabuleux_destin_d_amelie"."""
    return _slugify(title, "_")


def slug_with_dashes(title: str) -> str:
    """Metacritic style: "Spider-Man: No Way Home" -> "spider-man-no-way-home"."""
    return _slugify(title, "-")


def generate_links(item: dict[str, Any], kind: str, tmdb_id: int) -> dict[str, str | None]:
    links: dict[str, str | None] = {
        "tmdb": f"https://www.themoviedb.org/{kind}/{tmdb_id}",
        "imdb": None,
        "rotten_tomatoes": None,
        "metacritic": None,
    }

    imdb_id = imdb_id_of(item)
    if imdb_id:
        links["imdb"] = f"https://www.imdb.com/title/{imdb_id}/"

    title = item.get("title") if kind == "movie" else item.get("name")
    if title:
        rt_prefix = "m" if kind == "movie" else "tv"
        links["rotten_tomatoes"] = f"https://www.rottentomatoes.com/{rt_prefix}/{slug_with_underscores(title)}"
        links["metacritic"] = f"https://www.metacritic.com/{kind}/{slug_with_dashes(title)}"

    return links


async def build_content_page(kind: str, tmdb_id: int) -> dict:
    """Everything the detail template needs except recommendations."""
    item = await get_content_detail(kind, tmdb_id)
    is_series = kind == "tv"
    omdb = await fetch_omdb_scores(item)
    return {
        "item": item,
        "is_series": is_series,
        "omdb": omdb,
        "watch_providers": extract_watch_providers(item),
        "links": generate_links(item, kind, tmdb_id),
        "badges": decide_badges(item, omdb, is_series),
    }


# ── People ────────────────────────────────────────────────────────────────────

def _newest_first(credits: list[dict], date_key: str) -> list[dict]:
    return sorted(credits, key=lambda c: c.get(date_key) or MISSING_DATE, reverse=True)


async def get_person_detail(person_id: int) -> dict:
    """
    Person page data: biography plus filmography sorted newest first.

    Returns:
        {"person", "movie_credits", "directed_movies", "tv_credits"}
    """

    async def load() -> dict:
        return await get_tmdb_client().person(person_id)

    try:
        person = await cache.get_or_set(f"person_{person_id}", TTL_DAY, load, cache_empty=False)
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("Person detail failed id=%s error=%s", person_id, exc)
        raise ContentNotFoundError(f"person/{person_id} could not be loaded") from exc

    if not person:
        raise ContentNotFoundError(f"person/{person_id} not found")

    movie_credits = (person.get("movie_credits") or {}).get("cast") or []
    movie_crew = (person.get("movie_credits") or {}).get("crew") or []
    tv_credits = (person.get("tv_credits") or {}).get("cast") or []
    directed = [c for c in movie_crew if c.get("job") == "Director"]

    return {
        "person": person,
        "movie_credits": _newest_first(movie_credits, "release_date"),
        "directed_movies": _newest_first(directed, "release_date"),
        "tv_credits": _newest_first(tv_credits, "first_air_date"),
    }
