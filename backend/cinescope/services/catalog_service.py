"""
Catalog business logic — genre menus, discover listings, "in theaters" and search.

All listings are TMDb /discover or /search calls shaped for the poster grid
template and cached in-process (see cinescope.core.cache).
"""
import calendar
import logging
from datetime import date
from typing import Any

from cinescope.core.cache import TTL_CATALOG, TTL_DAY, TTL_SEARCH, cache, hash_key
from cinescope.core.config import settings
from cinescope.services.badge_service import decide_badges_lite
from cinescope.services.tmdb_client import TMDBConfigError, TMDBUpstreamError, get_tmdb_client

logger = logging.getLogger(__name__)

MAX_PAGES = 500
DEFAULT_PAGE = 1
MIN_VOTE_COUNT_MOVIES = 200
MIN_VOTE_COUNT_SERIES = 100
MIN_VOTE_COUNT_THEATERS = 20
ANIMATION_GENRE_ID = 16
MIN_REVENUE = 1_000_000
RELEASE_WINDOW_YEARS = 50
SEARCH_SUGGESTION_LIMIT = 10
SEARCH_MIN_LENGTH = 2
PAGINATION_RANGE = 2

MONETIZATION_TYPES = "flatrate|free|ads|rent|buy"
THEATRICAL_RELEASE_TYPE = "3"

SERIES_CATEGORY = "tv_top_rated"
CINEMA_CATEGORY = "cinema"

MOVIE_SORT_FIELDS = ("popularity", "vote_average", "release_date", "original_title", "revenue")
SERIES_SORT_FIELDS = ("popularity", "vote_average", "first_air_date", "name")
THEATER_SORT_FIELDS = ("popularity", "release_date", "vote_average")
SEARCH_SORT_FIELDS = ("popularity", "vote_average", "release_date")
SEARCH_MEDIA_TYPES = ("all", "movie", "tv")
ORDERS = ("asc", "desc")

GENRE_ICONS: dict[int, str] = {
    28: "fa-bomb",
    12: "fa-compass",
    16: "fa-pencil-ruler",
    35: "fa-laugh-beam",
    80: "fa-user-secret",
    99: "fa-file-video",
    18: "fa-theater-masks",
    10751: "fa-home",
    14: "fa-magic",
    36: "fa-history",
    27: "fa-ghost",
    10402: "fa-music",
    9648: "fa-search",
    10749: "fa-heart",
    878: "fa-robot",
    10770: "fa-film",
    53: "fa-bolt",
    10752: "fa-fighter-jet",
    37: "fa-hat-cowboy",
}

SPECIAL_ICONS = {SERIES_CATEGORY: "fa-tv", CINEMA_CATEGORY: "fa-ticket-alt"}

SPECIAL_CATEGORIES = [
    {"name": "Au cinéma", "id": CINEMA_CATEGORY},
    {"name": "Séries", "id": SERIES_CATEGORY},
]

ORDER_OPTIONS = {"desc": "Décroissant", "asc": "Croissant"}


class InvalidCatalogRequestError(Exception):
    """Raised for an unknown genre or an out-of-range page."""


# ── Small helpers ─────────────────────────────────────────────────────────────

def genre_icon(genre_id: int | str) -> str:
    """Font Awesome icon for a TMDb genre id or a special category id."""
    if isinstance(genre_id, str) and not genre_id.isdigit():
        return SPECIAL_ICONS.get(genre_id, "fa-film")
    return GENRE_ICONS.get(int(genre_id), "fa-film")


def validate_sort_by(sort_by: str, is_series: bool) -> str:
    valid = SERIES_SORT_FIELDS if is_series else MOVIE_SORT_FIELDS
    return sort_by if sort_by in valid else "popularity"


def validate_order(order: str) -> str:
    return order if order in ORDERS else "desc"


def parse_sort_param(sort: str | None) -> tuple[str, str]:
    """Split "vote_average.asc" into ("vote_average", "asc"); order defaults to desc."""
    field, _, order = (sort or "popularity.desc").partition(".")
    return field, order or "desc"


def validate_page(page: int) -> int:
    if page < 1 or page > MAX_PAGES:
        raise InvalidCatalogRequestError(f"Page {page} is out of range")
    return page


def parse_page(raw: str | int | None) -> int:
    """Page number from a query value; non-numbers and pages outside 1..500 are rejected."""
    if raw is None or raw == "":
        return DEFAULT_PAGE
    try:
        page = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidCatalogRequestError(f"Page {raw!r} is not a number") from exc
    return validate_page(page)


def one_month_before(day: date) -> date:
    """Same day one month earlier, clamped to the end of a shorter month."""
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def item_year(item: dict[str, Any], is_series: bool) -> str:
    raw = item.get("first_air_date" if is_series else "release_date") or ""
    return raw[:4] if raw else "N/A"


def enrich_items(items: list[dict], is_series: bool) -> list[dict]:
    """
    Add ``year``, ``is_series`` and list-page badges to raw TMDb rows.

    Search results carry their own ``media_type``; *is_series* only forces
    the TV interpretation for discover/tv listings.
    """
    enriched = []
    for raw in items:
        item = dict(raw)
        series = is_series or item.get("media_type") == "tv"
        item["year"] = item_year(item, series)
        item["is_series"] = series
        item["badges"] = decide_badges_lite(item, series)
        enriched.append(item)
    return enriched


def build_pagination(current_page: int, total_pages: int) -> dict:
    start = max(1, current_page - PAGINATION_RANGE)
    end = min(total_pages, current_page + PAGINATION_RANGE)
    return {
        "current_page": current_page,
        "total_pages": total_pages,
        "pages": list(range(start, end + 1)),
    }


def available_filters(is_series: bool) -> dict:
    if is_series:
        sort_options = {
            "popularity": "Popularité",
            "vote_average": "Note",
            "first_air_date": "Date",
            "name": "Nom",
        }
    else:
        sort_options = {
            "popularity": "Popularité",
            "vote_average": "Note",
            "release_date": "Date",
            "original_title": "Titre",
            "revenue": "Revenus",
        }
    return {"sort_options": sort_options, "order_options": dict(ORDER_OPTIONS)}


def theater_filters() -> dict:
    return {
        "sort_options": {
            "popularity": "Popularité",
            "release_date": "Date de sortie",
            "vote_average": "Note",
        },
        "order_options": dict(ORDER_OPTIONS),
    }


def search_filters() -> dict:
    return {
        "sort_options": {
            "popularity": "Popularité",
            "vote_average": "Note",
            "release_date": "Date de sortie",
        },
        "order_options": dict(ORDER_OPTIONS),
        "media_type_options": {"all": "Tous", "movie": "Films", "tv": "Séries"},
    }


def _listing(data: dict, items: list[dict], title: str | None, is_series: bool | None) -> dict:
    return {
        "items": items,
        "list_title": title,
        "is_series": is_series,
        "total_pages": min(data.get("total_pages") or 1, MAX_PAGES),
        "total_results": data.get("total_results") or 0,
    }


# ── Genres ────────────────────────────────────────────────────────────────────

async def _fetch_api_genres() -> dict[str, int]:
    try:
        genres = await get_tmdb_client().movie_genres()
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("Could not fetch TMDb movie genres: %s", exc)
        return {}
    if not genres:
        logger.warning("TMDb returned an empty genre list")
        return {}
    return {g["name"]: g["id"] for g in sorted(genres, key=lambda g: g["name"])}


async def get_movie_genres() -> dict[str, int]:
    """{genre name: genre id}, sorted by name. Empty on upstream failure."""
    return await cache.get_or_set("api_movie_genres", TTL_DAY, _fetch_api_genres, cache_empty=False)


async def get_all_genres_menu() -> dict:
    """Navigation menu data injected into every page."""
    movie_genres = [
        {"name": name, "id": genre_id, "icon": genre_icon(genre_id)}
        for name, genre_id in (await get_movie_genres()).items()
    ]
    return {
        "movie_genres": movie_genres,
        "tv_genres": [{"name": "Séries", "id": SERIES_CATEGORY, "icon": genre_icon(SERIES_CATEGORY)}],
    }


async def get_home_categories() -> dict:
    genres = await get_movie_genres()
    return {
        "sorted_categories": [{"name": name, "id": genre_id} for name, genre_id in genres.items()],
        "special_categories": list(SPECIAL_CATEGORIES),
    }


# ── Discover listings ─────────────────────────────────────────────────────────

async def _fetch_series(sort_by: str, order: str, page: int) -> dict:
    api_sort = "original_name" if sort_by == "name" else sort_by
    data = await get_tmdb_client().discover(
        "tv",
        {
            "sort_by": f"{api_sort}.{order}",
            "page": page,
            "vote_count.gte": MIN_VOTE_COUNT_SERIES,
            "watch_region": settings.TMDB_REGION,
            "with_watch_monetization_types": MONETIZATION_TYPES,
        },
    )
    items = enrich_items(data.get("results", []), True)
    return _listing(data, items, "Top des meilleures séries", True)


async def _fetch_movies(genre_id: int, genre_name: str, sort_by: str, order: str, page: int) -> dict:
    today = date.today()
    params: dict[str, Any] = {
        "with_genres": genre_id,
        "sort_by": f"{sort_by}.{order}",
        "page": page,
        "vote_count.gte": MIN_VOTE_COUNT_MOVIES,
        "watch_region": settings.TMDB_REGION,
        "with_watch_monetization_types": MONETIZATION_TYPES,
        "primary_release_date.lte": today.isoformat(),
        "primary_release_date.gte": f"{today.year - RELEASE_WINDOW_YEARS}-01-01",
    }
    if genre_id != ANIMATION_GENRE_ID:
        params["without_genres"] = ANIMATION_GENRE_ID
    if sort_by == "revenue":
        params["with_revenue.gte"] = MIN_REVENUE

    data = await get_tmdb_client().discover("movie", params)
    items = enrich_items(data.get("results", []), False)
    return _listing(data, items, f"Films : {genre_name}", False)


async def fetch_content(genre_id: str, sort_by: str, order: str, page: int) -> dict:
    """
    Listing for one catalog category: the TV top list or a movie genre.

    Raises:
        InvalidCatalogRequestError: unknown genre or page out of range.
    """
    validate_page(page)
    is_series = genre_id == SERIES_CATEGORY
    sort_by = validate_sort_by(sort_by, is_series)
    order = validate_order(order)
    key = f"content_{genre_id}_{sort_by}_{order}_{page}"

    if is_series:
        return await cache.get_or_set(key, TTL_CATALOG, lambda: _fetch_series(sort_by, order, page))

    if not genre_id.isdigit():
        raise InvalidCatalogRequestError(f"Unknown genre {genre_id!r}")
    names_by_id = {gid: name for name, gid in (await get_movie_genres()).items()}
    numeric_id = int(genre_id)
    if numeric_id not in names_by_id:
        raise InvalidCatalogRequestError(f"Unknown genre {genre_id!r}")

    return await cache.get_or_set(
        key,
        TTL_CATALOG,
        lambda: _fetch_movies(numeric_id, names_by_id[numeric_id], sort_by, order, page),
    )


async def _fetch_in_theaters(sort_by: str, order: str, page: int) -> dict:
    today = date.today()
    data = await get_tmdb_client().discover(
        "movie",
        {
            "sort_by": f"{sort_by}.{order}",
            "page": page,
            "watch_region": settings.TMDB_REGION,
            "primary_release_date.lte": today.isoformat(),
            "primary_release_date.gte": one_month_before(today).isoformat(),
            "with_release_type": THEATRICAL_RELEASE_TYPE,
            "vote_count.gte": MIN_VOTE_COUNT_THEATERS,
        },
    )
    items = enrich_items(data.get("results", []), False)
    return _listing(data, items, "Actuellement au cinéma", False)


async def fetch_in_theaters(sort_by: str, order: str, page: int) -> dict:
    """Movies released in theaters during the last month."""
    validate_page(page)
    sort_by = sort_by if sort_by in THEATER_SORT_FIELDS else "popularity"
    order = validate_order(order)
    key = f"in_theaters_{sort_by}_{order}_{page}"
    return await cache.get_or_set(key, TTL_CATALOG, lambda: _fetch_in_theaters(sort_by, order, page))


# ── Search ────────────────────────────────────────────────────────────────────

def _is_displayable(result: dict) -> bool:
    return result.get("media_type") in ("movie", "tv") and bool(result.get("poster_path"))


async def _fetch_suggestions(query: str) -> dict:
    data = await get_tmdb_client().search_multi(query)
    results = [r for r in data.get("results", []) if _is_displayable(r)]
    return {"results": results[:SEARCH_SUGGESTION_LIMIT]}


async def search_suggestions(query: str) -> dict:
    """Autocomplete payload for the navbar search box."""
    query = (query or "").strip()
    if len(query) < SEARCH_MIN_LENGTH:
        return {"results": []}
    return await cache.get_or_set(f"search_{hash_key(query)}", TTL_SEARCH, lambda: _fetch_suggestions(query))


def _search_sort_value(item: dict, sort_by: str) -> Any:
    if sort_by == "vote_average":
        return item.get("vote_average") or 0
    if sort_by == "release_date":
        return item.get("release_date") or item.get("first_air_date") or ""
    return item.get("popularity") or 0


async def _fetch_search_page(query: str, page: int, media_type: str, sort_by: str, order: str) -> dict:
    data = await get_tmdb_client().search_multi(query, page)
    results = [
        r
        for r in data.get("results", [])
        if _is_displayable(r) and media_type in ("all", r.get("media_type"))
    ]
    items = enrich_items(results, False)
    items.sort(key=lambda item: _search_sort_value(item, sort_by), reverse=order == "desc")
    return _listing(data, items, None, None)


async def search_page(
    query: str,
    page: int = DEFAULT_PAGE,
    media_type: str = "all",
    sort_by: str = "popularity",
    order: str = "desc",
) -> dict:
    """Full search results page, filtered by media type and re-sorted locally."""
    validate_page(page)
    media_type = media_type if media_type in SEARCH_MEDIA_TYPES else "all"
    sort_by = sort_by if sort_by in SEARCH_SORT_FIELDS else "popularity"
    order = validate_order(order)

    key = f"search_results_{hash_key(query, sort_by, order, media_type)}_{page}"
    result = await cache.get_or_set(
        key,
        TTL_CATALOG,
        lambda: _fetch_search_page(query, page, media_type, sort_by, order),
    )
    return {
        **result,
        "list_title": f'Résultats pour : "{query}"',
        "current_media_type": media_type,
        "current_sort": sort_by,
        "current_order": order,
    }
