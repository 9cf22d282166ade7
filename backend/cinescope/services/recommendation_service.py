"""
Recommendation Scorer
─────────────────────
Ranks candidate titles by how many attributes they share with a seed title
(or with a user's favourites).

Candidates are the seed's own TMDb "recommendations" and "similar" rows,
hydrated with credits and keywords through batched, cached detail fetches.

Score:
  3 × shared genres
+ 2 × shared keywords
+ 5   if a director is shared
+ 2 × shared cast (top-billed 10)
+ rating bonus = max(0, 2 − |seed rating − candidate rating|), +1 if candidate ≥ 7.5

Candidates scoring 0 are dropped. Ties break on vote_average (desc) then
TMDb id (asc) so results are stable between requests.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from cinescope.core.cache import TTL_CONTENT, cache
from cinescope.db.models import FAVORITES_LIST_NAME, MovieList, MovieListItem, User
from cinescope.services.content_service import ContentNotFoundError, get_content_detail
from cinescope.services.tmdb_client import TMDBConfigError, TMDBUpstreamError, get_tmdb_client

logger = logging.getLogger(__name__)

GENRE_WEIGHT = 3
KEYWORD_WEIGHT = 2
DIRECTOR_BONUS = 5
CAST_WEIGHT = 2
RATING_PROXIMITY_MAX = 2.0
HIGH_RATING_THRESHOLD = 7.5
HIGH_RATING_BONUS = 1

TOP_CAST_SIZE = 10
MAX_CANDIDATES_PER_SEED = 20
MAX_USER_SEEDS = 5
DEFAULT_LIMIT = 12
CANDIDATE_APPEND = "credits,keywords"


# ── Profiles ──────────────────────────────────────────────────────────────────

def _ids(rows: list[dict] | None) -> set[int]:
    return {row["id"] for row in rows or [] if isinstance(row, dict) and "id" in row}


def build_profile(item: dict[str, Any]) -> dict[str, Any]:
    """
    Reduce a TMDb detail payload to the attributes the scorer compares.

    Movies expose keywords under ``keywords.keywords``, TV shows under
    ``keywords.results``; TV creators count as directors.
    """
    if isinstance(item.get("genres"), list):
        genres = _ids(item["genres"])
    else:
        genres = set(item.get("genre_ids") or [])

    keyword_block = item.get("keywords") or {}
    keywords = _ids(keyword_block.get("keywords") or keyword_block.get("results"))

    credits = item.get("credits") or {}
    directors = {
        member["id"]
        for member in credits.get("crew") or []
        if member.get("job") == "Director" and "id" in member
    }
    directors |= _ids(item.get("created_by"))
    cast = _ids((credits.get("cast") or [])[:TOP_CAST_SIZE])

    return {
        "genres": genres,
        "keywords": keywords,
        "directors": directors,
        "cast": cast,
        "rating": float(item.get("vote_average") or 0.0),
    }


def merge_profiles(profiles: list[dict[str, Any]]) -> dict[str, Any]:
    """Union of attributes; the rating is the mean of the seeds' ratings."""
    merged: dict[str, Any] = {"genres": set(), "keywords": set(), "directors": set(), "cast": set()}
    for profile in profiles:
        for key in ("genres", "keywords", "directors", "cast"):
            merged[key] |= profile[key]
    ratings = [p["rating"] for p in profiles]
    merged["rating"] = sum(ratings) / len(ratings) if ratings else 0.0
    return merged


# ── Scoring ───────────────────────────────────────────────────────────────────

class RecommendationScorer:
    """
    Pure scoring rules shared by the content and user recommenders.
    Weights are the module constants above.
    """

    @staticmethod
    def rating_bonus(seed_rating: float, candidate_rating: float) -> float:
        bonus = max(0.0, RATING_PROXIMITY_MAX - abs(seed_rating - candidate_rating))
        if candidate_rating >= HIGH_RATING_THRESHOLD:
            bonus += HIGH_RATING_BONUS
        return bonus

    @staticmethod
    def score(seed: dict[str, Any], candidate: dict[str, Any]) -> tuple[float, list[str]]:
        """Return (score, reasons) for *candidate* against *seed* (both profiles)."""
        reasons: list[str] = []

        shared_genres = len(seed["genres"] & candidate["genres"])
        shared_keywords = len(seed["keywords"] & candidate["keywords"])
        same_director = bool(seed["directors"] & candidate["directors"])
        shared_cast = len(seed["cast"] & candidate["cast"])

        total = 0.0
        if shared_genres:
            total += GENRE_WEIGHT * shared_genres
            reasons.append(f"{shared_genres} genre(s) en commun")
        if shared_keywords:
            total += KEYWORD_WEIGHT * shared_keywords
            reasons.append(f"{shared_keywords} thème(s) en commun")
        if same_director:
            total += DIRECTOR_BONUS
            reasons.append("Même réalisateur")
        if shared_cast:
            total += CAST_WEIGHT * shared_cast
            reasons.append(f"{shared_cast} acteur(s) en commun")

        bonus = RecommendationScorer.rating_bonus(seed["rating"], candidate["rating"])
        if bonus:
            total += bonus
            reasons.append(f"Note {candidate['rating']:.1f}/10")

        return round(total, 2), reasons

    @staticmethod
    def rank(
        seed: dict[str, Any],
        candidates: list[dict[str, Any]],
        kind: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Score every candidate detail payload and return the sorted results.

        Candidates may carry their own ``media_type``; otherwise *kind* is used.
        """
        results = []
        for item in candidates:
            score, reasons = RecommendationScorer.score(seed, build_profile(item))
            if score <= 0:
                continue
            item_kind = item.get("media_type") or kind or "movie"
            results.append(_result_row(item, item_kind, score, reasons))

        results.sort(key=lambda r: (-r["score"], -r["vote_average"], r["id"]))
        return results


def _result_row(item: dict, kind: str, score: float, reasons: list[str]) -> dict:
    is_series = kind == "tv"
    date_value = item.get("first_air_date" if is_series else "release_date") or ""
    return {
        "id": item["id"],
        "kind": kind,
        "is_series": is_series,
        "title": item.get("name") if is_series else item.get("title"),
        "poster_path": item.get("poster_path"),
        "vote_average": float(item.get("vote_average") or 0.0),
        "year": date_value[:4] if date_value else "N/A",
        "score": score,
        "reasons": reasons,
    }


# ── Candidate discovery ───────────────────────────────────────────────────────

def candidate_ids(item: dict[str, Any], exclude: set[int] | None = None) -> list[int]:
    """Ids from the seed's recommendations + similar rows, deduplicated, seed excluded."""
    exclude = set(exclude or ())
    exclude.add(item.get("id"))
    ids: list[int] = []
    for block in ("recommendations", "similar"):
        for row in (item.get(block) or {}).get("results") or []:
            tmdb_id = row.get("id")
            if tmdb_id is None or tmdb_id in exclude or tmdb_id in ids:
                continue
            ids.append(tmdb_id)
    return ids[:MAX_CANDIDATES_PER_SEED]


async def hydrate_candidates(kind: str, ids: list[int]) -> list[dict]:
    """
    Detail payloads (credits + keywords) for candidate *ids*.

    Cached payloads are reused; the rest are fetched in batches. Lookups that
    fail are left out.
    """
    found: dict[int, dict] = {}
    missing: list[int] = []
    for tmdb_id in ids:
        cached = cache.get(f"reco_detail_{kind}_{tmdb_id}")
        if cached:
            found[tmdb_id] = cached
        else:
            missing.append(tmdb_id)

    if missing:
        fetched = await get_tmdb_client().details_many(kind, missing, CANDIDATE_APPEND)
        for tmdb_id in missing:
            payload = fetched.get(f"{kind}_{tmdb_id}")
            if payload:
                cache.set(f"reco_detail_{kind}_{tmdb_id}", payload, TTL_CONTENT)
                found[tmdb_id] = payload

    return [found[tmdb_id] for tmdb_id in ids if tmdb_id in found]


# ── Public API ────────────────────────────────────────────────────────────────

async def recommend_for_content(kind: str, tmdb_id: int, limit: int = DEFAULT_LIMIT) -> list[dict]:
    """Titles similar to one movie / TV show. Empty when anything upstream fails."""
    try:
        seed_item = await get_content_detail(kind, tmdb_id)
        candidates = await hydrate_candidates(kind, candidate_ids(seed_item))
    except (ContentNotFoundError, TMDBConfigError, TMDBUpstreamError) as exc:
        logger.warning("Recommendations unavailable for %s/%s: %s", kind, tmdb_id, exc)
        return []

    ranked = RecommendationScorer.rank(build_profile(seed_item), candidates, kind)
    return ranked[:limit]


def _favorite_seeds(db: Session, user: User) -> list[MovieListItem]:
    return (
        db.query(MovieListItem)
        .join(MovieList, MovieList.id == MovieListItem.movie_list_id)
        .filter(MovieList.user_id == user.id, MovieList.name == FAVORITES_LIST_NAME)
        .order_by(MovieListItem.added_at.desc(), MovieListItem.id.desc())
        .limit(MAX_USER_SEEDS)
        .all()
    )


def _titles_in_user_lists(db: Session, user: User) -> set[tuple[str, int]]:
    rows = (
        db.query(MovieListItem.tmdb_type, MovieListItem.tmdb_id)
        .join(MovieList, MovieList.id == MovieListItem.movie_list_id)
        .filter(MovieList.user_id == user.id)
        .all()
    )
    return {(tmdb_type, tmdb_id) for tmdb_type, tmdb_id in rows}


async def recommend_for_user(db: Session, user: User, limit: int = DEFAULT_LIMIT) -> list[dict]:
    """
    Personal picks seeded by the user's most recent favourites.

    Anything already saved in one of the user's lists is excluded.
    """
    seeds = _favorite_seeds(db, user)
    if not seeds:
        return []

    owned = _titles_in_user_lists(db, user)
    seed_profiles: list[dict] = []
    ids_by_kind: dict[str, list[int]] = {"movie": [], "tv": []}

    for seed in seeds:
        try:
            seed_item = await get_content_detail(seed.tmdb_type, seed.tmdb_id)
        except ContentNotFoundError as exc:
            logger.warning("Skipping favourite seed %s/%s: %s", seed.tmdb_type, seed.tmdb_id, exc)
            continue
        seed_profiles.append(build_profile(seed_item))
        exclude = {tmdb_id for kind, tmdb_id in owned if kind == seed.tmdb_type}
        for tmdb_id in candidate_ids(seed_item, exclude):
            if tmdb_id not in ids_by_kind[seed.tmdb_type]:
                ids_by_kind[seed.tmdb_type].append(tmdb_id)

    if not seed_profiles:
        return []

    profile = merge_profiles(seed_profiles)
    results: list[dict] = []
    try:
        for kind, ids in ids_by_kind.items():
            if ids:
                results.extend(RecommendationScorer.rank(profile, await hydrate_candidates(kind, ids), kind))
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.warning("Personal recommendations unavailable user_id=%s: %s", user.id, exc)
        return []

    results.sort(key=lambda r: (-r["score"], -r["vote_average"], r["id"]))
    logger.info("Computed %d personal recommendations user_id=%s", len(results), user.id)
    return results[:limit]
