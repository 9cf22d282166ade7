"""
Badge rules — computed labels shown on posters and detail pages.

Badges are derived from TMDb vote/popularity figures and, on detail pages,
the IMDb / Rotten Tomatoes / Metacritic scores returned by OMDb. The "lite"
variant is used on list pages where OMDb data is not fetched, so its
masterpiece thresholds are stricter.
"""
from datetime import date
from typing import Any

# Detail-page thresholds
MIN_VOTES_CHEF = 5000
MIN_TMDB_CHEF = 8.0
MIN_IMDB_CHEF = 8.0

# List-page thresholds (no IMDb cross-check available)
MIN_VOTES_CHEF_LITE = 8000
MIN_TMDB_CHEF_LITE = 8.4

MIN_VOTES_CULT = 2000
MIN_POP_CULT = 30.0
CULT_MIN_AGE_YEARS = 10
CLASSIC_START = 1980
CLASSIC_END = 1999

ICONIC_GENRES: dict[int, str] = {
    878: "Science-fiction",
    27: "Horreur",
    18: "Drame",
    35: "Comédie",
    53: "Thriller",
    14: "Fantastique",
    80: "Policier",
}

CHEF_LABEL = "Chef-d'œuvre"
CULT_LABEL = "Film culte"
CLASSIC_LABEL = "Classique 80/90"


def _badge(key: str, label: str, icon: str, reason: str) -> dict[str, str]:
    return {"key": key, "label": label, "icon": icon, "reason": reason}


def format_votes(count: int) -> str:
    """12345 -> '12 345' (space thousands separator, as displayed on the site)."""
    return f"{count:,}".replace(",", " ")


def _format_number(value: float) -> str:
    """88.0 -> '88', 72.5 -> '72.5'."""
    return f"{value:g}"


def get_year(item: dict[str, Any], is_series: bool) -> int | None:
    key = "first_air_date" if is_series else "release_date"
    raw = item.get(key)
    if not raw or not isinstance(raw, str) or len(raw) < 4 or not raw[:4].isdigit():
        return None
    return int(raw[:4])


def _genre_ids(item: dict[str, Any]) -> list[int]:
    genres = item.get("genres")
    if isinstance(genres, list):
        return [g["id"] for g in genres if isinstance(g, dict) and "id" in g]
    return list(item.get("genre_ids") or [])


def parse_omdb_scores(omdb: dict[str, Any] | None) -> tuple[float | None, float | None, float | None]:
    """Return (imdb, rotten_tomatoes, metacritic) as floats, None when unknown."""
    if not omdb:
        return None, None, None

    imdb = None
    raw_imdb = omdb.get("imdbRating")
    if raw_imdb and raw_imdb != "N/A":
        try:
            imdb = float(raw_imdb)
        except (TypeError, ValueError):
            imdb = None

    rt = None
    mc = None
    for rating in omdb.get("Ratings") or []:
        source = rating.get("Source")
        value = rating.get("Value") or ""
        if source == "Rotten Tomatoes" and value:
            try:
                rt = float(value.replace("%", ""))
            except ValueError:
                rt = None
        elif source == "Metacritic" and "/" in value:
            try:
                mc = float(value.split("/", 1)[0])
            except ValueError:
                mc = None

    return imdb, rt, mc


def _cult_genre_badges(genre_ids: list[int], wording: str) -> list[dict[str, str]]:
    badges = []
    for gid in genre_ids:
        name = ICONIC_GENRES.get(gid)
        if name is None:
            continue
        badges.append(
            _badge(f"culte_genre_{gid}", f"Culte • {name}", "fa-film", f"{wording} « {name} »")
        )
    return badges


def _is_cult(year: int | None, vote_count: int, popularity: float, current_year: int) -> bool:
    return (
        year is not None
        and year <= current_year - CULT_MIN_AGE_YEARS
        and vote_count >= MIN_VOTES_CULT
        and popularity >= MIN_POP_CULT
    )


def _classic_badge(year: int | None, is_series: bool) -> dict[str, str] | None:
    if is_series or year is None or not (CLASSIC_START <= year <= CLASSIC_END):
        return None
    return _badge("classic", CLASSIC_LABEL, "fa-popcorn", f"Sorti en {year}")


def decide_badges(
    tmdb: dict[str, Any],
    omdb: dict[str, Any] | None,
    is_series: bool,
    current_year: int | None = None,
) -> list[dict[str, str]]:
    """Full badge set for a detail page (TMDb + OMDb)."""
    current_year = current_year or date.today().year
    vote_average = float(tmdb.get("vote_average") or 0)
    vote_count = int(tmdb.get("vote_count") or 0)
    popularity = float(tmdb.get("popularity") or 0.0)
    year = get_year(tmdb, is_series)
    imdb, rt, mc = parse_omdb_scores(omdb)

    badges: list[dict[str, str]] = []

    if (
        vote_average >= MIN_TMDB_CHEF
        and imdb is not None
        and imdb >= MIN_IMDB_CHEF
        and vote_count >= MIN_VOTES_CHEF
    ):
        reason = f"TMDb {vote_average:.1f}/10, IMDb {imdb:.1f}/10, {format_votes(vote_count)} votes"
        if rt is not None:
            reason += f", Rotten Tomatoes {_format_number(rt)}%"
        if mc is not None:
            reason += f", Metacritic {_format_number(mc)}/100"
        badges.append(_badge("chef", CHEF_LABEL, "fa-trophy", reason))

    is_cult = _is_cult(year, vote_count, popularity, current_year)
    if is_cult:
        reason = f"Culte : année {year}, {format_votes(vote_count)} votes, popularité {popularity:.1f}"
        badges.append(_badge("culte", CULT_LABEL, "fa-fire", reason))

    classic = _classic_badge(year, is_series)
    if classic is not None:
        badges.append(classic)

    if is_cult:
        badges.extend(_cult_genre_badges(_genre_ids(tmdb), "Culte dans le genre"))

    return badges


def decide_badges_lite(
    tmdb: dict[str, Any],
    is_series: bool,
    current_year: int | None = None,
) -> list[dict[str, str]]:
    """Badges for list cards, where only the TMDb search/discover row is known."""
    current_year = current_year or date.today().year
    vote_average = float(tmdb.get("vote_average") or 0)
    vote_count = int(tmdb.get("vote_count") or 0)
    popularity = float(tmdb.get("popularity") or 0.0)
    year = get_year(tmdb, is_series)

    badges: list[dict[str, str]] = []

    if vote_average >= MIN_TMDB_CHEF_LITE and vote_count >= MIN_VOTES_CHEF_LITE:
        reason = f"TMDb {vote_average:.1f}/10, {format_votes(vote_count)} votes"
        badges.append(_badge("chef", CHEF_LABEL, "fa-trophy", reason))

    is_cult = _is_cult(year, vote_count, popularity, current_year)
    if is_cult:
        reason = f"Année {year}, {format_votes(vote_count)} votes, popularité {popularity:.1f}"
        badges.append(_badge("culte", CULT_LABEL, "fa-fire", reason))

    classic = _classic_badge(year, is_series)
    if classic is not None:
        badges.append(classic)

    if is_cult:
        badges.extend(_cult_genre_badges(_genre_ids(tmdb), "Culte dans"))

    return badges
