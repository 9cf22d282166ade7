"""
Catalog pages
─────────────
Browse TMDb by genre, movies in theaters, and search.

Endpoints:
  GET /                  — Landing page
  GET /selection         — Genre picker (home)
  GET /list/{genre_id}   — Movies of a genre, or "tv_top_rated" for series
  GET /cinema            — Movies released in theaters this month
  GET /search            — Full search results page
  GET /api/search        — Autocomplete suggestions (JSON)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from cinescope.core.templating import render
from cinescope.deps.auth import get_optional_user
from cinescope.services.catalog_service import (
    CINEMA_CATEGORY,
    InvalidCatalogRequestError,
    available_filters,
    build_pagination,
    fetch_content,
    fetch_in_theaters,
    get_home_categories,
    parse_page,
    parse_sort_param,
    search_filters,
    search_page,
    search_suggestions,
    theater_filters,
)
from cinescope.services.tmdb_client import TMDBConfigError, TMDBUpstreamError

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_optional_user)])


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def _upstream_unavailable(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=_error("TMDB_UNAVAILABLE", str(exc)),
    )


def _page_or_404(raw_page: str) -> int:
    try:
        return parse_page(raw_page)
    except InvalidCatalogRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("PAGE_NOT_FOUND", "Cette page n'existe pas."),
        ) from exc


@router.get("/", response_class=HTMLResponse)
async def landing(request: Request) -> HTMLResponse:
    return await render(request, "catalog/landing.html")


@router.get("/selection", response_class=HTMLResponse)
async def home(request: Request) -> HTMLResponse:
    categories = await get_home_categories()
    if not categories["sorted_categories"]:
        logger.error("No movie genres available from TMDb; check TMDB_API_KEY")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_error("GENRES_UNAVAILABLE", "Movie genres could not be loaded"),
        )
    return await render(request, "catalog/index.html", {"title": "Faites votre choix", **categories})


@router.get("/list/{genre_id}", response_class=HTMLResponse)
async def movies_by_genre(
    request: Request,
    genre_id: str,
    sort: str = Query(default="popularity.desc"),
    raw_page: str = Query(default="", alias="page"),
) -> HTMLResponse:
    page = _page_or_404(raw_page)
    sort_by, order = parse_sort_param(sort)
    try:
        result = await fetch_content(genre_id, sort_by, order, page)
    except InvalidCatalogRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("GENRE_NOT_FOUND", "Ce genre n'existe pas."),
        ) from exc
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("Catalog listing failed genre=%s error=%s", genre_id, exc)
        raise _upstream_unavailable(exc) from exc

    is_series = bool(result["is_series"])
    context = {
        **result,
        "genre_id": genre_id,
        "current_page": page,
        "current_sort": sort_by if sort_by in available_filters(is_series)["sort_options"] else "popularity",
        "current_order": order if order in ("asc", "desc") else "desc",
        "filters": available_filters(is_series),
        "pagination": build_pagination(page, result["total_pages"]),
    }
    return await render(request, "catalog/movies.html", context)


@router.get("/cinema", response_class=HTMLResponse)
async def in_theaters(
    request: Request,
    sort: str = Query(default="popularity.desc"),
    raw_page: str = Query(default="", alias="page"),
) -> HTMLResponse:
    page = _page_or_404(raw_page)
    sort_by, order = parse_sort_param(sort)
    try:
        result = await fetch_in_theaters(sort_by, order, page)
    except InvalidCatalogRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("PAGE_NOT_FOUND", str(exc)),
        ) from exc
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("In-theaters listing failed error=%s", exc)
        raise _upstream_unavailable(exc) from exc

    filters = theater_filters()
    context = {
        **result,
        "genre_id": CINEMA_CATEGORY,
        "current_page": page,
        "current_sort": sort_by if sort_by in filters["sort_options"] else "popularity",
        "current_order": order if order in ("asc", "desc") else "desc",
        "filters": filters,
        "pagination": build_pagination(page, result["total_pages"]),
    }
    return await render(request, "catalog/movies.html", context)


@router.get("/search", response_class=HTMLResponse, response_model=None)
async def search_results(
    request: Request,
    q: str = Query(default=""),
    raw_page: str = Query(default="", alias="page"),
    media_type: str = Query(default="all"),
    sort: str = Query(default="popularity.desc"),
) -> HTMLResponse | RedirectResponse:
    query = q.strip()
    if not query:
        return RedirectResponse(url="/selection", status_code=status.HTTP_303_SEE_OTHER)

    page = _page_or_404(raw_page)
    sort_by, order = parse_sort_param(sort)
    try:
        result = await search_page(query, page, media_type, sort_by, order)
    except InvalidCatalogRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("PAGE_NOT_FOUND", str(exc)),
        ) from exc
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("Search page failed query=%r error=%s", query, exc)
        raise _upstream_unavailable(exc) from exc

    context = {
        **result,
        "current_page": page,
        "filters": search_filters(),
        "pagination": build_pagination(page, result["total_pages"]),
        "search_query": query,
    }
    return await render(request, "catalog/movies.html", context)


@router.get("/api/search")
async def search_api(q: str = Query(default="")) -> dict:
    try:
        return await search_suggestions(q)
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("Search suggestions failed query=%r error=%s", q, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error("SEARCH_FAILED", "Erreur de recherche"),
        ) from exc
