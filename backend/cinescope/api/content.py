"""
Detail pages
────────────
Endpoints:
  GET /movie/{id}   — Movie page (TMDb + OMDb + providers + badges + picks)
  GET /tv/{id}      — TV show page
  GET /person/{id}  — Actor / director page with sorted filmography
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from cinescope.core.templating import render
from cinescope.deps.auth import get_optional_user
from cinescope.services.content_service import (
    ContentNotFoundError,
    build_content_page,
    get_person_detail,
)
from cinescope.services.recommendation_service import recommend_for_content

router = APIRouter(dependencies=[Depends(get_optional_user)])


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


async def _render_detail(request: Request, kind: str, tmdb_id: int) -> HTMLResponse:
    try:
        page = await build_content_page(kind, tmdb_id)
    except ContentNotFoundError as exc:
        message = "Série introuvable." if kind == "tv" else "Film introuvable."
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("CONTENT_NOT_FOUND", message),
        ) from exc

    page["recommendations"] = await recommend_for_content(kind, tmdb_id)
    page["kind"] = kind
    return await render(request, "content/detail.html", page)


@router.get("/movie/{tmdb_id}", response_class=HTMLResponse)
async def movie_detail(request: Request, tmdb_id: int) -> HTMLResponse:
    return await _render_detail(request, "movie", tmdb_id)


@router.get("/tv/{tmdb_id}", response_class=HTMLResponse)
async def tv_detail(request: Request, tmdb_id: int) -> HTMLResponse:
    return await _render_detail(request, "tv", tmdb_id)


@router.get("/person/{person_id}", response_class=HTMLResponse)
async def person_detail(request: Request, person_id: int) -> HTMLResponse:
    try:
        page = await get_person_detail(person_id)
    except ContentNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("PERSON_NOT_FOUND", "Personne introuvable."),
        ) from exc
    return await render(request, "content/person.html", page)
