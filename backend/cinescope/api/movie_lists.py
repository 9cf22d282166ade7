"""
Watchlists — /mes-listes
────────────────────────
Pages and JSON endpoints for the user's lists. Every route requires login.

Endpoints:
  GET  /mes-listes                                   — My lists (HTML)
  GET  /mes-listes/creer                             — New list form (HTML)
  POST /mes-listes/creer                             — Create a list (form)
  POST /mes-listes/favoris/toggle                    — Toggle "Mon Panthéon" (JSON)
  GET  /mes-listes/check-item/{tmdb_type}/{tmdb_id}  — Lists containing a title (JSON)
  POST /mes-listes/item/{item_id}/supprimer          — Remove an item (form)
  POST /mes-listes/item/{item_id}                    — Remove an item (JSON)
  POST /mes-listes/{list_id}/add/{tmdb_type}/{tmdb_id} — Add a title (JSON)
  POST /mes-listes/{list_id}/supprimer               — Delete a list (form)
  GET  /mes-listes/{list_id}                         — List page with TMDb details (HTML)
"""
import logging
from typing import Literal

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from cinescope.core.security import csrf_token, delete_intent, is_csrf_token_valid
from cinescope.core.templating import flash, render
from cinescope.db.models import User
from cinescope.db.session import get_db
from cinescope.deps.auth import get_current_user
from cinescope.schemas.movie_lists import (
    AddItemResponse,
    CheckItemResponse,
    CreateMovieListRequest,
    MovieListSummary,
    ToggleFavoriteRequest,
    ToggleFavoriteResponse,
)
from cinescope.services.movie_list_service import (
    MAX_LISTS_PER_USER,
    DuplicateListItemError,
    InvalidListPayloadError,
    ListItemNotFoundError,
    ListLimitReachedError,
    MovieListNotFoundError,
    NotListOwnerError,
    SystemListError,
    add_item,
    check_item,
    create_list,
    delete_list,
    get_list_item,
    list_user_lists,
    remove_item,
    show_list,
    toggle_favorite,
)
from cinescope.services.tmdb_client import TMDBConfigError, TMDBUpstreamError

logger = logging.getLogger(__name__)

router = APIRouter()

NEW_LIST_INTENT = "movie-list-new"


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


# ── Pages ─────────────────────────────────────────────────────────────────────

@router.get("", response_class=HTMLResponse)
async def index(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> HTMLResponse:
    lists = [MovieListSummary(**row) for row in list_user_lists(db, current_user)]
    return await render(request, "movie_list/index.html", {"movie_lists": lists})


@router.get("/creer", response_class=HTMLResponse)
async def new_list_form(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> HTMLResponse:
    return await render(request, "movie_list/new.html", {"errors": [], "form": {}})


@router.post("/creer", response_class=HTMLResponse, response_model=None)
async def create_list_submit(
    request: Request,
    name: str = Form(default=""),
    description: str = Form(default=""),
    token: str = Form(default="", alias="_token"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    form = {"name": name, "description": description}
    if not is_csrf_token_valid(request.session, NEW_LIST_INTENT, token):
        flash(request, "Token de sécurité invalide.", "error")
        return _redirect("/mes-listes/creer")

    try:
        payload = CreateMovieListRequest(name=name.strip(), description=description.strip() or None)
    except ValidationError:
        errors = ["Le nom de la liste doit contenir entre 1 et 255 caractères."]
        return await render(
            request, "movie_list/new.html", {"errors": errors, "form": form},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        movie_list = create_list(db, current_user, payload.name, payload.description)
    except ListLimitReachedError:
        flash(
            request,
            f"Vous avez atteint la limite de {MAX_LISTS_PER_USER} listes. "
            "Supprimez-en une pour en créer une nouvelle.",
            "error",
        )
        return _redirect("/mes-listes")
    except InvalidListPayloadError as exc:
        return await render(
            request, "movie_list/new.html", {"errors": [str(exc)], "form": form},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    flash(request, f'Votre liste "{movie_list.name}" a été créée avec succès !')
    return _redirect(f"/mes-listes/{movie_list.id}")


# ── JSON endpoints ────────────────────────────────────────────────────────────

@router.post("/favoris/toggle", response_model=ToggleFavoriteResponse)
def toggle_favorite_item(
    payload: ToggleFavoriteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    is_favorite = toggle_favorite(db, current_user, payload.tmdb_type, payload.tmdb_id)
    return {
        "success": True,
        "is_favorite": is_favorite,
        "message": "Ajouté aux favoris" if is_favorite else "Retiré des favoris",
    }


@router.get("/check-item/{tmdb_type}/{tmdb_id}", response_model=CheckItemResponse)
def check_list_item(
    request: Request,
    tmdb_type: Literal["movie", "tv"],
    tmdb_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    rows = check_item(db, current_user, tmdb_type, tmdb_id)
    items = [
        {**row, "csrf_token": csrf_token(request.session, delete_intent("item", row["item_id"]))}
        for row in rows
    ]
    return {"lists": [row["list_name"] for row in rows], "items": items, "count": len(rows)}


@router.post("/item/{item_id}/supprimer", response_model=None)
def delete_item_form(
    request: Request,
    item_id: int,
    token: str = Form(default="", alias="_token"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    try:
        item = get_list_item(db, current_user, item_id)
    except ListItemNotFoundError:
        flash(request, "Élément introuvable.", "error")
        return _redirect("/mes-listes")
    except NotListOwnerError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_error("NOT_LIST_OWNER", "Vous n'êtes pas autorisé à supprimer cet élément."),
        ) from exc

    list_id = item.movie_list_id
    if not is_csrf_token_valid(request.session, delete_intent("item", item_id), token):
        flash(request, "Token de sécurité invalide.", "error")
        return _redirect(f"/mes-listes/{list_id}")

    remove_item(db, current_user, item_id)
    flash(request, "L'élément a été retiré de la liste avec succès.")
    return _redirect(f"/mes-listes/{list_id}")


@router.post("/item/{item_id}")
def delete_item_json(
    request: Request,
    item_id: int,
    token: str = Form(default="", alias="_token"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    try:
        get_list_item(db, current_user, item_id)
    except ListItemNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("ITEM_NOT_FOUND", "Élément introuvable."),
        ) from exc
    except NotListOwnerError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_error("NOT_LIST_OWNER", "Accès non autorisé."),
        ) from exc

    if not is_csrf_token_valid(request.session, delete_intent("item", item_id), token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_error("INVALID_CSRF_TOKEN", "Token de sécurité invalide."),
        )

    movie_list = remove_item(db, current_user, item_id)
    return {"success": True, "message": f"Retiré de {movie_list.name} avec succès"}


@router.post(
    "/{list_id}/add/{tmdb_type}/{tmdb_id}",
    response_model=AddItemResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_list_item(
    list_id: int,
    tmdb_type: Literal["movie", "tv"],
    tmdb_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    try:
        item = add_item(db, current_user, list_id, tmdb_type, tmdb_id)
    except MovieListNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("LIST_NOT_FOUND", "Liste introuvable ou accès non autorisé"),
        ) from exc
    except DuplicateListItemError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("ITEM_ALREADY_IN_LIST", "Cet élément est déjà dans la liste"),
        ) from exc
    except ListLimitReachedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_error("LIST_FULL", "Cette liste a atteint sa limite de 500 éléments"),
        ) from exc

    return {"message": "Ajouté avec succès !", "list_name": item.movie_list.name, "item_id": item.id}


# ── List pages ────────────────────────────────────────────────────────────────

@router.post("/{list_id}/supprimer", response_model=None)
def delete_list_form(
    request: Request,
    list_id: int,
    token: str = Form(default="", alias="_token"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    if not is_csrf_token_valid(request.session, delete_intent("list", list_id), token):
        flash(request, "Token de sécurité invalide.", "error")
        return _redirect("/mes-listes")

    try:
        name = delete_list(db, current_user, list_id)
    except MovieListNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_error("LIST_NOT_FOUND", "Cette liste n'existe pas ou vous n'y avez pas accès."),
        ) from exc
    except SystemListError:
        flash(request, "Cette liste ne peut pas être supprimée car c'est une liste système.", "error")
        return _redirect("/mes-listes")

    flash(request, f'La liste "{name}" a été supprimée avec succès.')
    return _redirect("/mes-listes")


@router.get("/{list_id}", response_class=HTMLResponse)
async def show_movie_list(
    request: Request,
    list_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> HTMLResponse:
    try:
        movie_list, items = await show_list(db, current_user, list_id)
    except MovieListNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_error("LIST_NOT_FOUND", "Cette liste n'existe pas ou vous n'y avez pas accès."),
        ) from exc
    except (TMDBConfigError, TMDBUpstreamError) as exc:
        logger.error("List details failed list_id=%s error=%s", list_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=_error("TMDB_UNAVAILABLE", str(exc)),
        ) from exc

    return await render(request, "movie_list/show.html", {"movie_list": movie_list, "items": items})
