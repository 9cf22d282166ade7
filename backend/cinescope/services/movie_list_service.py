"""
Watchlist business logic — user-owned lists of TMDb titles.

Every account owns two system lists ("Mon Panthéon" for favourites and
"La Carte aux Trésors" for titles to watch). System lists can be filled and
emptied but never deleted.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cinescope.core.cache import TTL_LIST_DETAILS, cache, hash_key
from cinescope.db.models import (
    FAVORITES_LIST_NAME,
    LEGACY_FAVORITES_LIST_NAME,
    SYSTEM_LIST_NAMES,
    TREASURE_LIST_NAME,
    MovieList,
    MovieListItem,
    TmdbTypeEnum,
    User,
)
from cinescope.services.tmdb_client import get_tmdb_client

logger = logging.getLogger(__name__)

MAX_LISTS_PER_USER = 50
MAX_ITEMS_PER_LIST = 500
LIST_NAME_MAX_LENGTH = 255
VALID_TMDB_TYPES = tuple(t.value for t in TmdbTypeEnum)


class MovieListNotFoundError(Exception):
    """Raised when a list does not exist or belongs to another user."""


class ListItemNotFoundError(Exception):
    """Raised when a list item does not exist."""


class NotListOwnerError(Exception):
    """Raised when a user touches an item of someone else's list."""


class DuplicateListItemError(Exception):
    """Raised when a title is already in the target list."""


class ListLimitReachedError(Exception):
    """Raised when the per-user list cap or per-list item cap is hit."""


class SystemListError(Exception):
    """Raised when trying to delete a system list."""


class InvalidListPayloadError(Exception):
    """Raised for an empty/too long name or an unknown TMDb type."""


# ── Helpers ───────────────────────────────────────────────────────────────────

def _check_tmdb_type(tmdb_type: str) -> str:
    if tmdb_type not in VALID_TMDB_TYPES:
        raise InvalidListPayloadError(f"Unknown TMDb type {tmdb_type!r}")
    return tmdb_type


def _find_list_by_name(db: Session, user: User, name: str) -> MovieList | None:
    return (
        db.query(MovieList)
        .filter(MovieList.user_id == user.id, MovieList.name == name)
        .first()
    )


def ensure_system_lists(db: Session, user: User) -> list[MovieList]:
    """
    Create whichever system lists *user* is missing. Flushes but does not
    commit; callers own the transaction.
    """
    created = []
    for name in SYSTEM_LIST_NAMES:
        if _find_list_by_name(db, user, name) is None:
            movie_list = MovieList(user_id=user.id, name=name, is_system=True)
            db.add(movie_list)
            created.append(movie_list)
    if created:
        db.flush()
    return created


def get_or_create_favorites_list(db: Session, user: User) -> MovieList:
    favorites = _find_list_by_name(db, user, FAVORITES_LIST_NAME)
    if favorites is None:
        favorites = MovieList(user_id=user.id, name=FAVORITES_LIST_NAME, is_system=True)
        db.add(favorites)
        db.flush()
    return favorites


# ── Lists ─────────────────────────────────────────────────────────────────────

def list_user_lists(db: Session, user: User) -> list[dict]:
    """The user's lists with their item counts, newest first."""
    rows = (
        db.query(MovieList, func.count(MovieListItem.id))
        .outerjoin(MovieListItem, MovieListItem.movie_list_id == MovieList.id)
        .filter(MovieList.user_id == user.id)
        .group_by(MovieList.id)
        .order_by(MovieList.created_at.desc(), MovieList.id.desc())
        .all()
    )
    return [
        {
            "id": movie_list.id,
            "name": movie_list.name,
            "description": movie_list.description,
            "is_system": movie_list.is_system,
            "created_at": movie_list.created_at,
            "item_count": item_count,
        }
        for movie_list, item_count in rows
    ]


def create_list(db: Session, user: User, name: str, description: str | None = None) -> MovieList:
    """
    Create a custom list.

    Raises:
        InvalidListPayloadError: empty or too long name.
        ListLimitReachedError: the user already owns MAX_LISTS_PER_USER lists.
    """
    name = (name or "").strip()
    if not name or len(name) > LIST_NAME_MAX_LENGTH:
        raise InvalidListPayloadError(f"List name must be 1-{LIST_NAME_MAX_LENGTH} characters")

    existing = db.query(func.count(MovieList.id)).filter(MovieList.user_id == user.id).scalar()
    if existing >= MAX_LISTS_PER_USER:
        raise ListLimitReachedError(f"A user can own at most {MAX_LISTS_PER_USER} lists")

    movie_list = MovieList(
        user_id=user.id,
        name=name,
        description=(description or "").strip() or None,
        is_system=False,
    )
    db.add(movie_list)
    db.commit()
    db.refresh(movie_list)
    logger.info("List created user_id=%s list_id=%s", user.id, movie_list.id)
    return movie_list


def get_user_list(db: Session, user: User, list_id: int) -> MovieList:
    """Ownership-scoped fetch; someone else's list looks like a missing one."""
    movie_list = (
        db.query(MovieList)
        .filter(MovieList.id == list_id, MovieList.user_id == user.id)
        .first()
    )
    if movie_list is None:
        raise MovieListNotFoundError(f"List {list_id} not found")
    return movie_list


def delete_list(db: Session, user: User, list_id: int) -> str:
    """Delete a custom list and its items. Returns the deleted list's name."""
    movie_list = get_user_list(db, user, list_id)
    if movie_list.is_system:
        raise SystemListError(f'"{movie_list.name}" is a system list and cannot be deleted')

    name = movie_list.name
    db.delete(movie_list)
    db.commit()
    logger.info("List deleted user_id=%s list_id=%s name=%r", user.id, list_id, name)
    return name


# ── Items ─────────────────────────────────────────────────────────────────────

def add_item(
    db: Session,
    user: User,
    list_id: int,
    tmdb_type: str,
    tmdb_id: int,
    poster_path: str | None = None,
) -> MovieListItem:
    """
    Add a title to one of the user's lists.

    Raises:
        MovieListNotFoundError, DuplicateListItemError, ListLimitReachedError
    """
    _check_tmdb_type(tmdb_type)
    movie_list = get_user_list(db, user, list_id)

    existing = (
        db.query(MovieListItem)
        .filter(
            MovieListItem.movie_list_id == movie_list.id,
            MovieListItem.tmdb_id == tmdb_id,
            MovieListItem.tmdb_type == tmdb_type,
        )
        .first()
    )
    if existing:
        raise DuplicateListItemError("This title is already in the list")

    count = (
        db.query(func.count(MovieListItem.id))
        .filter(MovieListItem.movie_list_id == movie_list.id)
        .scalar()
    )
    if count >= MAX_ITEMS_PER_LIST:
        raise ListLimitReachedError(f"A list holds at most {MAX_ITEMS_PER_LIST} titles")

    item = MovieListItem(
        movie_list_id=movie_list.id,
        tmdb_id=tmdb_id,
        tmdb_type=tmdb_type,
        poster_path=poster_path,
    )
    db.add(item)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateListItemError("This title is already in the list") from exc
    db.refresh(item)

    logger.info(
        "Item added to list user_id=%s list_id=%s tmdb_type=%s tmdb_id=%s",
        user.id, movie_list.id, tmdb_type, tmdb_id,
    )
    return item


def check_item(db: Session, user: User, tmdb_type: str, tmdb_id: int) -> list[dict]:
    """Which of the user's lists contain this title: [{"list_name", "item_id", "list_id"}]."""
    _check_tmdb_type(tmdb_type)
    rows = (
        db.query(MovieListItem, MovieList)
        .join(MovieList, MovieList.id == MovieListItem.movie_list_id)
        .filter(
            MovieList.user_id == user.id,
            MovieListItem.tmdb_id == tmdb_id,
            MovieListItem.tmdb_type == tmdb_type,
        )
        .order_by(MovieList.name)
        .all()
    )
    return [
        {"list_name": movie_list.name, "item_id": item.id, "list_id": movie_list.id}
        for item, movie_list in rows
    ]


def toggle_favorite(db: Session, user: User, tmdb_type: str, tmdb_id: int) -> bool:
    """Add or remove a title from "Mon Panthéon". Returns the new favourite state."""
    _check_tmdb_type(tmdb_type)
    favorites = get_or_create_favorites_list(db, user)

    existing = (
        db.query(MovieListItem)
        .filter(
            MovieListItem.movie_list_id == favorites.id,
            MovieListItem.tmdb_id == tmdb_id,
            MovieListItem.tmdb_type == tmdb_type,
        )
        .first()
    )
    if existing:
        db.delete(existing)
        is_favorite = False
    else:
        db.add(MovieListItem(movie_list_id=favorites.id, tmdb_id=tmdb_id, tmdb_type=tmdb_type))
        is_favorite = True

    db.commit()
    logger.info(
        "Favourite toggled user_id=%s tmdb_type=%s tmdb_id=%s is_favorite=%s",
        user.id, tmdb_type, tmdb_id, is_favorite,
    )
    return is_favorite


def get_list_item(db: Session, user: User, item_id: int) -> MovieListItem:
    item = db.query(MovieListItem).filter(MovieListItem.id == item_id).first()
    if item is None:
        raise ListItemNotFoundError(f"List item {item_id} not found")
    if item.movie_list.user_id != user.id:
        raise NotListOwnerError("You cannot modify another user's list")
    return item


def remove_item(db: Session, user: User, item_id: int) -> MovieList:
    """Remove one item. Returns the list it was removed from."""
    item = get_list_item(db, user, item_id)
    movie_list = item.movie_list
    db.delete(item)
    db.commit()
    logger.info("Item removed from list user_id=%s list_id=%s item_id=%s", user.id, movie_list.id, item_id)
    return movie_list


# ── List page ─────────────────────────────────────────────────────────────────

async def fetch_details_batch(kind: str, ids: list[int]) -> dict[str, dict]:
    """TMDb details for many ids of one kind, cached as a batch."""
    if not ids:
        return {}
    key = f"batch_{kind}_{hash_key(*ids)}"
    return await cache.get_or_set(
        key,
        TTL_LIST_DETAILS,
        lambda: get_tmdb_client().details_many(kind, ids),
        cache_empty=False,
    )


async def show_list(db: Session, user: User, list_id: int) -> tuple[MovieList, list[dict]]:
    """
    The list plus TMDb details for each of its titles, newest first.

    Titles TMDb no longer knows are skipped.
    """
    movie_list = get_user_list(db, user, list_id)
    items = list(movie_list.items)
    if not items:
        return movie_list, []

    by_key = {f"{item.tmdb_type}_{item.tmdb_id}": item for item in items}
    details: dict[str, dict] = {}
    for kind in VALID_TMDB_TYPES:
        ids = [item.tmdb_id for item in items if item.tmdb_type == kind]
        details.update(await fetch_details_batch(kind, ids))

    enriched = []
    for key, item in by_key.items():
        detail = details.get(key)
        if not detail:
            continue
        enriched.append({
            **detail,
            "list_item_id": item.id,
            "is_series": item.tmdb_type == "tv",
            "added_at": item.added_at,
        })

    enriched.sort(key=lambda d: (d["added_at"], d["list_item_id"]), reverse=True)
    return movie_list, enriched


# ── Maintenance (CLI) ─────────────────────────────────────────────────────────

def create_treasure_lists(db: Session) -> int:
    """Give every user lacking one a "La Carte aux Trésors" list."""
    owners = {
        user_id
        for (user_id,) in db.query(MovieList.user_id).filter(MovieList.name == TREASURE_LIST_NAME).all()
    }
    count = 0
    for user in db.query(User).order_by(User.id).all():
        if user.id in owners:
            continue
        db.add(MovieList(user_id=user.id, name=TREASURE_LIST_NAME, is_system=True))
        count += 1
    db.commit()
    logger.info("Created %d treasure lists", count)
    return count


def migrate_favorites(db: Session) -> int:
    """Rename legacy "Favoris" lists to "Mon Panthéon"."""
    lists = db.query(MovieList).filter(MovieList.name == LEGACY_FAVORITES_LIST_NAME).all()
    for movie_list in lists:
        movie_list.name = FAVORITES_LIST_NAME
        movie_list.is_system = True
    db.commit()
    logger.info("Migrated %d favourites lists", len(lists))
    return len(lists)
