"""
Auth business logic — registration, login, token issuance, admin promotion.

All DB writes go through this layer (not directly in routes).
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cinescope.core.security import create_access_token, hash_password, verify_password
from cinescope.db.models import User
from cinescope.services.movie_list_service import ensure_system_lists

logger = logging.getLogger(__name__)


# ── Custom exceptions ────────────────────────────────────────────────────────


class DuplicateUserError(Exception):
    """Raised when registration conflicts with an existing email."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"A user with email {email!r} already exists")


class UserNotFoundError(Exception):
    """Raised when an email does not match any account."""


# ── Service functions ────────────────────────────────────────────────────────


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def create_user(db: Session, email: str, password: str) -> User:
    """
    Register a new user together with both system lists.

    - Normalises email (lowercase strip).
    - Hashes the password with bcrypt.
    - Raises DuplicateUserError on unique-constraint violation.
    """
    normalised_email = normalize_email(email)
    if get_user_by_email(db, normalised_email) is not None:
        raise DuplicateUserError(normalised_email)

    user = User(email=normalised_email, password_hash=hash_password(password))
    db.add(user)

    try:
        db.flush()  # trigger INSERT; raises on duplicate
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateUserError(normalised_email) from exc

    ensure_system_lists(db, user)
    db.commit()
    db.refresh(user)
    logger.info("User registered user_id=%s", user.id)
    return user


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    """Verify credentials and return the active User, or None on failure."""
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    return user


def issue_access_token(user: User) -> str:
    """Create a signed JWT with the user's ID as the subject claim."""
    return create_access_token(subject=str(user.id))


def promote_admin(db: Session, email: str) -> bool:
    """
    Grant admin rights to an existing account.

    Returns False when the user already was an admin.

    Raises:
        UserNotFoundError: no account with that email.
    """
    user = get_user_by_email(db, email)
    if user is None:
        raise UserNotFoundError(f"No user with email {normalize_email(email)!r}")
    if user.is_admin:
        return False
    user.is_admin = True
    db.commit()
    logger.info("User promoted to admin user_id=%s", user.id)
    return True
