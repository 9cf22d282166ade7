"""
Auth dependencies — shared across all protected endpoints.

The JWT lives in an HttpOnly cookie (settings.AUTH_COOKIE_NAME) so plain
server-rendered pages and the JSON endpoints share one session.

Usage in any route:
    from cinescope.deps.auth import get_current_user
    from cinescope.db.models import User

    @router.get("/protected")
    def protected(user: User = Depends(get_current_user)):
        ...
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from cinescope.core.config import settings
from cinescope.core.security import decode_access_token
from cinescope.db.models import User
from cinescope.db.session import get_db


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User | None:
    """
    Return the logged-in active User, or None for anonymous visitors.

    The user is also stored on ``request.state`` so templates can show it.
    """
    request.state.user = None
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if not token:
        return None

    sub = decode_access_token(token)
    if sub is None or not sub.isdigit():
        return None

    user = db.query(User).filter(User.id == int(sub)).first()
    if user is None or not user.is_active:
        return None

    request.state.user = user
    return user


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    """
    Require a logged-in user.

    Raises 401; the app-level handler turns it into a redirect to /login for
    HTML pages.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require an admin account (403 otherwise)."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
