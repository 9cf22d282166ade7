"""
Password hashing, JWT session tokens and CSRF tokens.
Never import DB models here — keep this layer pure.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from cinescope.core.config import settings

# bcrypt context, auto-upgrades deprecated schemes
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

CSRF_SESSION_KEY = "_csrf_tokens"


# ── Password helpers ──────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a bcrypt hash of *plain*."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if *plain* matches the stored *hashed* value."""
    return pwd_context.verify(plain, hashed)


# ── JWT helpers ───────────────────────────────────────────────────────────────

def create_access_token(
    subject: Any,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT whose ``sub`` claim is *subject* (the user id).

    The token is stored in an HttpOnly cookie by the login route.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta
        or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(subject), "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> str | None:
    """
    Decode a JWT and return the *sub* claim.
    Returns None on any error (expired, tampered, malformed).
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
        return payload.get("sub")
    except JWTError:
        return None


# ── CSRF helpers ──────────────────────────────────────────────────────────────
# Tokens are per intent ("delete-list42", "quiz-form", ...) and live in the signed
# session cookie, so a form rendered on one page cannot be replayed for another.

def csrf_token(session: dict, intent: str) -> str:
    """Return the session's token for *intent*, minting one on first use."""
    tokens = session.setdefault(CSRF_SESSION_KEY, {})
    token = tokens.get(intent)
    if token is None:
        token = secrets.token_urlsafe(24)
        tokens[intent] = token
        # Reassign so the session middleware notices the nested change.
        session[CSRF_SESSION_KEY] = tokens
    return token


def is_csrf_token_valid(session: dict, intent: str, token: str | None) -> bool:
    expected = session.get(CSRF_SESSION_KEY, {}).get(intent)
    if not expected or not token:
        return False
    return secrets.compare_digest(expected, token)


def delete_intent(resource: str, object_id: int) -> str:
    """Intent for deleting one *resource* ("list", "item", "quiz"), e.g. "delete-list7"."""
    return f"delete-{resource}{object_id}"
