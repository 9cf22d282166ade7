"""
Auth pages
──────────
Endpoints:
  GET  /login     — Login form
  POST /login     — Authenticate, set the JWT cookie, redirect home
  GET  /register  — Registration form
  POST /register  — Create account (with both system lists), then log in
  GET  /logout    — Clear the JWT cookie
"""
import logging

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from cinescope.core.config import settings
from cinescope.core.templating import flash, render
from cinescope.db.models import User
from cinescope.db.session import get_db
from cinescope.deps.auth import get_optional_user
from cinescope.schemas.auth import RegisterForm
from cinescope.services.auth_service import (
    DuplicateUserError,
    authenticate_user,
    create_user,
    issue_access_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _login_redirect(user: User, url: str = "/") -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        issue_access_token(user),
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=not settings.is_dev,
    )
    return response


# ── Login ─────────────────────────────────────────────────────────────────────

@router.get("/login", response_class=HTMLResponse, response_model=None)
async def login_form(
    request: Request,
    current_user: User | None = Depends(get_optional_user),
) -> HTMLResponse | RedirectResponse:
    if current_user is not None:
        return RedirectResponse(url="/", status_code=status.HTTP_303_SEE_OTHER)
    return await render(request, "auth/login.html", {"error": None, "email": ""})


@router.post("/login", response_class=HTMLResponse, response_model=None)
async def login_submit(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    user = authenticate_user(db, email=email, password=password)
    if user is None:
        return await render(
            request,
            "auth/login.html",
            {"error": "Identifiants invalides.", "email": email},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    logger.info("User logged in user_id=%s", user.id)
    return _login_redirect(user)


# ── Registration ──────────────────────────────────────────────────────────────

@router.get("/register", response_class=HTMLResponse)
async def register_form(
    request: Request,
    current_user: User | None = Depends(get_optional_user),
) -> HTMLResponse:
    return await render(request, "auth/register.html", {"errors": [], "email": ""})


@router.post("/register", response_class=HTMLResponse, response_model=None)
async def register_submit(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    password_confirm: str = Form(default=""),
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    try:
        form = RegisterForm(email=email, password=password, password_confirm=password_confirm)
    except ValidationError as exc:
        errors = [err["msg"].removeprefix("Value error, ") for err in exc.errors()]
        return await render(
            request,
            "auth/register.html",
            {"errors": errors, "email": email},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        user = create_user(db, email=form.email, password=form.password)
    except DuplicateUserError:
        return await render(
            request,
            "auth/register.html",
            {"errors": ["Un compte existe déjà avec cet email."], "email": email},
            status_code=status.HTTP_409_CONFLICT,
        )

    flash(request, "Bienvenue ! Votre compte a été créé.")
    return _login_redirect(user)


@router.get("/logout")
def logout() -> RedirectResponse:
    response = RedirectResponse(url="/", status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return response
