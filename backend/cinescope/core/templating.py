"""
Jinja2 rendering helpers shared by every HTML route.

``render`` injects the navigation genre menu, the current user, pending
flash messages and a ``csrf_token(intent)`` function into each template.
"""
from pathlib import Path
from typing import Any

from fastapi import Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from cinescope.core.security import csrf_token
from cinescope.schemas.quiz import DIFFICULTIES, THEMES
from cinescope.services.catalog_service import get_all_genres_menu
from cinescope.services.tmdb_client import poster_url

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
FLASH_SESSION_KEY = "_flashes"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals["poster_url"] = poster_url
templates.env.globals["quiz_themes"] = THEMES
templates.env.globals["quiz_difficulties"] = DIFFICULTIES


# ── Flash messages ────────────────────────────────────────────────────────────

def flash(request: Request, message: str, category: str = "success") -> None:
    """Queue a message for the next rendered page."""
    flashes = list(request.session.get(FLASH_SESSION_KEY, []))
    flashes.append({"category": category, "message": message})
    request.session[FLASH_SESSION_KEY] = flashes


def pop_flashes(request: Request) -> list[dict[str, str]]:
    return request.session.pop(FLASH_SESSION_KEY, [])


# ── Rendering ─────────────────────────────────────────────────────────────────

async def render(
    request: Request,
    template: str,
    context: dict[str, Any] | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    page = {
        "all_genres": await get_all_genres_menu(),
        "user": getattr(request.state, "user", None),
        "flashes": pop_flashes(request),
        "csrf_token": lambda intent: csrf_token(request.session, intent),
    }
    page.update(context or {})
    return templates.TemplateResponse(request, template, page, status_code=status_code)
