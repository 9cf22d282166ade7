"""
CineScope — FastAPI application entry point.

Routers are registered here. Each page group lives in cinescope/api/.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from cinescope.api import admin_quiz, auth, catalog, content, movie_lists, quiz, recommendations, showtimes
from cinescope.core.config import settings
from cinescope.core.logging import configure_logging
from cinescope.core.templating import render

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="CineScope",
    description="Movie and TV discovery, watchlists and cinema quizzes.",
    version="1.0.0",
    docs_url="/docs" if settings.is_dev else None,
    redoc_url=None,
)

# ── Sessions (flash messages, CSRF tokens) ────────────────────────────────────
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    same_site="lax",
    https_only=not settings.is_dev,
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(catalog.router,         tags=["catalog"])
app.include_router(content.router,         tags=["content"])
app.include_router(recommendations.router, tags=["recommendations"])
app.include_router(auth.router,            tags=["auth"])
app.include_router(showtimes.router,   prefix="/api/showtimes", tags=["showtimes"])
app.include_router(movie_lists.router, prefix="/mes-listes",    tags=["movie-lists"])
app.include_router(quiz.router,        prefix="/quiz",          tags=["quiz"])
app.include_router(admin_quiz.router,  prefix="/admin/quiz",    tags=["admin"])


# ── Error pages ───────────────────────────────────────────────────────────────

def wants_json(request: Request) -> bool:
    """JSON for /api/* and for callers that ask for it (fetch() from list buttons)."""
    if request.url.path.startswith("/api/"):
        return True
    accept = request.headers.get("accept", "")
    return "application/json" in accept and "text/html" not in accept


def _error_message(detail: object) -> str:
    if isinstance(detail, dict) and isinstance(detail.get("error"), dict):
        return str(detail["error"].get("message", ""))
    return str(detail or "")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if wants_json(request):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)

    if exc.status_code >= 500:
        logger.error("Page failed path=%s status=%s detail=%s", request.url.path, exc.status_code, exc.detail)

    return await render(
        request,
        "error.html",
        {"status_code": exc.status_code, "message": _error_message(exc.detail)},
        status_code=exc.status_code,
    )


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
def health_check() -> dict:
    """Liveness probe. Returns 200 when the server is up."""
    return {"status": "ok", "env": settings.APP_ENV}
