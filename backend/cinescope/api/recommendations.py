"""
Recommendations
───────────────
Endpoints:
  GET /recommandations                       — Personal picks from "Mon Panthéon"
  GET /api/recommendations/{kind}/{tmdb_id}  — Titles similar to one title (JSON)
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from cinescope.core.templating import render
from cinescope.db.models import User
from cinescope.db.session import get_db
from cinescope.deps.auth import get_current_user
from cinescope.schemas.recommendations import RecommendationsResponse
from cinescope.services.recommendation_service import (
    DEFAULT_LIMIT,
    recommend_for_content,
    recommend_for_user,
)
from cinescope.services.tmdb_client import CONTENT_KINDS

router = APIRouter()


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


@router.get("/recommandations", response_class=HTMLResponse)
async def personal_recommendations(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> HTMLResponse:
    results = await recommend_for_user(db, current_user)
    return await render(request, "content/recommendations.html", {"results": results})


@router.get("/api/recommendations/{kind}/{tmdb_id}", response_model=RecommendationsResponse)
async def content_recommendations(
    kind: str,
    tmdb_id: int,
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=20),
) -> dict:
    if kind not in CONTENT_KINDS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("UNKNOWN_CONTENT_KIND", f"Unknown content kind {kind!r}"),
        )
    results = await recommend_for_content(kind, tmdb_id, limit)
    return {"results": results, "count": len(results)}
