"""
Quiz admin — /admin/quiz
────────────────────────
Admin-only editor and statistics.

Endpoints:
  GET  /admin/quiz                      — All quizzes
  GET  /admin/quiz/nouveau              — New quiz form
  POST /admin/quiz/nouveau              — Create a quiz
  GET  /admin/quiz/stats                — Global dashboard
  GET  /admin/quiz/stats/{quiz_id}      — Per-quiz stats (score distribution)
  GET  /admin/quiz/{quiz_id}/modifier   — Edit form
  POST /admin/quiz/{quiz_id}/modifier   — Save changes
  POST /admin/quiz/{quiz_id}/supprimer  — Delete
  POST /admin/quiz/{quiz_id}/dupliquer  — Duplicate, then open the copy's editor
  GET  /admin/quiz/{quiz_id}/apercu     — Preview with the player template

Question rows are posted as ``questions-<n>-text``, ``questions-<n>-choices``,
``questions-<n>-correct_answer`` and ``questions-<n>-explanation``.
"""
import re
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from cinescope.core.security import delete_intent, is_csrf_token_valid
from cinescope.core.templating import flash, render
from cinescope.db.models import Quiz
from cinescope.db.session import get_db
from cinescope.deps.auth import require_admin
from cinescope.schemas.quiz import DIFFICULTIES, THEMES, QuizPayload
from cinescope.services.quiz_service import (
    QuizNotFoundError,
    create_quiz,
    delete_quiz,
    duplicate_quiz,
    get_quiz,
    list_all_quizzes,
    stats_dashboard,
    stats_detail,
    update_quiz,
)

router = APIRouter(dependencies=[Depends(require_admin)])

QUIZ_FORM_INTENT = "quiz-form"
_QUESTION_FIELD = re.compile(r"^questions-(\d+)-(text|choices|correct_answer|explanation)$")


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


def _get_quiz_or_404(db: Session, quiz_id: int) -> Quiz:
    try:
        return get_quiz(db, quiz_id)
    except QuizNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("QUIZ_NOT_FOUND", "Quiz introuvable"),
        ) from exc


def form_to_quiz_data(form: Any) -> dict:
    """Turn the flat editor form into the nested QuizPayload input."""
    rows: dict[int, dict[str, str]] = {}
    for key, value in form.items():
        match = _QUESTION_FIELD.match(key)
        if match:
            rows.setdefault(int(match.group(1)), {})[match.group(2)] = value

    return {
        "title": form.get("title", ""),
        "theme": form.get("theme", ""),
        "difficulty": form.get("difficulty", ""),
        "is_active": form.get("is_active") in ("1", "on", "true"),
        "questions": [
            {
                "text": row.get("text", ""),
                "choices": row.get("choices", ""),
                "correct_answer": row.get("correct_answer", ""),
                "explanation": row.get("explanation"),
            }
            for _, row in sorted(rows.items())
            if any((v or "").strip() for v in row.values())
        ],
    }


def quiz_to_form_data(quiz: Quiz) -> dict:
    return {
        "title": quiz.title,
        "theme": quiz.theme,
        "difficulty": quiz.difficulty,
        "is_active": quiz.is_active,
        "questions": [
            {
                "text": q.text,
                "choices": ", ".join(q.choices or []),
                "correct_answer": q.correct_answer,
                "explanation": q.explanation or "",
            }
            for q in quiz.questions
        ],
    }


def _validation_messages(exc: ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        messages.append(f"{location}: {err['msg']}" if location else err["msg"])
    return messages


async def _render_form(
    request: Request,
    form_data: dict,
    quiz: Quiz | None,
    errors: list[str] | None = None,
    status_code: int = status.HTTP_200_OK,
) -> HTMLResponse:
    return await render(
        request,
        "admin/quiz_form.html",
        {
            "form": form_data,
            "quiz": quiz,
            "is_edit": quiz is not None,
            "errors": errors or [],
            "themes": THEMES,
            "difficulties": DIFFICULTIES,
        },
        status_code=status_code,
    )


async def _parse_submission(request: Request) -> tuple[dict, QuizPayload | None, list[str]]:
    form = await request.form()
    data = form_to_quiz_data(form)
    if not is_csrf_token_valid(request.session, QUIZ_FORM_INTENT, form.get("_token")):
        return data, None, ["Token de sécurité invalide."]
    try:
        return data, QuizPayload(**data), []
    except ValidationError as exc:
        return data, None, _validation_messages(exc)


# ── Editor ────────────────────────────────────────────────────────────────────

@router.get("", response_class=HTMLResponse)
async def admin_index(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    return await render(request, "admin/quiz_index.html", {"quizzes": list_all_quizzes(db)})


@router.get("/nouveau", response_class=HTMLResponse)
async def new_quiz_form(request: Request) -> HTMLResponse:
    empty = {"title": "", "theme": "culture", "difficulty": "facile", "is_active": True, "questions": []}
    return await _render_form(request, empty, None)


@router.post("/nouveau", response_class=HTMLResponse, response_model=None)
async def create_quiz_submit(
    request: Request,
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    data, payload, errors = await _parse_submission(request)
    if payload is None:
        return await _render_form(request, data, None, errors, status.HTTP_400_BAD_REQUEST)

    create_quiz(db, payload)
    flash(request, "🎉 Quiz créé avec succès !")
    return _redirect("/admin/quiz")


# ── Stats ─────────────────────────────────────────────────────────────────────

@router.get("/stats", response_class=HTMLResponse)
async def stats_page(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    return await render(request, "admin/quiz_stats.html", stats_dashboard(db))


@router.get("/stats/{quiz_id}", response_class=HTMLResponse)
async def stats_detail_page(request: Request, quiz_id: int, db: Session = Depends(get_db)) -> HTMLResponse:
    try:
        stats = stats_detail(db, quiz_id)
    except QuizNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("QUIZ_NOT_FOUND", "Quiz introuvable"),
        ) from exc
    return await render(request, "admin/quiz_stats_detail.html", stats)


# ── Single quiz ───────────────────────────────────────────────────────────────

@router.get("/{quiz_id}/modifier", response_class=HTMLResponse)
async def edit_quiz_form(request: Request, quiz_id: int, db: Session = Depends(get_db)) -> HTMLResponse:
    quiz = _get_quiz_or_404(db, quiz_id)
    return await _render_form(request, quiz_to_form_data(quiz), quiz)


@router.post("/{quiz_id}/modifier", response_class=HTMLResponse, response_model=None)
async def edit_quiz_submit(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    quiz = _get_quiz_or_404(db, quiz_id)
    data, payload, errors = await _parse_submission(request)
    if payload is None:
        return await _render_form(request, data, quiz, errors, status.HTTP_400_BAD_REQUEST)

    update_quiz(db, quiz_id, payload)
    flash(request, "✅ Quiz modifié avec succès !")
    return _redirect("/admin/quiz")


@router.post("/{quiz_id}/supprimer", response_model=None)
async def delete_quiz_submit(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
) -> RedirectResponse:
    _get_quiz_or_404(db, quiz_id)
    form = await request.form()
    if is_csrf_token_valid(request.session, delete_intent("quiz", quiz_id), form.get("_token")):
        delete_quiz(db, quiz_id)
        flash(request, "🗑️ Quiz supprimé avec succès !")
    else:
        flash(request, "Token de sécurité invalide.", "error")
    return _redirect("/admin/quiz")


@router.post("/{quiz_id}/dupliquer", response_model=None)
async def duplicate_quiz_submit(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
) -> RedirectResponse:
    _get_quiz_or_404(db, quiz_id)
    form = await request.form()
    if not is_csrf_token_valid(request.session, f"duplicate{quiz_id}", form.get("_token")):
        flash(request, "Token de sécurité invalide.", "error")
        return _redirect("/admin/quiz")

    copy = duplicate_quiz(db, quiz_id)
    flash(request, "📋 Quiz dupliqué avec succès !")
    return _redirect(f"/admin/quiz/{copy.id}/modifier")


@router.get("/{quiz_id}/apercu", response_class=HTMLResponse)
async def preview_quiz(request: Request, quiz_id: int, db: Session = Depends(get_db)) -> HTMLResponse:
    quiz = _get_quiz_or_404(db, quiz_id)
    return await render(
        request,
        "quiz/play.html",
        {"quiz": quiz, "questions": quiz.questions, "is_preview": True},
    )
