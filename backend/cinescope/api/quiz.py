"""
Quiz pages — /quiz
──────────────────
Endpoints:
  GET  /quiz                  — Active quizzes, newest first
  GET  /quiz/mes-resultats    — The logged-in user's plays and totals
  GET  /quiz/{quiz_id}/play   — Play a quiz
  POST /quiz/{quiz_id}/submit — Grade answers (fields "question_<id>") and store the result
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from cinescope.core.templating import flash, render
from cinescope.db.models import User
from cinescope.db.session import get_db
from cinescope.deps.auth import get_optional_user
from cinescope.services.quiz_service import (
    QuizInactiveError,
    QuizNotFoundError,
    get_playable_quiz,
    list_active_quizzes,
    submit_quiz,
    user_results_summary,
)

router = APIRouter()


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def _quiz_not_found(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=_error("QUIZ_NOT_FOUND", str(exc)),
    )


@router.get("", response_class=HTMLResponse)
async def quiz_index(
    request: Request,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> HTMLResponse:
    return await render(request, "quiz/index.html", {"quizzes": list_active_quizzes(db)})


@router.get("/mes-resultats", response_class=HTMLResponse, response_model=None)
async def my_results(
    request: Request,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    if current_user is None:
        flash(request, "Vous devez être connecté pour voir vos résultats.", "error")
        return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    return await render(request, "quiz/my_results.html", user_results_summary(db, current_user))


@router.get("/{quiz_id}/play", response_class=HTMLResponse, response_model=None)
async def play_quiz(
    request: Request,
    quiz_id: int,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    try:
        quiz = get_playable_quiz(db, quiz_id)
    except QuizNotFoundError as exc:
        raise _quiz_not_found(exc) from exc
    except QuizInactiveError:
        flash(request, "Ce quiz n'est pas disponible pour le moment.", "error")
        return RedirectResponse(url="/quiz", status_code=status.HTTP_303_SEE_OTHER)

    return await render(
        request,
        "quiz/play.html",
        {"quiz": quiz, "questions": quiz.questions, "is_preview": False},
    )


@router.post("/{quiz_id}/submit", response_class=HTMLResponse, response_model=None)
async def submit_answers(
    request: Request,
    quiz_id: int,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> HTMLResponse | RedirectResponse:
    try:
        quiz = get_playable_quiz(db, quiz_id)
    except QuizNotFoundError as exc:
        raise _quiz_not_found(exc) from exc
    except QuizInactiveError:
        flash(request, "Ce quiz n'est pas disponible pour le moment.", "error")
        return RedirectResponse(url="/quiz", status_code=status.HTTP_303_SEE_OTHER)

    form = await request.form()
    answers = {key: value for key, value in form.items() if isinstance(value, str)}
    result = submit_quiz(db, quiz, answers, current_user)

    return await render(
        request,
        "quiz/result.html",
        {
            "quiz": quiz,
            "score": result.score,
            "total_questions": len(quiz.questions),
            "reward": result.reward,
            "result": result,
        },
    )
