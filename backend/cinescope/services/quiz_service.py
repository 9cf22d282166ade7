"""
Quiz business logic — playing, grading, rewards and the admin editor/stats.
"""
import logging
from collections.abc import Mapping

from sqlalchemy.orm import Session, selectinload

from cinescope.db.models import Question, Quiz, QuizResult, User
from cinescope.schemas.quiz import QuizPayload

logger = logging.getLogger(__name__)

REWARD_PERFECT = "🏆 Maître du 7e Art"
REWARD_EXPERT = "🎬 Cinéphile expert"
REWARD_FAN = "🍿 Fan du dimanche"
REWARD_DISTRACTED = "🎞️ Spectateur distrait"

EXPERT_THRESHOLD = 80
FAN_THRESHOLD = 50
DISTRIBUTION_MAX_SCORE = 10
COPY_SUFFIX = " (Copie)"


class QuizNotFoundError(Exception):
    """Raised when a quiz id does not exist."""


class QuizInactiveError(Exception):
    """Raised when playing a quiz that is switched off."""


# ── Grading ───────────────────────────────────────────────────────────────────

def answer_field(question: Question) -> str:
    """Form field name carrying the answer to *question*."""
    return f"question_{question.id}"


def grade_submission(quiz: Quiz, answers: Mapping[str, str]) -> int:
    """One point per answer that exactly matches the correct answer."""
    return sum(
        1
        for question in quiz.questions
        if answers.get(answer_field(question), "") == question.correct_answer
    )


def reward_for_score(score: int, total: int) -> str:
    """
    Reward tier by percentage of correct answers:
      100%  → Maître du 7e Art
      ≥ 80% → Cinéphile expert
      ≥ 50% → Fan du dimanche
      else  → Spectateur distrait (also when the quiz has no questions)
    """
    if total <= 0:
        return REWARD_DISTRACTED
    percentage = score / total * 100
    if score >= total:
        return REWARD_PERFECT
    if percentage >= EXPERT_THRESHOLD:
        return REWARD_EXPERT
    if percentage >= FAN_THRESHOLD:
        return REWARD_FAN
    return REWARD_DISTRACTED


# ── Player side ───────────────────────────────────────────────────────────────

def list_active_quizzes(db: Session) -> list[Quiz]:
    return (
        db.query(Quiz)
        .filter(Quiz.is_active.is_(True))
        .order_by(Quiz.created_at.desc(), Quiz.id.desc())
        .all()
    )


def get_quiz(db: Session, quiz_id: int) -> Quiz:
    quiz = (
        db.query(Quiz)
        .options(selectinload(Quiz.questions), selectinload(Quiz.results))
        .filter(Quiz.id == quiz_id)
        .first()
    )
    if quiz is None:
        raise QuizNotFoundError(f"Quiz {quiz_id} not found")
    return quiz


def get_playable_quiz(db: Session, quiz_id: int) -> Quiz:
    quiz = get_quiz(db, quiz_id)
    if not quiz.is_active:
        raise QuizInactiveError(f"Quiz {quiz_id} is not active")
    return quiz


def submit_quiz(
    db: Session,
    quiz: Quiz,
    answers: Mapping[str, str],
    user: User | None = None,
) -> QuizResult:
    """Grade *answers* and persist the result (anonymous when *user* is None)."""
    score = grade_submission(quiz, answers)
    result = QuizResult(
        quiz=quiz,
        user_id=user.id if user else None,
        score=score,
        reward=reward_for_score(score, len(quiz.questions)),
    )
    db.add(result)
    db.commit()
    db.refresh(result)
    logger.info(
        "Quiz submitted quiz_id=%s user_id=%s score=%s/%s",
        quiz.id, result.user_id, score, len(quiz.questions),
    )
    return result


def user_results_summary(db: Session, user: User) -> dict:
    """The user's plays, newest first, with totals for the header cards."""
    results = (
        db.query(QuizResult)
        .options(selectinload(QuizResult.quiz).selectinload(Quiz.questions))
        .filter(QuizResult.user_id == user.id)
        .order_by(QuizResult.completed_at.desc(), QuizResult.id.desc())
        .all()
    )
    total_plays = len(results)
    total_score = sum(r.score for r in results)
    return {
        "results": results,
        "total_plays": total_plays,
        "average_score": round(total_score / total_plays, 2) if total_plays else 0,
        "perfect_scores": sum(1 for r in results if r.is_perfect),
    }


# ── Admin editor ──────────────────────────────────────────────────────────────

def list_all_quizzes(db: Session) -> list[Quiz]:
    return db.query(Quiz).order_by(Quiz.created_at.desc(), Quiz.id.desc()).all()


def _questions_from_payload(payload: QuizPayload) -> list[Question]:
    return [
        Question(
            text=q.text,
            choices=list(q.choices),
            correct_answer=q.correct_answer,
            explanation=q.explanation,
        )
        for q in payload.questions
    ]


def create_quiz(db: Session, payload: QuizPayload) -> Quiz:
    quiz = Quiz(
        title=payload.title,
        theme=payload.theme,
        difficulty=payload.difficulty,
        is_active=payload.is_active,
    )
    quiz.questions = _questions_from_payload(payload)
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    logger.info("Quiz created quiz_id=%s questions=%d", quiz.id, len(quiz.questions))
    return quiz


def update_quiz(db: Session, quiz_id: int, payload: QuizPayload) -> Quiz:
    """Replace the quiz fields and its whole question set."""
    quiz = get_quiz(db, quiz_id)
    quiz.title = payload.title
    quiz.theme = payload.theme
    quiz.difficulty = payload.difficulty
    quiz.is_active = payload.is_active
    quiz.questions = _questions_from_payload(payload)
    db.commit()
    db.refresh(quiz)
    logger.info("Quiz updated quiz_id=%s questions=%d", quiz.id, len(quiz.questions))
    return quiz


def delete_quiz(db: Session, quiz_id: int) -> None:
    quiz = get_quiz(db, quiz_id)
    db.delete(quiz)
    db.commit()
    logger.info("Quiz deleted quiz_id=%s", quiz_id)


def duplicate_quiz(db: Session, quiz_id: int) -> Quiz:
    """Copy a quiz and its questions; plays are not copied."""
    original = get_quiz(db, quiz_id)
    copy = Quiz(
        title=f"{original.title}{COPY_SUFFIX}"[:255],
        theme=original.theme,
        difficulty=original.difficulty,
        is_active=original.is_active,
    )
    copy.questions = [
        Question(
            text=q.text,
            choices=list(q.choices or []),
            correct_answer=q.correct_answer,
            explanation=q.explanation,
        )
        for q in original.questions
    ]
    db.add(copy)
    db.commit()
    db.refresh(copy)
    logger.info("Quiz duplicated source_id=%s copy_id=%s", quiz_id, copy.id)
    return copy


# ── Admin stats ───────────────────────────────────────────────────────────────

def stats_dashboard(db: Session) -> dict:
    """
    Global numbers for the stats page.

    The hardest quiz is the played quiz with the lowest average score.
    """
    quizzes = db.query(Quiz).options(selectinload(Quiz.results)).order_by(Quiz.id).all()
    all_scores = [r.score for quiz in quizzes for r in quiz.results]
    total_plays = len(all_scores)

    popular = None
    for quiz in quizzes:
        if quiz.play_count > 0 and (popular is None or quiz.play_count > popular.play_count):
            popular = quiz

    hardest = None
    for quiz in quizzes:
        if quiz.play_count > 0 and (hardest is None or quiz.average_score < hardest.average_score):
            hardest = quiz

    quiz_stats = [
        {"quiz": quiz, "plays": quiz.play_count, "avg_score": quiz.average_score}
        for quiz in quizzes
    ]
    quiz_stats.sort(key=lambda s: s["plays"], reverse=True)

    return {
        "total_quizzes": len(quizzes),
        "total_plays": total_plays,
        "average_score": round(sum(all_scores) / total_plays, 2) if total_plays else 0,
        "popular_quiz": popular,
        "hardest_quiz": hardest,
        "quiz_stats": quiz_stats,
    }


def stats_detail(db: Session, quiz_id: int) -> dict:
    """
    Per-quiz stats with a score histogram.

    Buckets run from 0 to 10, or to the question count for longer quizzes.
    """
    quiz = get_quiz(db, quiz_id)
    max_score = max(DISTRIBUTION_MAX_SCORE, len(quiz.questions))
    distribution = [0] * (max_score + 1)
    for result in quiz.results:
        distribution[min(result.score, max_score)] += 1
    return {
        "quiz": quiz,
        "total_plays": quiz.play_count,
        "average_score": quiz.average_score,
        "score_distribution": distribution,
    }
