"""
SQLAlchemy ORM models.

Column names and constraints match alembic/versions/0001_initial_schema.py.
Only portable types are used (JSON rather than JSONB) so the service tests
can run against an in-memory SQLite database.

Watchlists never copy TMDb metadata: an item is just (tmdb_id, tmdb_type);
details are fetched live and cached when a list is displayed.
"""
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


# ── Base ──────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Enums ─────────────────────────────────────────────────────────────────────

class TmdbTypeEnum(str, PyEnum):
    MOVIE = "movie"
    TV = "tv"


# ── System list names ─────────────────────────────────────────────────────────

FAVORITES_LIST_NAME = "Mon Panthéon"
TREASURE_LIST_NAME = "La Carte aux Trésors"
LEGACY_FAVORITES_LIST_NAME = "Favoris"
SYSTEM_LIST_NAMES = (FAVORITES_LIST_NAME, TREASURE_LIST_NAME)


# ── Timestamp helper ──────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Models ────────────────────────────────────────────────────────────────────

class User(Base):
    """
    Application user. The email address is the login identifier and is
    stored lower-cased.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(180), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Relationships
    movie_lists = relationship(
        "MovieList",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="MovieList.created_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"


class MovieList(Base):
    """
    A named, user-owned collection of TMDb titles.

    is_system marks the two lists every account gets on signup; those can be
    filled and emptied but not deleted.
    """
    __tablename__ = "movie_lists"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="movie_lists")
    items = relationship(
        "MovieListItem",
        back_populates="movie_list",
        cascade="all, delete-orphan",
        order_by="MovieListItem.added_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<MovieList id={self.id} name={self.name!r} system={self.is_system}>"


class MovieListItem(Base):
    """A reference to one TMDb movie or TV show inside a MovieList."""
    __tablename__ = "movie_list_items"

    id = Column(Integer, primary_key=True)
    movie_list_id = Column(
        Integer,
        ForeignKey("movie_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tmdb_id = Column(Integer, nullable=False)
    tmdb_type = Column(String(20), nullable=False)
    poster_path = Column(String(255), nullable=True)
    added_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        # A title appears at most once per list
        UniqueConstraint("movie_list_id", "tmdb_id", "tmdb_type", name="uq_list_tmdb_item"),
        CheckConstraint("tmdb_type IN ('movie', 'tv')", name="chk_tmdb_type"),
        Index("idx_movie_list_items_tmdb", "tmdb_type", "tmdb_id"),
    )

    # Relationships
    movie_list = relationship("MovieList", back_populates="items")

    def __repr__(self) -> str:
        return f"<MovieListItem list={self.movie_list_id} {self.tmdb_type}/{self.tmdb_id}>"


class Quiz(Base):
    """A cinema quiz; questions are ordered by insertion."""
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    theme = Column(String(100), nullable=False)
    difficulty = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    # Relationships
    questions = relationship(
        "Question",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="Question.id",
    )
    results = relationship(
        "QuizResult",
        back_populates="quiz",
        cascade="all, delete-orphan",
    )

    @property
    def play_count(self) -> int:
        return len(self.results)

    @property
    def average_score(self) -> float:
        if not self.results:
            return 0.0
        total = sum(result.score for result in self.results)
        return round(total / len(self.results), 2)

    def __repr__(self) -> str:
        return f"<Quiz id={self.id} title={self.title!r}>"


class Question(Base):
    """One multiple-choice question. choices is a JSON list of 4 strings."""
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True)
    quiz_id = Column(
        Integer,
        ForeignKey("quizzes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(String(500), nullable=False)
    choices = Column(JSON, nullable=False, default=list)
    correct_answer = Column(String(255), nullable=False)
    explanation = Column(String(1000), nullable=True)

    # Relationships
    quiz = relationship("Quiz", back_populates="questions")

    def __repr__(self) -> str:
        return f"<Question id={self.id} quiz={self.quiz_id}>"


class QuizResult(Base):
    """
    One completed play of a quiz. user_id is NULL for anonymous players and
    is nulled when the account is deleted.
    """
    __tablename__ = "quiz_results"

    id = Column(Integer, primary_key=True)
    quiz_id = Column(
        Integer,
        ForeignKey("quizzes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    score = Column(Integer, default=0, nullable=False)
    reward = Column(String(100), nullable=True)
    completed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("score >= 0", name="chk_quiz_score_positive"),
    )

    # Relationships
    quiz = relationship("Quiz", back_populates="results")
    user = relationship("User")

    @property
    def percentage(self) -> float:
        if self.quiz is None:
            return 0.0
        total = len(self.quiz.questions)
        if total == 0:
            return 0.0
        return round(self.score / total * 100, 2)

    @property
    def is_perfect(self) -> bool:
        if self.quiz is None:
            return False
        return self.score == len(self.quiz.questions)

    def __repr__(self) -> str:
        return f"<QuizResult quiz={self.quiz_id} user={self.user_id} score={self.score}>"
