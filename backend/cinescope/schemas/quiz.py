"""
Quiz form payloads for the admin editor, with theme and difficulty labels.
"""
from pydantic import BaseModel, Field, field_validator, model_validator

THEMES: dict[str, str] = {
    "action": "Films d'Action",
    "comedie": "Comédies",
    "scifi": "Science-Fiction",
    "horreur": "Films d'Horreur",
    "classiques": "Classiques",
    "series": "Séries TV",
    "realisateurs": "Réalisateurs",
    "acteurs": "Acteurs & Actrices",
    "francais": "Cinéma Français",
    "culture": "Culture Générale",
}

DIFFICULTIES: dict[str, str] = {
    "facile": "🌱 Facile",
    "moyen": "⚡ Moyen",
    "difficile": "🔥 Difficile",
    "expert": "💀 Expert",
}

CHOICES_PER_QUESTION = 4


def split_choices(raw: str) -> list[str]:
    """Split the comma separated editor field, dropping blank entries."""
    return [part.strip() for part in raw.split(",") if part.strip()]


class QuestionPayload(BaseModel):
    """One question as typed into the editor; *choices* is comma separated."""

    text: str = Field(min_length=10, max_length=500)
    choices: list[str]
    correct_answer: str = Field(min_length=1, max_length=255)
    explanation: str | None = Field(default=None, max_length=1000)

    @field_validator("text", "correct_answer", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("explanation", mode="before")
    @classmethod
    def blank_explanation(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("choices", mode="before")
    @classmethod
    def parse_choices(cls, v: object) -> object:
        if isinstance(v, str):
            return split_choices(v)
        return v

    @field_validator("choices")
    @classmethod
    def validate_choice_count(cls, v: list[str]) -> list[str]:
        if len(v) != CHOICES_PER_QUESTION:
            raise ValueError(f"Exactly {CHOICES_PER_QUESTION} choices are required")
        return v

    @model_validator(mode="after")
    def answer_among_choices(self) -> "QuestionPayload":
        if self.correct_answer not in self.choices:
            raise ValueError("The correct answer must be one of the choices")
        return self


class QuizPayload(BaseModel):
    """Create/update payload for a quiz and its full question set."""

    title: str = Field(min_length=3, max_length=255)
    theme: str
    difficulty: str
    is_active: bool = True
    questions: list[QuestionPayload] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("theme")
    @classmethod
    def validate_theme(cls, v: str) -> str:
        if v not in THEMES:
            raise ValueError(f"Unknown theme {v!r}")
        return v

    @field_validator("difficulty")
    @classmethod
    def validate_difficulty(cls, v: str) -> str:
        if v not in DIFFICULTIES:
            raise ValueError(f"Unknown difficulty {v!r}")
        return v
