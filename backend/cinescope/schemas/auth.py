"""
Auth form payloads.
"""
from pydantic import BaseModel, EmailStr, field_validator, model_validator

MIN_PASSWORD_LENGTH = 8


class RegisterForm(BaseModel):
    """Payload of the /register form."""

    email: EmailStr
    password: str
    password_confirm: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterForm":
        if self.password != self.password_confirm:
            raise ValueError("Passwords do not match")
        return self
