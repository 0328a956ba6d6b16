from enum import Enum
from pydantic import BaseModel, EmailStr, Field, field_validator
from core.config import settings


class ProjectView(str, Enum):
    GRID = "grid"
    LIST = "list"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class Profile(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    avatar: str | None = Field(default=None, max_length=512)
    bio: str | None = Field(default=None, max_length=500)


class Preferences(BaseModel):
    default_project_view: ProjectView = ProjectView.GRID
    theme: Theme = Theme.LIGHT


class PreferencesUpdate(BaseModel):
    default_project_view: ProjectView | None = None
    theme: Theme | None = None


class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_-]+$")
    password: str
    profile: Profile = Field(default_factory=Profile)
    preferences: Preferences = Field(default_factory=Preferences)

    @field_validator("email", "username", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def _password_policy(cls, value: str) -> str:
        if len(value) < settings.MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long")
        return value


class UserUpdate(BaseModel):
    """Only display fields; email and username are fixed once registered."""
    profile: Profile | None = None
    preferences: PreferencesUpdate | None = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password_policy(cls, value: str) -> str:
        if len(value) < settings.MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long")
        return value
