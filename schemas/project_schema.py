from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from models.base import utcnow
from schemas.common import non_blank


class Folder(BaseModel):
    """A folder entry as stored inside ``Project.folders``."""
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    parent_id: str | None = None
    script_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class FolderCreate(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    parent_id: str | None = None

    @field_validator("id", "name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class FolderUpdate(BaseModel):
    """Rename and/or re-parent. An explicit ``parent_id: None`` moves to the root."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    parent_id: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, value):
        return non_blank(value, "name")


class ProjectSettings(BaseModel):
    is_public: bool = False
    allow_collaboration: bool = False


class ProjectSettingsUpdate(BaseModel):
    is_public: bool | None = None
    allow_collaboration: bool | None = None


class ProjectCreate(BaseModel):
    title: str = Field(max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    folders: list[FolderCreate] = Field(default_factory=list)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)

    @field_validator("title")
    @classmethod
    def _title(cls, value):
        return non_blank(value, "title")

    @field_validator("description")
    @classmethod
    def _description(cls, value):
        return value.strip() if value is not None else value


class ProjectUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    settings: ProjectSettingsUpdate | None = None

    @field_validator("title")
    @classmethod
    def _title(cls, value):
        return non_blank(value, "title")

    @field_validator("description")
    @classmethod
    def _description(cls, value):
        return value.strip() if value is not None else value
