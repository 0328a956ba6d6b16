from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, PositiveInt, field_validator, model_validator
from schemas.common import non_blank


class ContentType(str, Enum):
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    GENERAL = "general"


class ScriptStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    FINAL = "final"
    PUBLISHED = "published"


MAX_TAGS = 20
MAX_TAG_LENGTH = 50


def normalise_tags(tags: list[str] | None) -> list[str] | None:
    """Strip and de-duplicate tags, keeping first-seen order."""
    if tags is None:
        return None
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if not tag:
            raise ValueError("tags must not be empty strings")
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"tags must be at most {MAX_TAG_LENGTH} characters")
        if tag not in seen:
            seen.append(tag)
    if len(seen) > MAX_TAGS:
        raise ValueError(f"at most {MAX_TAGS} tags are allowed")
    return seen


class ScriptMetadata(BaseModel):
    content_type: ContentType
    duration: PositiveInt | None = None
    tags: list[str] = Field(default_factory=list)
    status: ScriptStatus = ScriptStatus.DRAFT

    @field_validator("tags")
    @classmethod
    def _tags(cls, value):
        return normalise_tags(value)


class ScriptMetadataUpdate(BaseModel):
    content_type: ContentType | None = None
    duration: PositiveInt | None = None
    tags: list[str] | None = None
    status: ScriptStatus | None = None

    @field_validator("tags")
    @classmethod
    def _tags(cls, value):
        return normalise_tags(value)


class ScriptVersion(BaseModel):
    """Immutable snapshot stored in ``Script.versions``."""
    version: int = Field(ge=1)
    title: str
    content: str
    metadata: ScriptMetadata
    created_at: datetime


class ScriptCreate(BaseModel):
    project_id: str = Field(min_length=1)
    folder_id: str = Field(min_length=1, max_length=64)
    title: str = Field(max_length=200)
    content: str
    metadata: ScriptMetadata

    @field_validator("title")
    @classmethod
    def _title(cls, value):
        return non_blank(value, "title")

    @field_validator("content")
    @classmethod
    def _content(cls, value):
        if not value.strip():
            raise ValueError("content must not be empty")
        return value


class ScriptUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    content: str | None = None
    metadata: ScriptMetadataUpdate | None = None

    @field_validator("title")
    @classmethod
    def _title(cls, value):
        return non_blank(value, "title")

    @field_validator("content")
    @classmethod
    def _content(cls, value):
        if value is not None and not value.strip():
            raise ValueError("content must not be empty")
        return value

    @model_validator(mode="after")
    def _not_empty(self):
        metadata_changes = self.metadata.model_dump(exclude_none=True) if self.metadata else {}
        if self.title is None and self.content is None and not metadata_changes:
            raise ValueError("No fields to update")
        return self
