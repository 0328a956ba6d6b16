import uuid
from sqlalchemy import Column, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import validates
from core.errors import ValidationError
from models.base import Base, TimestampMixin

class Script(Base, TimestampMixin):
    __tablename__ = "scripts"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    project_id = Column(String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    # not checked against the project's folder list
    folder_id = Column(String(64), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    content_type = Column(String(32), nullable=False)
    duration = Column(Integer, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    status = Column(String(32), nullable=False, default="draft")
    versions = Column(JSON, nullable=False, default=list)
    revision = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": revision}

    @validates("versions")
    def _append_only(self, key, value):
        current = self.versions or []
        value = list(value or [])
        if len(value) < len(current) or value[: len(current)] != list(current):
            raise ValidationError("Script versions are append-only", field="versions")
        return value

    @property
    def meta(self) -> dict:
        return {
            "content_type": self.content_type,
            "duration": self.duration,
            "tags": list(self.tags or []),
            "status": self.status,
        }

    @property
    def version_count(self) -> int:
        return len(self.versions or [])

Index("idx_scripts_user_id_updated_at", Script.user_id, Script.updated_at.desc())
Index("idx_scripts_project_folder", Script.project_id, Script.folder_id)
Index("idx_scripts_user_status", Script.user_id, Script.status)
Index("idx_scripts_user_content_type", Script.user_id, Script.content_type)
