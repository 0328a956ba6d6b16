import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from models.base import Base, TimestampMixin

class Project(Base, TimestampMixin):
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    allow_collaboration = Column(Boolean, nullable=False, default=False)
    # ordered list of folder documents, see schemas.project_schema.Folder
    folders = Column(JSON, nullable=False, default=list)
    total_scripts = Column(Integer, nullable=False, default=0)
    last_activity = Column(DateTime(timezone=True), nullable=True)
    revision = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": revision}

    @property
    def settings(self) -> dict:
        return {"is_public": self.is_public, "allow_collaboration": self.allow_collaboration}

Index("idx_projects_user_id_updated_at", Project.user_id, Project.updated_at.desc())
