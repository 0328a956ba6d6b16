from dataclasses import dataclass
from pydantic import BaseModel, Field
from models.project import Project
from models.script import Script
from schemas.script_schema import ContentType, ScriptStatus


class SearchFilters(BaseModel):
    """Hard constraints, all of which a result must satisfy."""
    content_type: ContentType | None = None
    status: ScriptStatus | None = None
    project_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    include_public: bool = False


@dataclass
class SearchHit:
    script: Script
    score: float


@dataclass
class ProjectHit:
    project: Project
    score: float


@dataclass
class GlobalSearchResult:
    scripts: list[SearchHit]
    projects: list[ProjectHit]

    @property
    def total_results(self) -> int:
        return len(self.scripts) + len(self.projects)


@dataclass
class Suggestions:
    script_titles: list[str]
    project_titles: list[str]
    tags: list[str]
