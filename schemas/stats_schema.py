from datetime import datetime
from pydantic import BaseModel, Field


class ProjectStats(BaseModel):
    project_id: str
    total_scripts: int = 0
    folder_count: int = 0
    content_type_distribution: dict[str, int] = Field(default_factory=dict)
    status_distribution: dict[str, int] = Field(default_factory=dict)
    # keyed by folder id, including ids no longer present in the folder list
    folder_distribution: dict[str, int] = Field(default_factory=dict)
    last_activity: datetime | None = None


class FolderCount(BaseModel):
    folder_id: str
    folder_name: str
    script_count: int = 0


class FolderStats(BaseModel):
    """Shape of a project's folder tree; roots sit at depth 0."""
    project_id: str
    total_folders: int = 0
    folder_depth: int = 0
    scripts_per_folder: list[FolderCount] = Field(default_factory=list)
    empty_folders: list[FolderCount] = Field(default_factory=list)


class ProjectActivity(BaseModel):
    project_id: str
    title: str
    script_count: int = 0
    last_activity: datetime | None = None


class MonthCount(BaseModel):
    month: str
    count: int


class DailyActivity(BaseModel):
    date: str
    scripts: int = 0
    projects: int = 0


class UserStats(BaseModel):
    user_id: str
    total_scripts: int = 0
    total_projects: int = 0
    total_folders: int = 0
    content_type_distribution: dict[str, int] = Field(default_factory=dict)
    status_distribution: dict[str, int] = Field(default_factory=dict)
    # scripts created per calendar month (UTC), newest first, at most 12
    by_month: list[MonthCount] = Field(default_factory=list)
    average_scripts_per_project: float = 0.0
    average_folders_per_project: float = 0.0
    recent_activity: datetime | None = None
    scripts_created_last_30_days: int = 0
    projects_created_last_30_days: int = 0
    daily_activity: list[DailyActivity] = Field(default_factory=list)
    most_active_project: ProjectActivity | None = None
    recent_projects: list[ProjectActivity] = Field(default_factory=list)
