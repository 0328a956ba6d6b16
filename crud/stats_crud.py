from collections import Counter
from datetime import timedelta
from sqlalchemy import desc, func
from sqlalchemy.orm import Session
from crud.folder_crud import build_folder_tree
from crud.ownership import get_visible_project
from models.base import as_utc, utcnow
from models.project import Project
from models.script import Script
from schemas.stats_schema import (
    DailyActivity,
    FolderCount,
    FolderStats,
    MonthCount,
    ProjectActivity,
    ProjectStats,
    UserStats,
)

RECENT_WINDOW = timedelta(days=30)
RECENT_PROJECTS = 5
MONTHS_SHOWN = 12


def _distribution(db: Session, column, *criteria) -> dict[str, int]:
    rows = db.query(column, func.count(Script.id)).filter(*criteria).group_by(column).all()
    return {key: count for key, count in rows if count}


def _average(total: int, count: int) -> float:
    return round(total / count, 2) if count else 0.0


def project_stats(db: Session, project_id: str, user_id: str) -> ProjectStats:
    project = get_visible_project(db, project_id, user_id)
    scope = Script.project_id == project.id
    return ProjectStats(
        project_id=project.id,
        total_scripts=db.query(func.count(Script.id)).filter(scope).scalar(),
        folder_count=len(project.folders or []),
        content_type_distribution=_distribution(db, Script.content_type, scope),
        status_distribution=_distribution(db, Script.status, scope),
        folder_distribution=_distribution(db, Script.folder_id, scope),
        last_activity=as_utc(project.last_activity),
    )


def project_folder_stats(db: Session, project_id: str, user_id: str) -> FolderStats:
    """Per-folder script counts walked in tree order, plus depth and empty folders."""
    project = get_visible_project(db, project_id, user_id)
    counts = _distribution(db, Script.folder_id, Script.project_id == project.id)

    per_folder, empty, depth = [], [], 0
    stack = [(node, 0) for node in reversed(build_folder_tree(list(project.folders or [])))]
    while stack:
        node, level = stack.pop()
        depth = max(depth, level)
        entry = FolderCount(folder_id=node["id"], folder_name=node["name"], script_count=counts.get(node["id"], 0))
        per_folder.append(entry)
        if not entry.script_count:
            empty.append(entry)
        stack.extend((child, level + 1) for child in reversed(node["children"]))

    return FolderStats(
        project_id=project.id,
        total_folders=len(per_folder),
        folder_depth=depth,
        scripts_per_folder=per_folder,
        empty_folders=empty,
    )


def _daily_activity(script_days: Counter, project_days: Counter) -> list[DailyActivity]:
    return [
        DailyActivity(date=day, scripts=script_days.get(day, 0), projects=project_days.get(day, 0))
        for day in sorted(set(script_days) | set(project_days))
    ]


def user_stats(db: Session, user_id: str) -> UserStats:
    scope = Script.user_id == user_id
    since = utcnow() - RECENT_WINDOW
    total_scripts = db.query(func.count(Script.id)).filter(scope).scalar()
    projects = (
        db.query(Project)
        .filter(Project.user_id == user_id)
        .order_by(desc(Project.updated_at), desc(Project.id))
        .populate_existing()
        .all()
    )
    total_folders = sum(len(p.folders or []) for p in projects)

    last_script_update = db.query(func.max(Script.updated_at)).filter(scope).scalar()
    latest_project = projects[0].updated_at if projects else None
    stamps = [as_utc(stamp) for stamp in (last_script_update, latest_project) if stamp]

    # bucketed here rather than in SQL; date functions differ per dialect
    created = [as_utc(stamp) for (stamp,) in db.query(Script.created_at).filter(scope).all()]
    by_month = Counter(stamp.strftime("%Y-%m") for stamp in created)
    script_days = Counter(stamp.strftime("%Y-%m-%d") for stamp in created if stamp >= since)
    project_days = Counter(
        as_utc(p.created_at).strftime("%Y-%m-%d") for p in projects if as_utc(p.created_at) >= since
    )

    most_active = None
    busiest = (
        db.query(Script.project_id, func.count(Script.id).label("n"))
        .filter(scope)
        .group_by(Script.project_id)
        .order_by(desc("n"), Script.project_id)
        .first()
    )
    if busiest:
        by_id = {p.id: p for p in projects}
        project = by_id.get(busiest.project_id)
        if project is not None:
            most_active = ProjectActivity(
                project_id=project.id,
                title=project.title,
                script_count=busiest.n,
                last_activity=as_utc(project.last_activity),
            )

    return UserStats(
        user_id=user_id,
        total_scripts=total_scripts,
        total_projects=len(projects),
        total_folders=total_folders,
        content_type_distribution=_distribution(db, Script.content_type, scope),
        status_distribution=_distribution(db, Script.status, scope),
        by_month=[
            MonthCount(month=month, count=count)
            for month, count in sorted(by_month.items(), reverse=True)[:MONTHS_SHOWN]
        ],
        average_scripts_per_project=_average(total_scripts, len(projects)),
        average_folders_per_project=_average(total_folders, len(projects)),
        recent_activity=max(stamps) if stamps else None,
        scripts_created_last_30_days=sum(script_days.values()),
        projects_created_last_30_days=sum(project_days.values()),
        daily_activity=_daily_activity(script_days, project_days),
        most_active_project=most_active,
        recent_projects=[
            ProjectActivity(
                project_id=p.id,
                title=p.title,
                script_count=p.total_scripts,
                last_activity=as_utc(p.last_activity),
            )
            for p in projects[:RECENT_PROJECTS]
        ],
    )
