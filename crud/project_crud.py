import logging
from sqlalchemy import desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from core.database import retry_transient, transaction
from core.errors import InconsistentCascadeError
from core.locks import locks_for, project_key
from crud.folder_crud import validate_folder_tree
from crud.ownership import get_owned_project, get_visible_project, is_project_owner
from models.base import utcnow
from models.project import Project
from models.script import Script
from schemas.common import coerce
from schemas.project_schema import Folder, ProjectCreate, ProjectUpdate

logger = logging.getLogger(__name__)

__all__ = [
    "create_project",
    "get_project",
    "get_owned_project",
    "is_project_owner",
    "list_projects",
    "list_recent_projects",
    "update_project",
    "delete_project",
    "reconcile_orphaned_scripts",
]


def get_project(db: Session, project_id: str, user_id: str) -> Project:
    """Owned or public project; anything else is reported as not found."""
    return get_visible_project(db, project_id, user_id)


def list_projects(db: Session, user_id: str, skip: int = 0, limit: int = 100):
    q = db.query(Project).filter(Project.user_id == user_id).populate_existing()
    return q.order_by(desc(Project.updated_at), desc(Project.id)).offset(skip).limit(limit).all()


def list_recent_projects(db: Session, user_id: str, limit: int = 5):
    return list_projects(db, user_id, limit=limit)


@retry_transient
def create_project(db: Session, user_id: str, payload: ProjectCreate | dict) -> Project:
    data = coerce(ProjectCreate, payload)
    validate_folder_tree(data.folders)
    now = utcnow()
    folders = [
        Folder(id=f.id, name=f.name, parent_id=f.parent_id, created_at=now).model_dump(mode="json")
        for f in data.folders
    ]
    with transaction(db):
        proj = Project(
            user_id=user_id,
            title=data.title,
            description=data.description,
            is_public=data.settings.is_public,
            allow_collaboration=data.settings.allow_collaboration,
            folders=folders,
            total_scripts=0,
            last_activity=now,
        )
        db.add(proj)
    logger.info("Created project %s for user %s", proj.id, user_id)
    return proj


@retry_transient
def update_project(db: Session, project_id: str, user_id: str, payload: ProjectUpdate | dict) -> Project:
    data = coerce(ProjectUpdate, payload)
    with locks_for(db).hold(project_key(project_id)), transaction(db):
        proj = get_owned_project(db, project_id, user_id)
        if data.title is not None:
            proj.title = data.title
        if "description" in data.model_fields_set:
            proj.description = data.description
        if data.settings is not None:
            if data.settings.is_public is not None:
                proj.is_public = data.settings.is_public
            if data.settings.allow_collaboration is not None:
                proj.allow_collaboration = data.settings.allow_collaboration
    return proj


def delete_project(db: Session, project_id: str, user_id: str) -> int:
    """Delete a project and every script that references it.

    Both deletions commit together or not at all. Returns the number of
    scripts removed. A failure after ownership was confirmed raises
    InconsistentCascadeError, which the caller may retry.
    """
    with locks_for(db).hold(project_key(project_id)), transaction(db):
        proj = get_owned_project(db, project_id, user_id)
        try:
            removed = (
                db.query(Script)
                .filter(Script.project_id == proj.id)
                .delete(synchronize_session="fetch")
            )
            db.delete(proj)
            db.flush()
            remaining = db.query(func.count(Script.id)).filter(Script.project_id == project_id).scalar()
        except SQLAlchemyError as exc:
            raise InconsistentCascadeError(
                f"Cascade delete of project {project_id} did not complete: {exc}"
            ) from exc
        if remaining:
            raise InconsistentCascadeError(
                f"{remaining} scripts still reference project {project_id}; nothing was deleted"
            )
    logger.info("Deleted project %s and %d scripts", project_id, removed)
    return removed


@retry_transient
def reconcile_orphaned_scripts(db: Session) -> int:
    """Repair pass: remove scripts whose project no longer exists."""
    with transaction(db):
        orphan_ids = [
            row.id
            for row in db.query(Script.id)
            .outerjoin(Project, Project.id == Script.project_id)
            .filter(Project.id.is_(None))
            .all()
        ]
        if orphan_ids:
            db.query(Script).filter(Script.id.in_(orphan_ids)).delete(synchronize_session="fetch")
    if orphan_ids:
        logger.warning("Removed %d orphaned scripts", len(orphan_ids))
    return len(orphan_ids)
