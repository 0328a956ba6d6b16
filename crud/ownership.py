"""Owner-scoped lookups.

Every lookup filters on the owner in the query itself, so a document owned by
someone else is indistinguishable from one that does not exist.
"""

from sqlalchemy import or_
from sqlalchemy.orm import Session
from core.errors import NotFoundError
from models.project import Project
from models.script import Script


def get_owned_project(db: Session, project_id: str, user_id: str) -> Project:
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.user_id == user_id)
        .populate_existing()
        .first()
    )
    if not project:
        raise NotFoundError("Project", project_id)
    return project


def get_visible_project(db: Session, project_id: str, user_id: str) -> Project:
    """Owned by ``user_id`` or flagged public, re-read from the store."""
    project = (
        db.query(Project)
        .filter(Project.id == project_id, or_(Project.user_id == user_id, Project.is_public.is_(True)))
        .populate_existing()
        .first()
    )
    if not project:
        raise NotFoundError("Project", project_id)
    return project


def get_owned_script(db: Session, script_id: str, user_id: str) -> Script:
    script = (
        db.query(Script)
        .filter(Script.id == script_id, Script.user_id == user_id)
        .populate_existing()
        .first()
    )
    if not script:
        raise NotFoundError("Script", script_id)
    return script


def is_project_owner(db: Session, project_id: str, user_id: str) -> bool:
    return (
        db.query(Project.id)
        .filter(Project.id == project_id, Project.user_id == user_id)
        .first()
        is not None
    )
