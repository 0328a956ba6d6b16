import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from core.database import retry_transient, transaction
from core.errors import DuplicateKeyError, InvalidParentError, NotFoundError
from core.locks import locks_for, project_key
from crud.ownership import get_owned_project, get_visible_project
from models.base import utcnow
from models.project import Project
from models.script import Script
from schemas.common import coerce
from schemas.project_schema import Folder, FolderCreate, FolderUpdate

logger = logging.getLogger(__name__)


def find_folder(folders: list[dict], folder_id: str) -> dict | None:
    for folder in folders or []:
        if folder["id"] == folder_id:
            return folder
    return None


def _ancestors_reach(folders: list[dict], start_id: str | None, target_id: str) -> bool:
    """True if walking parent links from ``start_id`` arrives at ``target_id``."""
    by_id = {f["id"]: f for f in folders}
    seen = set()
    current = start_id
    while current is not None and current not in seen:
        if current == target_id:
            return True
        seen.add(current)
        folder = by_id.get(current)
        current = folder.get("parent_id") if folder else None
    return False


def validate_folder_tree(folders: list[FolderCreate | Folder]) -> None:
    """Check a complete folder list: unique ids, existing parents, no cycles."""
    ids = set()
    for folder in folders:
        if folder.id in ids:
            raise DuplicateKeyError("folder_id", f"Duplicate folder id '{folder.id}'")
        ids.add(folder.id)
    plain = [{"id": f.id, "parent_id": f.parent_id} for f in folders]
    for folder in folders:
        if folder.parent_id is None:
            continue
        if folder.parent_id not in ids:
            raise InvalidParentError(f"Parent folder '{folder.parent_id}' not found for folder '{folder.id}'")
        if _ancestors_reach(plain, folder.parent_id, folder.id):
            raise InvalidParentError(f"Folder '{folder.id}' would be its own ancestor")


def build_folder_tree(folders: list[dict]) -> list[dict]:
    # folders whose parent is gone are shown at the root
    ids = {f["id"] for f in folders}
    nodes = {f["id"]: {**f, "children": []} for f in folders}
    roots = []
    for folder in folders:
        node = nodes[folder["id"]]
        parent_id = folder.get("parent_id")
        if parent_id in ids and parent_id != folder["id"]:
            nodes[parent_id]["children"].append(node)
        else:
            roots.append(node)
    return roots


def recount(db: Session, project: Project) -> dict[str, int]:
    """Recompute every folder's script_count from the live scripts table."""
    db.flush()
    rows = (
        db.query(Script.folder_id, func.count(Script.id))
        .filter(Script.project_id == project.id)
        .group_by(Script.folder_id)
        .all()
    )
    counts = {folder_id: count for folder_id, count in rows}
    project.folders = [
        {**folder, "script_count": counts.get(folder["id"], 0)} for folder in project.folders or []
    ]
    project.total_scripts = sum(counts.values())
    project.last_activity = utcnow()
    return counts


def list_folders(db: Session, project_id: str, user_id: str) -> list[Folder]:
    project = get_visible_project(db, project_id, user_id)
    return [Folder.model_validate(f) for f in project.folders or []]


def get_folder_tree(db: Session, project_id: str, user_id: str) -> list[dict]:
    project = get_visible_project(db, project_id, user_id)
    return build_folder_tree(list(project.folders or []))


@retry_transient
def add_folder(db: Session, project_id: str, user_id: str, payload: FolderCreate | dict) -> Folder:
    data = coerce(FolderCreate, payload)
    with locks_for(db).hold(project_key(project_id)), transaction(db):
        project = get_owned_project(db, project_id, user_id)
        folders = list(project.folders or [])
        if find_folder(folders, data.id):
            raise DuplicateKeyError("folder_id", f"Folder '{data.id}' already exists in this project")
        if data.parent_id is not None and not find_folder(folders, data.parent_id):
            raise InvalidParentError(f"Parent folder '{data.parent_id}' not found")
        folder = Folder(id=data.id, name=data.name, parent_id=data.parent_id)
        project.folders = folders + [folder.model_dump(mode="json")]
        # scripts may already point at this id
        recount(db, project)
    logger.info("Added folder %s to project %s", data.id, project_id)
    return Folder.model_validate(find_folder(project.folders, data.id))


@retry_transient
def update_folder(db: Session, project_id: str, user_id: str, folder_id: str, payload: FolderUpdate | dict) -> Folder:
    data = coerce(FolderUpdate, payload)
    with locks_for(db).hold(project_key(project_id)), transaction(db):
        project = get_owned_project(db, project_id, user_id)
        folders = list(project.folders or [])
        current = find_folder(folders, folder_id)
        if not current:
            raise NotFoundError("Folder", folder_id)
        changes = {}
        if data.name is not None:
            changes["name"] = data.name
        if "parent_id" in data.model_fields_set:
            parent_id = data.parent_id
            if parent_id is not None:
                if parent_id == folder_id or not find_folder(folders, parent_id):
                    raise InvalidParentError(f"Parent folder '{parent_id}' not found")
                if _ancestors_reach(folders, parent_id, folder_id):
                    raise InvalidParentError(f"Folder '{folder_id}' would be its own ancestor")
            changes["parent_id"] = parent_id
        project.folders = [{**f, **changes} if f["id"] == folder_id else f for f in folders]
    return Folder.model_validate(find_folder(project.folders, folder_id))


@retry_transient
def remove_folder(db: Session, project_id: str, user_id: str, folder_id: str) -> None:
    """Drop exactly one folder entry; children and scripts keep their references."""
    with locks_for(db).hold(project_key(project_id)), transaction(db):
        project = get_owned_project(db, project_id, user_id)
        folders = list(project.folders or [])
        if not find_folder(folders, folder_id):
            raise NotFoundError("Folder", folder_id)
        project.folders = [f for f in folders if f["id"] != folder_id]
    logger.info("Removed folder %s from project %s", folder_id, project_id)
