import logging
from sqlalchemy import asc, desc, func
from sqlalchemy.orm import Session
from core.database import retry_transient, transaction
from core.errors import ConcurrentModificationError, InvalidVersionIndexError, NotFoundError, ValidationError
from core.locks import locks_for, project_key, script_key
from crud.folder_crud import recount
from crud.ownership import get_owned_project, get_owned_script, get_visible_project
from models.base import utcnow
from models.project import Project
from models.script import Script
from schemas.common import coerce
from schemas.script_schema import ScriptCreate, ScriptUpdate, ScriptVersion

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "created_at": Script.created_at,
    "updated_at": Script.updated_at,
    "title": Script.title,
}


def _snapshot(script: Script, version: int) -> dict:
    return ScriptVersion.model_validate(
        {
            "version": version,
            "title": script.title,
            "content": script.content,
            "metadata": script.meta,
            "created_at": utcnow(),
        }
    ).model_dump(mode="json")


def _append_version(script: Script) -> int:
    """Record the live state as the next version; returns its number."""
    versions = list(script.versions or [])
    number = versions[-1]["version"] + 1 if versions else 1
    versions.append(_snapshot(script, number))
    script.versions = versions
    return number


def _apply_metadata(script: Script, metadata: dict):
    for field in ("content_type", "duration", "tags", "status"):
        if field in metadata:
            value = metadata[field]
            setattr(script, field, list(value) if field == "tags" else value)


def _load_project(db: Session, project_id: str) -> Project | None:
    return db.query(Project).filter(Project.id == project_id).populate_existing().first()


def get_script(db: Session, script_id: str, user_id: str) -> Script:
    return get_owned_script(db, script_id, user_id)


def list_scripts(
    db: Session,
    user_id: str,
    project_id: str | None = None,
    folder_id: str | None = None,
    status: str | None = None,
    content_type: str | None = None,
    sort_by: str = "updated_at",
    descending: bool = True,
    skip: int = 0,
    limit: int = 50,
):
    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError(f"Cannot sort scripts by '{sort_by}'", field="sort_by")
    q = db.query(Script).filter(Script.user_id == user_id).populate_existing()
    if project_id is not None:
        q = q.filter(Script.project_id == project_id)
    if folder_id is not None:
        q = q.filter(Script.folder_id == folder_id)
    if status is not None:
        q = q.filter(Script.status == getattr(status, "value", status))
    if content_type is not None:
        q = q.filter(Script.content_type == getattr(content_type, "value", content_type))
    order = desc if descending else asc
    return q.order_by(order(column), order(Script.id)).offset(skip).limit(limit).all()


def list_recent_scripts(db: Session, user_id: str, limit: int = 10):
    return list_scripts(db, user_id, limit=limit)


def count_in_folder(db: Session, project_id: str, user_id: str, folder_id: str) -> int:
    project = get_visible_project(db, project_id, user_id)
    return (
        db.query(func.count(Script.id))
        .filter(Script.project_id == project.id, Script.folder_id == folder_id)
        .scalar()
    )


@retry_transient
def create_script(db: Session, user_id: str, payload: ScriptCreate | dict) -> Script:
    data = coerce(ScriptCreate, payload)
    metadata = data.metadata.model_dump(mode="json")
    with locks_for(db).hold(project_key(data.project_id)), transaction(db):
        project = get_owned_project(db, data.project_id, user_id)
        script = Script(
            user_id=user_id,
            project_id=project.id,
            folder_id=data.folder_id,
            title=data.title,
            content=data.content,
        )
        _apply_metadata(script, metadata)
        _append_version(script)
        db.add(script)
        recount(db, project)
    logger.info("Created script %s in project %s", script.id, data.project_id)
    return script


@retry_transient
def update_script(db: Session, script_id: str, user_id: str, payload: ScriptUpdate | dict) -> Script:
    """Snapshot the current state as a new version, then apply the patch."""
    data = coerce(ScriptUpdate, payload)
    with locks_for(db).hold(script_key(script_id)), transaction(db):
        script = get_owned_script(db, script_id, user_id)
        _append_version(script)
        if data.title is not None:
            script.title = data.title
        if data.content is not None:
            script.content = data.content
        if data.metadata is not None:
            _apply_metadata(script, data.metadata.model_dump(mode="json", exclude_none=True))
    return script


def get_version_history(db: Session, script_id: str, user_id: str) -> list[ScriptVersion]:
    script = get_owned_script(db, script_id, user_id)
    return [ScriptVersion.model_validate(v) for v in script.versions or []]


@retry_transient
def revert_to_version(db: Session, script_id: str, user_id: str, version: int) -> Script:
    """Make version ``version`` (1-based) live again without dropping history."""
    with locks_for(db).hold(script_key(script_id)), transaction(db):
        script = get_owned_script(db, script_id, user_id)
        versions = script.versions or []
        if isinstance(version, bool) or not isinstance(version, int) or not 1 <= version <= len(versions):
            raise InvalidVersionIndexError(
                f"Version {version} does not exist; script has {len(versions)} versions"
            )
        target = ScriptVersion.model_validate(versions[version - 1])
        _append_version(script)
        script.content = target.content
        _apply_metadata(script, target.metadata.model_dump(mode="json"))
    logger.info("Reverted script %s to version %d", script_id, version)
    return script


@retry_transient
def delete_script(db: Session, script_id: str, user_id: str) -> None:
    project_id = get_owned_script(db, script_id, user_id).project_id
    with locks_for(db).hold(script_key(script_id), project_key(project_id)), transaction(db):
        script = get_owned_script(db, script_id, user_id)
        if script.project_id != project_id:
            raise ConcurrentModificationError(f"Script {script_id} moved during delete")
        db.delete(script)
        project = _load_project(db, project_id)
        if project is not None:
            recount(db, project)
    logger.info("Deleted script %s", script_id)


@retry_transient
def delete_scripts_by_folder(db: Session, project_id: str, user_id: str, folder_id: str) -> int:
    """Delete every script filed under ``folder_id``; the folder entry itself stays."""
    with locks_for(db).hold(project_key(project_id)), transaction(db):
        project = get_owned_project(db, project_id, user_id)
        removed = (
            db.query(Script)
            .filter(Script.project_id == project.id, Script.folder_id == folder_id)
            .delete(synchronize_session="fetch")
        )
        recount(db, project)
    logger.info("Deleted %d scripts from folder %s of project %s", removed, folder_id, project_id)
    return removed


@retry_transient
def move_script(
    db: Session,
    script_id: str,
    user_id: str,
    new_project_id: str | None = None,
    new_folder_id: str | None = None,
) -> Script:
    if new_project_id is None and new_folder_id is None:
        raise ValidationError("A destination project or folder is required")
    if new_folder_id is not None and not new_folder_id.strip():
        raise ValidationError("folder_id must not be empty", field="folder_id")
    source_id = get_owned_script(db, script_id, user_id).project_id
    target_id = new_project_id or source_id
    keys = (script_key(script_id), project_key(source_id), project_key(target_id))
    with locks_for(db).hold(*keys), transaction(db):
        script = get_owned_script(db, script_id, user_id)
        if script.project_id != source_id:
            raise ConcurrentModificationError(f"Script {script_id} moved concurrently")
        target = get_owned_project(db, target_id, user_id)
        source = target if target_id == source_id else _load_project(db, source_id)
        script.project_id = target.id
        if new_folder_id is not None:
            script.folder_id = new_folder_id.strip()
        recount(db, target)
        if source is not None and source is not target:
            recount(db, source)
    logger.info("Moved script %s to project %s", script_id, target_id)
    return script


def bulk_update_status(db: Session, user_id: str, script_ids: list[str], status) -> dict[str, list[str]]:
    """Set the status of several scripts, one version each.

    Ids that do not resolve to the caller's scripts are reported as skipped.
    """
    change = coerce(ScriptUpdate, {"metadata": {"status": status}})
    updated, skipped = [], []
    for script_id in dict.fromkeys(script_ids):
        try:
            update_script(db, script_id, user_id, change)
        except NotFoundError:
            skipped.append(script_id)
        else:
            updated.append(script_id)
    return {"updated": updated, "skipped": skipped}
