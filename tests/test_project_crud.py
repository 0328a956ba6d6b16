from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from core.errors import InconsistentCascadeError, NotFoundError, ValidationError
from crud import folder_crud, project_crud, script_crud, stats_crud
from models.project import Project
from models.script import Script


def test_create_project_defaults(db, alice) -> None:
    project = project_crud.create_project(db, alice.id, {"title": "  Spring series ", "description": " Weekly shorts "})

    assert project.title == "Spring series"
    assert project.description == "Weekly shorts"
    assert project.folders == []
    assert project.total_scripts == 0
    assert project.settings == {"is_public": False, "allow_collaboration": False}
    assert project.last_activity is not None


def test_create_project_requires_a_title(db, alice) -> None:
    with pytest.raises(ValidationError) as excinfo:
        project_crud.create_project(db, alice.id, {"title": "   "})

    assert excinfo.value.field == "title"


def test_private_projects_are_hidden_from_other_users(db, alice, bob, make_project) -> None:
    private = make_project(alice, title="Private")
    public = make_project(alice, title="Public", settings={"is_public": True})

    with pytest.raises(NotFoundError):
        project_crud.get_project(db, private.id, bob.id)
    assert project_crud.get_project(db, public.id, bob.id).title == "Public"
    assert not project_crud.is_project_owner(db, public.id, bob.id)
    assert project_crud.is_project_owner(db, public.id, alice.id)


def test_public_projects_are_still_read_only_for_others(db, alice, bob, make_project) -> None:
    public = make_project(alice, settings={"is_public": True})

    with pytest.raises(NotFoundError):
        project_crud.update_project(db, public.id, bob.id, {"title": "Mine now"})
    with pytest.raises(NotFoundError):
        project_crud.delete_project(db, public.id, bob.id)


def test_update_project_applies_partial_changes(db, alice, make_project) -> None:
    project = make_project(alice, description="Old")

    updated = project_crud.update_project(
        db, project.id, alice.id, {"title": "Renamed", "settings": {"allow_collaboration": True}}
    )
    assert updated.title == "Renamed"
    assert updated.description == "Old"
    assert updated.settings == {"is_public": False, "allow_collaboration": True}

    cleared = project_crud.update_project(db, project.id, alice.id, {"description": None})
    assert cleared.description is None
    assert cleared.title == "Renamed"


def test_list_projects_most_recently_updated_first(db, alice, bob, make_project) -> None:
    first = make_project(alice, title="First")
    second = make_project(alice, title="Second")
    make_project(bob, title="Not alice's")
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    db.get(Project, first.id).updated_at = base + timedelta(days=2)
    db.get(Project, second.id).updated_at = base + timedelta(days=1)
    db.commit()

    assert [p.title for p in project_crud.list_projects(db, alice.id)] == ["First", "Second"]
    assert [p.title for p in project_crud.list_recent_projects(db, alice.id, limit=1)] == ["First"]


def test_delete_project_cascades_to_its_scripts_only(db, alice, make_project, make_script) -> None:
    doomed = make_project(alice, title="Doomed")
    kept = make_project(alice, title="Kept")
    make_script(alice, doomed)
    make_script(alice, doomed, folder_id="ideas")
    survivor = make_script(alice, kept)

    removed = project_crud.delete_project(db, doomed.id, alice.id)

    assert removed == 2
    assert db.query(func.count(Script.id)).filter(Script.project_id == doomed.id).scalar() == 0
    assert script_crud.get_script(db, survivor.id, alice.id).project_id == kept.id
    with pytest.raises(NotFoundError):
        project_crud.get_project(db, doomed.id, alice.id)


def test_failed_cascade_rolls_back_everything(db, alice, make_project, make_script, monkeypatch) -> None:
    project = make_project(alice)
    make_script(alice, project)

    def failing_delete(instance):
        raise SQLAlchemyError("connection dropped")

    monkeypatch.setattr(db, "delete", failing_delete)
    with pytest.raises(InconsistentCascadeError) as excinfo:
        project_crud.delete_project(db, project.id, alice.id)
    monkeypatch.undo()

    assert excinfo.value.retryable
    assert project_crud.get_project(db, project.id, alice.id).id == project.id
    assert db.query(func.count(Script.id)).filter(Script.project_id == project.id).scalar() == 1


def test_reconcile_removes_orphaned_scripts(db, alice, make_project, make_script) -> None:
    project = make_project(alice)
    orphan = make_script(alice, project)
    orphan_id = orphan.id
    # simulate a crash between the two halves of a cascade
    db.query(Project).filter(Project.id == project.id).delete(synchronize_session=False)
    db.commit()

    assert project_crud.reconcile_orphaned_scripts(db) == 1
    assert db.get(Script, orphan_id) is None
    assert project_crud.reconcile_orphaned_scripts(db) == 0


def test_reads_reflect_writes_from_other_sessions(database, db, alice, make_project) -> None:
    project = make_project(alice)
    assert project_crud.get_project(db, project.id, alice.id).total_scripts == 0
    assert stats_crud.project_stats(db, project.id, alice.id).folder_count == 2

    other = database.session()
    try:
        script_crud.create_script(
            other,
            alice.id,
            {
                "project_id": project.id,
                "folder_id": "drafts",
                "title": "From elsewhere",
                "content": "Body",
                "metadata": {"content_type": "general"},
            },
        )
        folder_crud.add_folder(other, project.id, alice.id, {"id": "new", "name": "New"})
    finally:
        other.close()

    assert project_crud.get_project(db, project.id, alice.id).total_scripts == 1
    assert project_crud.list_projects(db, alice.id)[0].total_scripts == 1
    stats = stats_crud.project_stats(db, project.id, alice.id)
    assert (stats.total_scripts, stats.folder_count) == (1, 3)
    counts = {f.id: f.script_count for f in folder_crud.list_folders(db, project.id, alice.id)}
    assert counts == {"drafts": 1, "ideas": 0, "new": 0}
    assert stats_crud.user_stats(db, alice.id).total_folders == 3
