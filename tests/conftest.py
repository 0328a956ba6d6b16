import itertools
import os

# cheap hashes and no retry sleeps; must be set before core.config is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RETRY_BACKOFF_SECONDS", "0")

import pytest

from core.database import Database
from crud import project_crud, script_crud, user_crud


@pytest.fixture
def database(tmp_path):
    handle = Database(url=f"sqlite:///{tmp_path / 'store.db'}", lock_timeout=5)
    handle.create_all()
    yield handle
    handle.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(username=None, password="correct-horse", **extra):
        username = username or f"creator{next(counter)}"
        payload = {
            "email": f"{username}@scriptstudio.io",
            "username": username,
            "password": password,
            **extra,
        }
        return user_crud.create_user(db, payload)

    return _make


@pytest.fixture
def make_project(db):
    def _make(owner, title="Launch week", folders=None, **extra):
        if folders is None:
            folders = [{"id": "drafts", "name": "Drafts"}, {"id": "ideas", "name": "Ideas"}]
        payload = {"title": title, "folders": folders, **extra}
        return project_crud.create_project(db, owner.id, payload)

    return _make


@pytest.fixture
def make_script(db):
    def _make(owner, project, title="Hook ideas", content="Open with a question.", folder_id="drafts", **metadata):
        metadata.setdefault("content_type", "youtube")
        payload = {
            "project_id": project.id,
            "folder_id": folder_id,
            "title": title,
            "content": content,
            "metadata": metadata,
        }
        return script_crud.create_script(db, owner.id, payload)

    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")
