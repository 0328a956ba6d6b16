import threading

import pytest

from core.database import retry_transient, transaction
from core.errors import ConcurrentModificationError, NotFoundError, StoreTimeoutError
from core.locks import KeyedLocks
from crud import project_crud, script_crud
from models.script import Script
from models.user import User


def test_concurrent_updates_produce_gapless_versions(database, db, alice, make_project, make_script) -> None:
    project = make_project(alice)
    script = make_script(alice, project)
    script_id, user_id = script.id, alice.id
    errors = []

    def worker(n):
        session = database.session()
        try:
            script_crud.update_script(session, script_id, user_id, {"content": f"writer {n}"})
        except Exception as exc:  # surfaced below
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    history = script_crud.get_version_history(db, script_id, user_id)
    assert [v.version for v in history] == list(range(1, 10))


def test_concurrent_script_creation_keeps_counts_exact(database, db, alice, make_project) -> None:
    project = make_project(alice)
    project_id, user_id = project.id, alice.id

    def worker(n):
        session = database.session()
        try:
            script_crud.create_script(
                session,
                user_id,
                {
                    "project_id": project_id,
                    "folder_id": "drafts" if n % 2 else "ideas",
                    "title": f"Script {n}",
                    "content": "Body",
                    "metadata": {"content_type": "general"},
                },
            )
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stored = project_crud.get_project(db, project_id, user_id)
    assert stored.total_scripts == 6
    assert {f["id"]: f["script_count"] for f in stored.folders} == {"drafts": 3, "ideas": 3}


def test_stale_writes_are_reported_as_concurrent_modification(database, alice, make_project, make_script) -> None:
    script_id = make_script(alice, make_project(alice)).id
    first, second = database.session(), database.session()
    try:
        mine = first.get(Script, script_id)
        theirs = second.get(Script, script_id)
        mine.title = "First writer"
        first.commit()

        theirs.title = "Second writer"
        with pytest.raises(ConcurrentModificationError) as excinfo:
            with transaction(second):
                pass
        assert excinfo.value.retryable
    finally:
        first.close()
        second.close()


def test_transaction_rolls_back_on_cancellation(db) -> None:
    class Cancelled(BaseException):
        pass

    with pytest.raises(Cancelled):
        with transaction(db):
            db.add(User(email="x@scriptstudio.io", username="x", username_key="x", password_hash="-"))
            db.flush()
            raise Cancelled()

    assert db.query(User).count() == 0


def test_keyed_locks_time_out() -> None:
    locks = KeyedLocks(timeout=0.01)

    with locks.hold("script:1"):
        with pytest.raises(StoreTimeoutError):
            with locks.hold("script:1"):
                pass

    with locks.hold("script:1", "project:1"):
        pass


def test_keyed_locks_release_after_partial_acquire() -> None:
    locks = KeyedLocks(timeout=0.01)
    with locks.hold("b"):
        with pytest.raises(StoreTimeoutError):
            with locks.hold("a", "b"):
                pass
        # "a" was taken before "b" timed out and must be free again
        with locks.hold("a"):
            pass


def test_retry_transient_retries_only_transient_errors() -> None:
    calls = []

    @retry_transient
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrentModificationError("try again")
        return "done"

    assert flaky() == "done"
    assert len(calls) == 3

    @retry_transient
    def missing():
        calls.append(1)
        raise NotFoundError("Script", "nope")

    calls.clear()
    with pytest.raises(NotFoundError):
        missing()
    assert len(calls) == 1


def test_retry_transient_gives_up(monkeypatch) -> None:
    from core.config import settings

    monkeypatch.setattr(settings, "RETRY_ATTEMPTS", 2)
    calls = []

    @retry_transient
    def always_stale():
        calls.append(1)
        raise ConcurrentModificationError("still stale")

    with pytest.raises(ConcurrentModificationError):
        always_stale()
    assert len(calls) == 2


def test_lock_registry_drains_after_use(database, db, alice, make_project, make_script) -> None:
    project = make_project(alice)
    for n in range(5):
        script = make_script(alice, project, title=f"Short-lived {n}")
        script_crud.update_script(db, script.id, alice.id, {"content": "edited"})
        script_crud.delete_script(db, script.id, alice.id)

    assert len(database.locks) == 0


def test_lock_registry_drains_after_timeout() -> None:
    locks = KeyedLocks(timeout=0.01)
    with locks.hold("a"):
        with pytest.raises(StoreTimeoutError):
            with locks.hold("a", "b"):
                pass
        assert len(locks) == 1

    assert len(locks) == 0
