import pytest

from core.errors import DuplicateKeyError, InvalidCredentialsError, NotFoundError, ValidationError
from crud import user_crud


def test_register_hashes_password_and_applies_defaults(db) -> None:
    user = user_crud.create_user(
        db,
        {"email": " Alice@ScriptStudio.io ", "username": "Alice_01", "password": "correct-horse"},
    )

    assert user.email == "alice@scriptstudio.io"
    assert user.username == "Alice_01"
    assert user.password_hash != "correct-horse"
    assert user.password_hash.startswith("$2")
    assert user.preferences == {"default_project_view": "grid", "theme": "light"}
    assert user_crud.count_users(db) == 1


def test_duplicate_email_is_rejected(db) -> None:
    user_crud.create_user(db, {"email": "a@scriptstudio.io", "username": "alice", "password": "correct-horse"})

    with pytest.raises(DuplicateKeyError) as excinfo:
        user_crud.create_user(db, {"email": "a@scriptstudio.io", "username": "bob", "password": "correct-horse"})

    assert excinfo.value.field == "email"
    assert user_crud.count_users(db) == 1


def test_duplicate_username_ignores_case(db, alice) -> None:
    with pytest.raises(DuplicateKeyError) as excinfo:
        user_crud.create_user(db, {"email": "other@scriptstudio.io", "username": "ALICE", "password": "correct-horse"})

    assert excinfo.value.field == "username"


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"email": "not-an-email", "username": "carol", "password": "correct-horse"}, "email"),
        ({"email": "c@scriptstudio.io", "username": "c", "password": "correct-horse"}, "username"),
        ({"email": "c@scriptstudio.io", "username": "carol!", "password": "correct-horse"}, "username"),
        ({"email": "c@scriptstudio.io", "username": "carol", "password": "short"}, "password"),
    ],
)
def test_invalid_registration_is_a_validation_error(db, payload, field) -> None:
    with pytest.raises(ValidationError) as excinfo:
        user_crud.create_user(db, payload)

    assert excinfo.value.field == field
    assert user_crud.count_users(db) == 0


def test_verify_credentials_by_email_or_username(db, alice) -> None:
    assert user_crud.verify_credentials(db, "ALICE@scriptstudio.io", "correct-horse").id == alice.id
    assert user_crud.verify_credentials(db, "alice", "correct-horse").id == alice.id


def test_bad_credentials_fail_the_same_way(db, alice) -> None:
    with pytest.raises(InvalidCredentialsError) as wrong_password:
        user_crud.verify_credentials(db, "alice", "battery-staple")
    with pytest.raises(InvalidCredentialsError) as unknown_user:
        user_crud.verify_credentials(db, "nobody", "correct-horse")

    assert str(wrong_password.value) == str(unknown_user.value)


def test_update_profile_merges_fields(db, alice) -> None:
    user_crud.update_profile(db, alice.id, {"profile": {"first_name": "Alice"}})
    user = user_crud.update_profile(
        db, alice.id, {"profile": {"bio": "Short-form storyteller"}, "preferences": {"theme": "dark"}}
    )

    assert user.profile == {"first_name": "Alice", "bio": "Short-form storyteller"}
    assert user.preferences == {"default_project_view": "grid", "theme": "dark"}


def test_change_password_requires_current_password(db, alice) -> None:
    with pytest.raises(InvalidCredentialsError):
        user_crud.change_password(db, alice.id, "wrong-password", "new-password-1")

    user_crud.change_password(db, alice.id, "correct-horse", "new-password-1")

    assert user_crud.verify_credentials(db, "alice", "new-password-1").id == alice.id
    with pytest.raises(InvalidCredentialsError):
        user_crud.verify_credentials(db, "alice", "correct-horse")


def test_delete_user(db, alice) -> None:
    user_crud.delete_user(db, alice.id)

    with pytest.raises(NotFoundError):
        user_crud.get_user(db, alice.id)
    assert not user_crud.email_exists(db, "alice@scriptstudio.io")
    assert not user_crud.username_exists(db, "alice")
