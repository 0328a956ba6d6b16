import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from core.database import retry_transient, transaction
from core.errors import DuplicateKeyError, InvalidCredentialsError, NotFoundError
from core.security import hash_password, verify_password
from models.user import User
from schemas.common import coerce
from schemas.user_schema import PasswordChange, UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: str):
    return db.query(User).filter(User.email == email.strip().lower()).first()


def get_user_by_username(db: Session, username: str):
    return db.query(User).filter(User.username_key == username.strip().lower()).first()


def email_exists(db: Session, email: str) -> bool:
    return get_user_by_email(db, email) is not None


def username_exists(db: Session, username: str) -> bool:
    return get_user_by_username(db, username) is not None


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    return user


def count_users(db: Session) -> int:
    return db.query(func.count(User.id)).scalar()


@retry_transient
def create_user(db: Session, payload: UserCreate | dict) -> User:
    data = coerce(UserCreate, payload)
    password_hash = hash_password(data.password)
    with transaction(db):
        if get_user_by_email(db, data.email):
            raise DuplicateKeyError("email", "Email already registered")
        if get_user_by_username(db, data.username):
            raise DuplicateKeyError("username", "Username already taken")
        user = User(
            email=data.email.lower(),
            username=data.username,
            username_key=data.username.lower(),
            password_hash=password_hash,
            profile=data.profile.model_dump(exclude_none=True),
            preferences=data.preferences.model_dump(mode="json"),
        )
        db.add(user)
        # a concurrent registration surfaces here as DuplicateKeyError
        db.flush()
    logger.info("Registered user %s", user.id)
    return user


def verify_credentials(db: Session, identifier: str, password: str) -> User:
    """Resolve an email or username plus password to a user.

    Unknown identifiers and wrong passwords fail identically.
    """
    identifier = (identifier or "").strip()
    if not identifier:
        raise InvalidCredentialsError()
    if "@" in identifier:
        user = get_user_by_email(db, identifier)
    else:
        user = get_user_by_username(db, identifier)
    if not user or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()
    return user


@retry_transient
def update_profile(db: Session, user_id: str, payload: UserUpdate | dict) -> User:
    data = coerce(UserUpdate, payload)
    with transaction(db):
        user = get_user(db, user_id)
        if data.profile is not None:
            user.profile = {**(user.profile or {}), **data.profile.model_dump(exclude_unset=True)}
        if data.preferences is not None:
            changes = data.preferences.model_dump(mode="json", exclude_none=True)
            user.preferences = {**(user.preferences or {}), **changes}
    return user


@retry_transient
def change_password(db: Session, user_id: str, current_password: str, new_password: str) -> None:
    data = coerce(PasswordChange, {"current_password": current_password, "new_password": new_password})
    with transaction(db):
        user = get_user(db, user_id)
        if not verify_password(data.current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")
        user.password_hash = hash_password(data.new_password)
    logger.info("Password changed for user %s", user_id)


@retry_transient
def delete_user(db: Session, user_id: str) -> None:
    with transaction(db):
        user = get_user(db, user_id)
        db.delete(user)
    logger.info("Deleted user %s", user_id)
