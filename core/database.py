import functools
import logging
import time
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from core.config import settings
from core.errors import (
    ConcurrentModificationError,
    StoreError,
    StoreUnavailableError,
    translate_db_error,
)
from core.locks import KeyedLocks
# Use the same Base as models to ensure one metadata registry
from models.base import Base
# Import all model modules so create_all sees every table
from models import user, project, script  # noqa: F401

logger = logging.getLogger(__name__)


def _connect_args(url: str, timeout: float) -> dict:
    if url.startswith("sqlite"):
        return {"timeout": timeout, "check_same_thread": False}
    if url.startswith("mysql"):
        # PyMySQL otherwise waits on a stalled socket forever
        return {
            "connect_timeout": max(1, int(timeout)),
            "read_timeout": timeout,
            "write_timeout": timeout,
        }
    return {}


class Database:
    """Process-wide store handle.

    Owns the engine, the session factory and the per-document lock registry.
    The surrounding service calls ``init()`` at startup and ``dispose()`` at
    shutdown; core operations only ever see sessions produced here.
    """

    def __init__(self, url: str | None = None, lock_timeout: float | None = None, **engine_options):
        self.url = url or settings.SQLALCHEMY_DATABASE_URI
        self.engine_options = engine_options
        self.locks = KeyedLocks(timeout=lock_timeout)
        self.engine = None
        self.SessionLocal = None

    def init(self):
        if self.engine is not None:
            return self
        options = {
            "pool_pre_ping": True,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_timeout": settings.DB_TIMEOUT_SECONDS,
            "echo": settings.SQL_ECHO,
            "connect_args": _connect_args(self.url, settings.DB_TIMEOUT_SECONDS),
        }
        if self.url in ("sqlite://", "sqlite:///:memory:"):
            # in-memory SQLite uses a singleton pool without checkout timeouts
            options.pop("pool_timeout")
        options.update(self.engine_options)
        self.engine = create_engine(self.url, **options)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            info={"locks": self.locks},
        )
        logger.info("Database engine initialised for %s", self.engine.url.render_as_string(hide_password=True))
        return self

    def create_all(self):
        self.init()
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        self.init()
        return self.SessionLocal()

    def health_check(self) -> dict:
        started = time.perf_counter()
        try:
            with self.session() as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc
        return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}

    def dispose(self):
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database engine disposed")
        self.engine = None
        self.SessionLocal = None


database = Database()


def get_db():
    db = database.session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """Commit on success, roll back on any failure (cancellation included)."""
    try:
        yield db
        db.commit()
    except StoreError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise translate_db_error(exc) from exc
    except BaseException:
        db.rollback()
        raise


def retry_transient(func):
    """Re-run an operation a bounded number of times on transient failures."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        attempts = max(1, settings.RETRY_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except (StoreUnavailableError, ConcurrentModificationError) as exc:
                if attempt == attempts:
                    raise
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying",
                    func.__name__, attempt, attempts, exc.message,
                )
                time.sleep(settings.RETRY_BACKOFF_SECONDS * attempt)

    return wrapper
