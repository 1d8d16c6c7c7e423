"""Database connection and session management."""

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from gradebook.core.config import settings
from gradebook.core.exceptions import ConflictError, InternalError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
)

SessionLocal = sessionmaker(
    bind=engine,
    class_=Session,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def upsert_statement(db: Session, model):
    """Return the dialect-native INSERT builder supporting ON CONFLICT.

    Both the PostgreSQL and SQLite builders expose ``on_conflict_do_update``
    and ``excluded``, so callers stay dialect agnostic.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")


@contextmanager
def store_errors(resource: str) -> Iterator[None]:
    """Translate store failures into application errors.

    The session is left for ``get_db`` to roll back.
    """
    try:
        yield
    except IntegrityError as e:
        logger.exception(f"Integrity violation while writing {resource}")
        raise ConflictError(
            f"{resource} write conflicted with existing data",
            details={"resource": resource},
        ) from e
    except SQLAlchemyError as e:
        logger.exception(f"Store failure while writing {resource}")
        raise InternalError(
            f"Failed to write {resource}",
            details={"resource": resource},
        ) from e


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
