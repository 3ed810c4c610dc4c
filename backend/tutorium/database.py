"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file by default) and provides
small helpers used by the application and tests.
"""

from sqlmodel import SQLModel, create_engine, Session, select
from .config import settings
from . import models

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args)

DEFAULT_ROLES = ("STUDENT", "TUTOR", "ADMIN", "VERIFIER")


def create_db_and_tables():
    """Create database tables using SQLModel metadata and seed roles.

    Intended for local development and tests; schema changes in a real
    deployment are out of scope for this package.
    """
    SQLModel.metadata.create_all(engine)
    _ensure_default_roles()


def _ensure_default_roles():
    """Insert the built-in role names if they are missing (idempotent)."""
    with Session(engine) as session:
        existing = set(session.exec(select(models.Role.name)).all())
        for name in DEFAULT_ROLES:
            if name not in existing:
                session.add(models.Role(name=name))
        session.commit()


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
