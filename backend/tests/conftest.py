from pathlib import Path
import os
import tempfile
import pytest

# Point the app at a throwaway SQLite file before anything imports it.
_DB_DIR = Path(tempfile.mkdtemp(prefix="tutorium-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"
os.environ["ALLOW_DEV_CORS"] = "false"

from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from tutorium.database import engine, create_db_and_tables
from tutorium.schemas import AccountCreate
from tutorium.services import AccountService


@pytest.fixture(autouse=True)
def reset_db():
    """Ensure a fresh schema (with seeded roles) for every test."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def client():
    from tutorium.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_account():
    """Register an account through the service and return its projection."""
    def _make(email, roles=("STUDENT",), first_name="Test", last_name="User"):
        with Session(engine) as s:
            payload = AccountCreate(
                first_name=first_name,
                last_name=last_name,
                email=email,
                password="secret",
                roles=list(roles),
            )
            return AccountService(s).register(payload)
    return _make
