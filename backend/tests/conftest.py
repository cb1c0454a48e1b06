import os
import uuid
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

# Configure the app BEFORE any app import
os.environ["KUDOS_APP_ENV"] = "dev"
os.environ.setdefault("KUDOS_TRUSTED_HOSTS", "localhost,testserver")
os.environ["KUDOS_ALLOCATION_SCHEDULE_ENABLED"] = "0"
os.environ["KUDOS_SETTINGS_FILE"] = str(Path(__file__).parent / "missing_settings.toml")

from backend.app.core.auth import User, UserStore
from backend.app.core.database import Database
from backend.app.db.models import DbUser, Role
from backend.app.services.points import PointsLedger

TEST_PASSWORD = "testpassword123"


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'kudos.db'}"


@pytest.fixture
def db(db_url: str) -> Iterator[Database]:
    """Fresh file-backed database per test."""
    database = Database(url=db_url)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def ledger(db: Database) -> PointsLedger:
    return PointsLedger(db)


@pytest.fixture
def make_user(db: Database) -> Callable[..., User]:
    """Factory for registered users with a seeded balance."""

    def _make(
        *,
        role: Role = Role.EMPLOYEE,
        balance: int = 0,
        allocation: int = 100,
        first_name: str = "Test",
        last_name: str | None = None,
        active: bool = True,
    ) -> User:
        suffix = uuid.uuid4().hex[:8]
        user = UserStore(db).register_local_user(
            email=f"user_{suffix}@example.com",
            password=TEST_PASSWORD,
            first_name=first_name,
            last_name=last_name or suffix,
            role=role,
        )
        if balance:
            PointsLedger(db).credit(user.id, balance, "Seed balance")
        with db.session() as session:
            row = session.get(DbUser, user.id)
            row.monthly_points_allocation = allocation
            row.is_active = active
        return user

    return _make


@pytest.fixture
def client(db: Database, db_url: str, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    # The app lifespan opens its own engine on the same file
    monkeypatch.setenv("KUDOS_DATABASE_URL", db_url)

    from backend.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login(client: TestClient) -> Callable[[User], dict[str, str]]:
    def _login(user: User) -> dict[str, str]:
        resp = client.post("/auth/token", data={"username": user.email, "password": TEST_PASSWORD})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login
