import base64
import io

import pytest
from typing import Generator
from fastapi.testclient import TestClient
from PIL import Image as PILImage
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from unittest.mock import MagicMock

from app.api.deps import get_db, get_current_user
from app.core.security import get_password_hash
from app.database import Base
from app.main import app
from app.models.user import User
from app.services.hierarchy import HierarchyRepository
from app.services.image_store import ImageStore, get_image_store


# --- FIXTURE START ---
@pytest.fixture(scope="session", autouse=True)
def mock_background_services():
    """
    Global patch to prevent background threads (Reclaimer, Scheduler)
    from starting during tests. Sweeps are run explicitly by the tests.
    """
    from app.services.scheduler import scheduler_service
    from app.services.reclaimer import reclaim_worker

    scheduler_service.start = MagicMock()
    scheduler_service.stop = MagicMock()

    reclaim_worker.start = MagicMock()
    reclaim_worker.stop = MagicMock()
    reclaim_worker.trigger = MagicMock()


@pytest.fixture(autouse=True)
def reset_trigger_mock():
    from app.services.reclaimer import reclaim_worker
    reclaim_worker.trigger.reset_mock()
    yield
# --- FIXTURE END ---

# 1. SETUP TEST DATABASE
# SQLite in-memory with StaticPool so the data persists
# for the duration of a single test function but isolates threads.
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# 2. DB SESSION FIXTURE
@pytest.fixture(scope="function")
def db():
    """
    Creates a fresh database for every single test case.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


# 3. IMAGE STORE FIXTURES
@pytest.fixture(scope="function")
def image_store(tmp_path) -> ImageStore:
    return ImageStore(root=tmp_path / "images", image_format="webp", quality=80)


@pytest.fixture(scope="function")
def repo(db, image_store) -> HierarchyRepository:
    return HierarchyRepository(db, image_store)


def make_image_bytes(color=(200, 30, 30), size=(8, 12), fmt="PNG", mode="RGB") -> bytes:
    """Small real raster image for upload tests"""
    buffer = io.BytesIO()
    PILImage.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_image_b64(**kwargs) -> str:
    return base64.b64encode(make_image_bytes(**kwargs)).decode("ascii")


@pytest.fixture
def image_bytes():
    """Factory: image_bytes(color=(0, 0, 255)) -> PNG bytes"""
    return make_image_bytes


@pytest.fixture
def image_b64():
    """Factory: image_b64() -> base64 PNG, as the admin API expects it"""
    return make_image_b64


# 4. CLIENT FIXTURE (Unauthenticated)
@pytest.fixture(scope="function")
def client(db, image_store) -> Generator:
    """
    Returns a TestClient with the database and image store overridden.
    """

    def override_get_db():
        try:
            yield db
        finally:
            # The 'db' fixture handles the teardown at the end of the test function.
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_store] = lambda: image_store

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# 5. USER FIXTURES
@pytest.fixture(scope="function")
def normal_user(db):
    user = User(
        email="reader@example.com",
        hashed_password=get_password_hash("test1234"),
        is_superuser=False,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def admin_user(db):
    user = User(
        email="admin@example.com",
        hashed_password="fakehash",
        is_superuser=True,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# 6. AUTHENTICATED CLIENT FIXTURES
@pytest.fixture(scope="function")
def auth_client(client, normal_user):
    """
    Returns a client that is already "logged in" as a normal user.
    """
    app.dependency_overrides[get_current_user] = lambda: normal_user
    return client


@pytest.fixture(scope="function")
def admin_client(client, admin_user):
    """
    Returns a client logged in as Admin.
    """
    app.dependency_overrides[get_current_user] = lambda: admin_user
    return client
