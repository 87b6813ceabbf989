"""
Shared fixtures.

The app reads its settings once at import, so the environment is prepared
here before anything from `app` is imported: a throwaway SQLite database,
fixed JWT/webhook secrets and no storage or AI credentials.
"""
import io
import os
import tempfile
from unittest.mock import patch

_TEST_DIR = tempfile.mkdtemp(prefix="image-studio-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["JWT_SECRET_KEY"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret"
os.environ["POLAR_WEBHOOK_SECRET"] = "test-polar-secret"
os.environ["AUTH_COOKIE_SECURE"] = "false"
os.environ["DEFAULT_USER_CREDITS"] = "4"
os.environ["GENERATION_CREDIT_COST"] = "1"
os.environ["LOG_LEVEL"] = "WARNING"
for _name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_S3_BUCKET_NAME", "AI_KEY"):
    os.environ[_name] = ""

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app.core.database import Base, SessionLocal, engine
from app.main import app
from app.models.user import User
from app.services.credits import get_credits
from app.services.security import create_access_token, hash_password


STYLE_URL = "https://example.com/styles/watercolor.png"


@pytest.fixture(autouse=True)
def _reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture(autouse=True)
def enqueued():
    """Capture background jobs instead of sending them to the broker."""
    with patch("app.services.orchestrator._enqueue") as generations, \
            patch("app.api.webhooks._enqueue_settlement") as settlements:
        yield {"generations": generations, "settlements": settlements}


def _create_user(db, email: str, role: str = "user") -> User:
    user = User(email=email, name=email.split("@")[0], hashed_password=hash_password("password123"), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    get_credits(db, user.id)
    return user


@pytest.fixture
def make_user(db):
    def factory(email: str = "alice@example.com", role: str = "user") -> User:
        return _create_user(db, email, role)
    return factory


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", role="admin")


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def auth_headers(user):
    return bearer(user)


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


def make_png(width: int = 8, height: int = 6, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()
