"""
FloraLens Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── database: creates/drops the scans table on the app's SQLite engine
    ├── fake_storage: in-memory StorageService that records put/sign/delete
    ├── fake_vision: VisionService returning a configurable outcome
    ├── sample_analysis / sample_image_bytes: canned inputs
    ├── make_token: mints real JWTs with the app's secret
    └── test_client: HTTPX AsyncClient wired to the app with the fakes
"""

import os
import tempfile

# Override settings for testing BEFORE any app imports
_TEST_DIR = tempfile.mkdtemp(prefix="floralens_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["PUBLIC_BASE_URL"] = "http://test"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Dict, List  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.auth import AuthSession, create_access_token  # noqa: E402
from app.context import RequestContext  # noqa: E402
from app.exceptions import StorageServiceError  # noqa: E402
from app.schemas.scan import Confidence, FloraFaunaAnalysis  # noqa: E402
from app.services.storage_base import StorageService  # noqa: E402
from app.services.vision_base import (  # noqa: E402
    AnalysisOutcome,
    AnalysisSuccess,
    VisionService,
)


# ══════════════════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════════════════

class FakeStorage(StorageService):
    """Keeps objects in a dict. Each sign() call yields a distinct URL."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.put_calls: List[str] = []
        self.deleted: List[str] = []
        self.sign_count = 0
        self.fail_put = False
        self.fail_delete = False
        self.healthy = True

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.put_calls.append(key)
        if self.fail_put:
            raise StorageServiceError(context={"key": key})
        self.objects[key] = data
        return key

    async def sign(self, key: str) -> str:
        self.sign_count += 1
        return f"https://signed.test/{key}?sig={self.sign_count}"

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StorageServiceError(message="delete failed", context={"key": key})
        self.deleted.append(key)
        self.objects.pop(key, None)

    async def health_check(self) -> bool:
        return self.healthy


class FakeVision(VisionService):
    """Returns `outcome` for every image and records what it was sent."""

    def __init__(self, outcome: AnalysisOutcome):
        self.outcome = outcome
        self.calls: List[tuple] = []
        self.healthy = True

    async def analyze_image(self, data: bytes, mime_type: str) -> AnalysisOutcome:
        self.calls.append((len(data), mime_type))
        return self.outcome

    async def health_check(self) -> bool:
        return self.healthy


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def sample_analysis():
    return FloraFaunaAnalysis(
        species="Amanita muscaria",
        common_name="Fly agaric",
        is_safe_to_eat=False,
        is_safe_to_touch=True,
        confidence=Confidence.HIGH,
        warnings="Toxic if ingested. Wash hands after handling.",
        description="Red-capped mushroom with white warts, common under birch and pine.",
    )


@pytest.fixture
def sample_image_bytes():
    """Minimal JPEG: SOI + JFIF header + EOI. Never reaches a real model."""
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_vision(sample_analysis):
    return FakeVision(AnalysisSuccess(analysis=sample_analysis))


@pytest.fixture
def make_token():
    """make_token("user-1") → "Bearer <jwt>" header dict."""

    def _make(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _make


@pytest.fixture
def request_context():
    return RequestContext(request_id="test-rid", session=AuthSession(user_id="user-1"))


@pytest.fixture
def mock_db_session():
    """
    AsyncMock standing in for AsyncSession in service-level tests.

    Usage:
        mock_db_session.commit.side_effect = SQLAlchemyError("boom")
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.add = MagicMock()
    return session


@pytest_asyncio.fixture
async def database():
    """Fresh scans table on the app engine (file-backed SQLite) per test."""
    from app.database import Base, engine
    from app.models.scan import Scan  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def test_client(database, fake_storage, fake_vision):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport.

    Storage and vision adapters are replaced with the fakes above; the
    database is the real SQLite schema.
    """
    from app.main import app
    from app.services.gemini_service import get_vision_service
    from app.services.storage_service import get_storage_service

    app.dependency_overrides[get_storage_service] = lambda: fake_storage
    app.dependency_overrides[get_vision_service] = lambda: fake_vision

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

