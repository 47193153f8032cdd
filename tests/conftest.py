"""
Pytest configuration and fixtures.
"""
import base64

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from unittest.mock import patch

# Import Base and dependencies from the app's database module
from scanguard.core.database import Base, get_db, get_session_factory
from scanguard.main import app

# Import all models to ensure they register with Base.metadata
# This is critical - tables won't be created if models aren't imported
from scanguard.models import (
    Scan,
    Vulnerability,
    ComplianceResult,
    SbomComponent,
    AnalysisLog,
    CveCache,
)
from scanguard.schemas.analysis import BinarySource
from scanguard.schemas.scan import ScanCreate
from scanguard.services.scan_service import ScanService

# Use file-based SQLite for testing (more reliable than in-memory)
TEST_DATABASE_URL = "sqlite:///./test_scanguard.db"

# Create test engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)


@event.listens_for(test_engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# Children first so deletes never trip foreign keys
TABLES_IN_DELETE_ORDER = (AnalysisLog, SbomComponent, ComplianceResult, Vulnerability, Scan, CveCache)

SAMPLE_FIRMWARE = b"\x7fELF\x01\x01\x01\x00" + bytes(range(256)) * 4


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """
    Create all tables before tests run and clean up after all tests complete.
    This runs once per test session.
    """
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def clean_tables():
    """Empty every table after each test so counts and listings start from zero."""
    yield
    db = TestingSessionLocal()
    try:
        for model in TABLES_IN_DELETE_ORDER:
            db.query(model).delete(synchronize_session=False)
        db.commit()
    finally:
        db.close()


@pytest.fixture(scope="function", autouse=True)
def disable_openai():
    """Disable the LLM gateway for all tests by patching the settings."""
    with patch("scanguard.core.config.settings.OPENAI_API_KEY", None):
        yield


@pytest.fixture(scope="function", autouse=True)
def disable_api_key():
    """Disable API key authentication for all tests."""
    with patch("scanguard.core.config.settings.API_KEY", None), \
            patch("scanguard.core.config.settings.API_KEYS", {}):
        yield


@pytest.fixture(scope="function", autouse=True)
def fast_mock_pipeline():
    """Run the mock analyzer without pauses between stages."""
    with patch("scanguard.core.config.settings.ANALYSIS_MODE", "mock"), \
            patch("scanguard.core.config.settings.PIPELINE_STAGE_DELAY_SECONDS", 0), \
            patch("scanguard.core.config.settings.MOCK_ANALYSIS_SEED", 7):
        yield


def override_get_db():
    """Override get_db dependency to use test database session."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def override_get_session_factory():
    return TestingSessionLocal


@pytest.fixture(scope="function")
def client():
    """
    Create a test client with database override.

    Authentication and the LLM gateway are disabled via fixtures, so the
    pipeline runs on the mock analyzer. Background tasks run before the
    TestClient call returns, so a scan started in a test is finished by
    the time the response is read.
    """
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    yield TestClient(app)

    # Clean up: clear dependency overrides after test
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_with_auth():
    """
    Create a test client with API key authentication enabled.

    "admin-key" is the admin key; the keyring adds one key per lower role.
    """
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    keyring = {
        "viewer-key": "viewer",
        "operator-key": "operator",
        "analyst-key": "analyst",
    }
    with patch("scanguard.core.config.settings.API_KEY", "admin-key"), \
            patch("scanguard.core.config.settings.API_KEYS", keyring):
        yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def db_session():
    """
    Provide a database session for tests that need direct DB access.
    """
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


@pytest.fixture
def make_scan(db_session):
    """Factory creating queued scans through the service layer."""
    def _make(**overrides):
        data = {"ecu_name": "Engine Control Module", "ecu_type": "Engine", "architecture": "ARM"}
        data.update(overrides)
        return ScanService(db_session).create_scan(ScanCreate(**data))
    return _make


@pytest.fixture
def binary_source():
    """Factory for inline base64 firmware sources."""
    def _make(file_name: str = "ecm_v2.bin", content: bytes = SAMPLE_FIRMWARE) -> BinarySource:
        return BinarySource(file_name=file_name, content_base64=base64.b64encode(content).decode("ascii"))
    return _make


@pytest.fixture
def analyze_payload():
    """Factory for POST /scans/{id}/analyze bodies with a binary source."""
    def _make(file_name: str = "ecm_v2.bin", content: bytes = SAMPLE_FIRMWARE) -> dict:
        return {
            "source": {
                "kind": "binary",
                "file_name": file_name,
                "content_base64": base64.b64encode(content).decode("ascii"),
            }
        }
    return _make


@pytest.fixture
def session_factory():
    """Session factory handed to pipeline runs executed directly in tests."""
    return TestingSessionLocal
