"""
Test configuration and fixtures for the SiteCraft analysis API.

Every test gets its own SQLite file database with the catalog seeded, a
filesystem asset store under tmp_path, and mocks for the three external
collaborators: the job queue, the completion notifier and the capturer.
"""
import os
import tempfile
from typing import Generator
from unittest.mock import MagicMock

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="sitecraft-logs-"))
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mktemp(suffix='.db')}")

import pytest
from fastapi.testclient import TestClient

from sitecraft.features.analysis import models  # noqa: F401
from sitecraft.features.analysis.catalog import seed_catalog
from sitecraft.features.analysis.models import AnalysisStatus
from sitecraft.features.analysis.schemas.assets import CapturedAssets
from sitecraft.platform.config import Settings
from sitecraft.platform.container import build_container
from sitecraft.platform.db.base import Base

SAMPLE_HTML = """<!DOCTYPE html>
<html>
<head><title>Example Domain</title></head>
<body>
  <h1>Example</h1>
  <h3>Skipped level</h3>
  <img src="/logo.png">
  <label for="email">Email</label><input id="email" name="email" type="email">
</body>
</html>
"""

# Severity-weighted scores for SAMPLE_HTML with the reference analyzers
SAMPLE_SCORES = {"accessibility": 60, "structure": 84, "performance": 97}

ALL_MODULES = ["accessibility", "structure", "performance"]


def make_captured(url: str = "https://example.com/", html: str = SAMPLE_HTML, load_time_ms: float = 1200.0):
    return CapturedAssets(
        url=url,
        final_url=url,
        html=html,
        title="Example Domain",
        load_time_ms=load_time_ms,
        screenshot=b"\x89PNG\r\n\x1a\nfake",
        robots_txt="User-agent: *\nDisallow:\n",
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'sitecraft.db'}",
        DB_POOL_TIMEOUT=30,
        ASSET_STORE_ROOT=str(tmp_path / "assets"),
        FETCH_MAX_ATTEMPTS=3,
        FETCH_BACKOFF_SECONDS=0.0,
        STORE_BACKOFF_SECONDS=0.01,
        ANALYZER_TIMEOUT_SECONDS=2.0,
        DAILY_ANALYSIS_LIMIT=50,
        DEFAULT_MODULES=ALL_MODULES,
    )


@pytest.fixture
def job_queue():
    return MagicMock(name="job_queue")


@pytest.fixture
def notifier():
    return MagicMock(name="notifier")


@pytest.fixture
def capturer():
    capturer = MagicMock(name="capturer")
    capturer.capture.return_value = make_captured()
    return capturer


@pytest.fixture
def container(settings, job_queue, notifier, capturer):
    container = build_container(
        settings,
        job_queue=job_queue,
        notifier=notifier,
        capturer=capturer,
        sleep=lambda seconds: None,
    )
    Base.metadata.create_all(container.engine)
    with container.session_factory.begin() as session:
        seed_catalog(session)
    yield container
    container.close()


@pytest.fixture
def store(container):
    return container.status_store


@pytest.fixture
def modules(store):
    """Catalog modules keyed by module key."""
    return {module.key: module for module in store.list_modules()}


@pytest.fixture
def new_analysis(store, modules):
    """Factory: an analysis with pending jobs for the given module keys."""

    def _create(keys=ALL_MODULES, url="https://example.com/", workspace_id="ws_test", status=None):
        analysis = store.create_analysis_with_jobs(workspace_id, url, [modules[key] for key in keys])
        if status is not None:
            assert store.update_analysis_if(analysis.id, [AnalysisStatus.pending], status)
        return analysis

    return _create


@pytest.fixture
def client(container) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    The app is built around the test container, so requests hit the same
    database the test inspects.
    """
    from sitecraft.main import create_app

    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def sample_html() -> str:
    return SAMPLE_HTML


@pytest.fixture
def sample_scores():
    return dict(SAMPLE_SCORES)


@pytest.fixture
def captured_factory():
    return make_captured
