"""Root pytest configuration for oci-layout tests."""
import pytest

from oci_layout.indexer import Indexer
from oci_layout.layout import Layout
from oci_layout.settings import Settings
from oci_layout.store import LocalStore

from .fakes.fake_ingester import FakeIngester


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Automatically set up test environment variables."""
    for key in ("OCI_LAYOUT_DIGEST_ALGORITHM", "OCI_LAYOUT_CHUNK_SIZE", "OCI_LAYOUT_LOCK_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("OCI_LAYOUT_FSYNC", "false")


# Standardized test fixtures
@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(fsync=False, lock_timeout_s=5.0)


@pytest.fixture
def store(tmp_path, settings):
    """Content store in a fresh directory."""
    return LocalStore(tmp_path / "layout", settings)


@pytest.fixture
def indexer(tmp_path):
    """Indexer over a fresh index file."""
    return Indexer(tmp_path / "index.json", lock_timeout_s=5.0, fsync=False)


@pytest.fixture
def layout(tmp_path, settings):
    """Layout in a fresh directory."""
    return Layout.new(tmp_path / "layout", settings)


@pytest.fixture
def ingester():
    """In-memory ingester for testing."""
    return FakeIngester()
