"""Pytest configuration and shared fixtures for the css-inliner test suite."""

from pathlib import Path

import pytest

from css_inliner.services import job_store
from css_inliner.services.compile_cache import CompileCache
from css_inliner.services.inliner import get_inliner

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    """Directory holding the HTML and CSS fixtures."""
    return FIXTURES


@pytest.fixture
def cache(fixtures_dir) -> CompileCache:
    """Fresh compile cache rooted at the fixtures directory."""
    return CompileCache(directory=fixtures_dir)


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Shared inliners and jobs must not leak between tests."""
    get_inliner.cache_clear()
    job_store.job_store._jobs.clear()
    yield
    get_inliner.cache_clear()
