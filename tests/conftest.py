"""
Shared pytest fixtures and configuration for stowed tests.
"""

import pytest

from stowed import DefaultsStore, _reset_standard


@pytest.fixture(autouse=True)
def reset_standard_store():
    """Reset the shared store before each test to prevent state leakage."""
    _reset_standard()
    yield
    _reset_standard()


@pytest.fixture
def store():
    """Provide a fresh memory-only DefaultsStore for tests that need it."""
    return DefaultsStore()
