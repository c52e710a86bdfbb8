"""Pytest configuration and shared fixtures."""

import pytest

from apphost import Application, reset_application


@pytest.fixture(autouse=True)
def fresh_singleton():
    """Drop the process-wide application and exit handler around each test."""
    reset_application()
    yield
    reset_application()


@pytest.fixture
def app() -> Application:
    """A standalone application, independent of the singleton."""
    return Application()
