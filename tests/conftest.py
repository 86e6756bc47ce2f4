"""Shared fixtures."""

from typing import Generator

import pytest

from phase_timing.config import reset_settings


@pytest.fixture(autouse=True)
def fresh_settings() -> Generator[None, None, None]:
    """Drop the settings singleton around every test."""
    reset_settings()
    yield
    reset_settings()
