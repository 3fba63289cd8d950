"""Shared fixtures for QuantGate tests."""

import pytest

from factories import NOW


@pytest.fixture
def now():
    return NOW
