"""Pytest configuration for serial proxy tests."""

import pytest

from tests.helpers import Notifications


@pytest.fixture
def notifications():
    return Notifications()
