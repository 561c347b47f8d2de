"""Shared fixtures for waypoint tests."""

import pytest

from waypoint.diagnostics import Diagnostics


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def diagnostics() -> Diagnostics:
    return Diagnostics()
