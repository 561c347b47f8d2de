"""Test utilities for waypoint routers.

Provides a memory-history router factory, controllable loader results,
and a subscriber that records every published snapshot::

    from waypoint.testing import Deferred, StateRecorder, create_test_router
"""

from waypoint.testing.deferred import Deferred
from waypoint.testing.recorder import StateRecorder
from waypoint.testing.router import create_test_router

__all__ = [
    "Deferred",
    "StateRecorder",
    "create_test_router",
]
