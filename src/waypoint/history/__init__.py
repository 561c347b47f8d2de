"""History stores.

Three backends share the ``History`` shape: ``MemoryHistory`` (an
explicit entry list), ``BrowserHistory`` (the host URL's path) and
``HashHistory`` (the host URL's fragment). The URL-backed ones drive a
``NavigationHost``; ``SimulatedHost`` is the in-process implementation.
"""

from waypoint.history.base import History, Listener
from waypoint.history.browser import (
    BrowserHistory,
    HashHistory,
    UrlHistory,
    create_browser_history,
    create_hash_history,
)
from waypoint.history.host import HostStateError, NavigationHost, SimulatedHost
from waypoint.history.location import Action, Location, Update, create_key, create_location
from waypoint.history.memory import MemoryHistory, create_memory_history

__all__ = [
    "Action",
    "BrowserHistory",
    "HashHistory",
    "History",
    "HostStateError",
    "Listener",
    "Location",
    "MemoryHistory",
    "NavigationHost",
    "SimulatedHost",
    "Update",
    "UrlHistory",
    "create_browser_history",
    "create_hash_history",
    "create_key",
    "create_location",
    "create_memory_history",
]
