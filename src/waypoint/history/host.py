"""The platform surface browser/hash histories drive.

``NavigationHost`` is the slice of a browser window the URL-backed
histories need: the current URL, the per-entry state slot, push/replace
of entries, relative traversal, and a pop notification. ``SimulatedHost``
implements it in-process so the URL-backed histories run anywhere.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urljoin

logger = logging.getLogger("waypoint.history")

PopListener = Callable[[], None]


class HostStateError(Exception):
    """History state could not be stored by the host."""


@runtime_checkable
class NavigationHost(Protocol):
    """Window-like object backing ``BrowserHistory`` and ``HashHistory``."""

    @property
    def url(self) -> str: ...

    @property
    def history_state(self) -> Any: ...

    @property
    def base_href(self) -> str | None: ...

    def push_state(self, state: Any, url: str) -> None: ...

    def replace_state(self, state: Any, url: str) -> None: ...

    def go(self, delta: int) -> None: ...

    def assign(self, url: str) -> None: ...

    def add_pop_listener(self, listener: PopListener) -> None: ...

    def remove_pop_listener(self, listener: PopListener) -> None: ...


class SimulatedHost:
    """An in-process window: a session history of ``(state, url)`` entries.

    Mirrors platform behavior that matters to routing. ``push_state`` and
    ``replace_state`` never fire pop listeners; ``go`` does, and only when
    the target index exists. State is deep-copied on write the way a
    browser structured-clones it.

    Args:
        url: Absolute URL of the initial entry.
        base_href: Value of a ``<base href>`` element, if the page has one.
        max_entries: Optional cap on the session history length; pushing
            past it raises ``RuntimeError``, like browsers that limit
            ``pushState`` calls.
    """

    def __init__(
        self,
        url: str = "http://localhost/",
        *,
        base_href: str | None = None,
        max_entries: int | None = None,
    ) -> None:
        self._entries: list[tuple[Any, str]] = [(None, url)]
        self._index = 0
        self._pop_listeners: list[PopListener] = []
        self._base_href = base_href
        self._max_entries = max_entries
        self.assigned: list[str] = []

    @property
    def url(self) -> str:
        return self._entries[self._index][1]

    @property
    def history_state(self) -> Any:
        return self._entries[self._index][0]

    @property
    def base_href(self) -> str | None:
        return self._base_href

    @property
    def length(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    def _clone(self, state: Any) -> Any:
        try:
            return copy.deepcopy(state)
        except (TypeError, copy.Error) as exc:
            raise HostStateError(f"history state is not cloneable: {exc}") from exc

    def push_state(self, state: Any, url: str) -> None:
        stored = self._clone(state)
        if self._max_entries is not None and self._index + 2 > self._max_entries:
            raise RuntimeError("session history limit reached")
        del self._entries[self._index + 1 :]
        self._entries.append((stored, urljoin(self.url, url)))
        self._index += 1

    def replace_state(self, state: Any, url: str) -> None:
        self._entries[self._index] = (self._clone(state), urljoin(self.url, url))

    def go(self, delta: int) -> None:
        next_index = self._index + delta
        if delta == 0 or not 0 <= next_index < len(self._entries):
            return
        self._index = next_index
        for listener in list(self._pop_listeners):
            listener()

    def assign(self, url: str) -> None:
        target = urljoin(self.url, url)
        logger.info("document navigation to %s", target)
        self.assigned.append(target)

    def add_pop_listener(self, listener: PopListener) -> None:
        self._pop_listeners.append(listener)

    def remove_pop_listener(self, listener: PopListener) -> None:
        if listener in self._pop_listeners:
            self._pop_listeners.remove(listener)
