"""In-memory history: an explicit entry list plus a cursor.

Used for tests, headless clients, and any environment without a
platform navigation stack.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import quote, urljoin

from waypoint.diagnostics import Diagnostics
from waypoint.history.base import History, logger
from waypoint.history.location import PATHNAME_SAFE, Action, Location, Update, create_location
from waypoint.routing.paths import PartialPath, Path, To, create_path, to_partial

MEMORY_ORIGIN = "http://localhost"


class MemoryHistory(History):
    """A history stack held entirely in memory.

    Usage::

        history = create_memory_history(["/", "/courses"], initial_index=1)
        history.push("/courses/42")
        history.go(-1)
        assert history.location.pathname == "/courses"
    """

    def __init__(
        self,
        initial_entries: Sequence[str | Mapping[str, Any] | PartialPath] = ("/",),
        initial_index: int | None = None,
        *,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        super().__init__()
        self._diagnostics = diagnostics or Diagnostics()
        self._entries: list[Location] = []
        self._index = 0
        self.assigned: list[str] = []

        for i, entry in enumerate(initial_entries or ("/",)):
            state = entry.get("state") if isinstance(entry, Mapping) else None
            key = "default" if i == 0 else None
            self._entries.append(self._create_location(entry, state, key))
        if not self._entries:
            self._entries.append(self._create_location("/", None, "default"))

        self._index = self._clamp(len(self._entries) - 1 if initial_index is None else initial_index)

    def _clamp(self, n: int) -> int:
        return min(max(n, 0), len(self._entries) - 1)

    def _create_location(self, to: Any, state: Any = None, key: str | None = None) -> Location:
        current = self._entries[self._index].pathname if self._entries else "/"
        if isinstance(to, Mapping):
            to = {k: v for k, v in to.items() if k in ("pathname", "search", "hash")}
        location = create_location(current, to, state, key)
        self._diagnostics.warning(
            location.pathname.startswith("/"),
            f"relative pathnames are not supported in memory history: {to!r}",
        )
        return location

    @property
    def location(self) -> Location:
        return self._entries[self._index]

    @property
    def index(self) -> int:
        return self._index

    @property
    def entries(self) -> tuple[Location, ...]:
        return tuple(self._entries)

    def create_href(self, to: To) -> str:
        return to if isinstance(to, str) else create_path(to)

    def create_url(self, to: To) -> str:
        return urljoin(MEMORY_ORIGIN, self.create_href(to))

    def encode_location(self, to: To) -> Path:
        partial = to_partial(to)
        return Path(
            pathname=quote(partial.pathname or "", safe=PATHNAME_SAFE),
            search=partial.search or "",
            hash=partial.hash or "",
        )

    def push(self, to: To | Location, state: Any = None) -> None:
        self._action = Action.PUSH
        next_location = self._create_location(to, state)
        self._index += 1
        # Pushing discards any forward entries
        del self._entries[self._index :]
        self._entries.append(next_location)
        self._notify(Update(Action.PUSH, next_location, 1))

    def replace(self, to: To | Location, state: Any = None) -> None:
        self._action = Action.REPLACE
        next_location = self._create_location(to, state)
        self._entries[self._index] = next_location
        self._notify(Update(Action.REPLACE, next_location, 0))

    def go(self, delta: int) -> None:
        next_index = self._clamp(self._index + delta)
        if next_index == self._index:
            # Already at the end of history in that direction
            return
        self._action = Action.POP
        actual = next_index - self._index
        self._index = next_index
        self._notify(Update(Action.POP, self._entries[next_index], actual))

    def assign(self, url: str) -> None:
        logger.info("document navigation to %s", url)
        self.assigned.append(url)


def create_memory_history(
    initial_entries: Sequence[str | Mapping[str, Any] | PartialPath] = ("/",),
    initial_index: int | None = None,
    *,
    diagnostics: Diagnostics | None = None,
) -> MemoryHistory:
    """Create an in-memory history stack."""
    return MemoryHistory(initial_entries, initial_index, diagnostics=diagnostics)
