"""Location values and history updates."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from waypoint.routing.paths import Path, To, create_path, to_partial


class Action(Enum):
    """How the current history entry was reached."""

    # Back/forward, or the initial entry
    POP = "POP"
    PUSH = "PUSH"
    REPLACE = "REPLACE"


@dataclass(frozen=True, slots=True)
class Location:
    """An entry in the history stack.

    ``key`` identifies the entry: ``"default"`` for the initial one,
    random for every push/replace.
    """

    pathname: str = "/"
    search: str = ""
    hash: str = ""
    state: Any = None
    key: str = "default"

    @property
    def path(self) -> str:
        """``pathname + search + hash`` as a single string."""
        return create_path(Path(self.pathname, self.search, self.hash))

    def with_path(self, path: Path) -> Location:
        """Return a copy with pathname/search/hash taken from *path*."""
        return Location(path.pathname, path.search, path.hash, self.state, self.key)


@dataclass(frozen=True, slots=True)
class Update:
    """What listeners receive for each history mutation."""

    action: Action
    location: Location
    delta: int | None = None


# Characters left as-is when percent-encoding a pathname
PATHNAME_SAFE = "/%:@!$&'()*+,;=-._~"


def create_key() -> str:
    return uuid.uuid4().hex[:8]


def create_location(current: str | Location, to: To | Location, state: Any = None, key: str | None = None) -> Location:
    """Build a Location for *to*, defaulting the pathname to *current*'s.

    A ``Location`` passed as *to* keeps its own key.
    """
    pathname = current if isinstance(current, str) else current.pathname
    if isinstance(to, Location):
        return Location(to.pathname, to.search, to.hash, state, to.key or key or create_key())
    partial = to_partial(to)
    return Location(
        pathname=partial.pathname if partial.pathname is not None else pathname,
        search=partial.search or "",
        hash=partial.hash or "",
        state=state,
        key=key or create_key(),
    )
