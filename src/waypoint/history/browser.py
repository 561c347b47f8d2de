"""URL-backed histories: pathname-based and hash-fragment-based.

Both store ``{"usr": state, "key": key, "idx": index}`` in the host's
per-entry state slot. ``idx`` lets a pop compute how far it travelled.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urljoin, urlsplit

from waypoint.diagnostics import Diagnostics
from waypoint.history.base import History, logger
from waypoint.history.host import HostStateError, NavigationHost, SimulatedHost
from waypoint.history.location import PATHNAME_SAFE, Action, Location, Update, create_location
from waypoint.routing.paths import Path, To, create_path, parse_path, resolve_path


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}" if parts.scheme else "http://localhost"


class UrlHistory(History):
    """Shared push/replace/pop handling for host-backed histories."""

    def __init__(self, host: NavigationHost, *, diagnostics: Diagnostics | None = None) -> None:
        super().__init__()
        self.host = host
        self._diagnostics = diagnostics or Diagnostics()
        index = self._get_index()
        if index is None:
            # Stamp the initial entry so the first pop can compute a delta
            index = 0
            state = self.host.history_state
            base = dict(state) if isinstance(state, Mapping) else {}
            self.host.replace_state({**base, "idx": index}, self.host.url)
        self._index: int | None = index

    def _get_index(self) -> int | None:
        state = self.host.history_state
        if isinstance(state, Mapping):
            return state.get("idx")
        return None

    def _entry_state(self) -> Mapping[str, Any]:
        state = self.host.history_state
        return state if isinstance(state, Mapping) else {}

    def _read_path(self) -> Path:
        raise NotImplementedError

    @property
    def location(self) -> Location:
        path = self._read_path()
        state = self._entry_state()
        return Location(
            pathname=path.pathname,
            search=path.search,
            hash=path.hash,
            state=state.get("usr"),
            key=state.get("key") or "default",
        )

    def _on_first_listener(self) -> None:
        self.host.add_pop_listener(self._handle_pop)

    def _on_last_listener(self) -> None:
        self.host.remove_pop_listener(self._handle_pop)

    def _handle_pop(self) -> None:
        self._action = Action.POP
        next_index = self._get_index()
        delta = None if next_index is None or self._index is None else next_index - self._index
        self._index = next_index
        self._notify(Update(Action.POP, self.location, delta))

    def _validate_location(self, location: Location, to: Any) -> None:
        """Hook for backend-specific target warnings."""

    def _history_state(self, location: Location, index: int) -> dict[str, Any]:
        return {"usr": location.state, "key": location.key, "idx": index}

    def push(self, to: To | Location, state: Any = None) -> None:
        self._action = Action.PUSH
        location = create_location(self.location, to, state)
        self._validate_location(location, to)
        self._index = (self._get_index() or 0) + 1
        url = self.create_href(location)
        try:
            self.host.push_state(self._history_state(location, self._index), url)
        except HostStateError:
            raise
        except Exception as exc:
            # The entry could not be added (e.g. a session history cap);
            # fall back to a full document navigation.
            logger.warning("push_state failed (%s), assigning %s", exc, url)
            self.host.assign(url)
        self._notify(Update(Action.PUSH, self.location, 1))

    def replace(self, to: To | Location, state: Any = None) -> None:
        self._action = Action.REPLACE
        location = create_location(self.location, to, state)
        self._validate_location(location, to)
        self._index = self._get_index()
        url = self.create_href(location)
        self.host.replace_state(self._history_state(location, self._index or 0), url)
        self._notify(Update(Action.REPLACE, self.location, 0))

    def go(self, delta: int) -> None:
        self.host.go(delta)

    def create_url(self, to: To) -> str:
        href = to if isinstance(to, str) else create_path(to)
        # A trailing space would otherwise be dropped by URL parsing
        if href.endswith(" "):
            href = href[:-1] + "%20"
        return urljoin(_origin(self.host.url) + "/", href)

    def encode_location(self, to: To) -> Path:
        parts = urlsplit(self.create_url(to))
        return Path(
            pathname=quote(parts.path or "/", safe=PATHNAME_SAFE),
            search=f"?{parts.query}" if parts.query else "",
            hash=f"#{parts.fragment}" if parts.fragment else "",
        )

    def assign(self, url: str) -> None:
        self.host.assign(url)


class BrowserHistory(UrlHistory):
    """History whose locations live in the host URL's path and query."""

    def _read_path(self) -> Path:
        parts = urlsplit(self.host.url)
        return Path(
            pathname=parts.path or "/",
            search=f"?{parts.query}" if parts.query else "",
            hash=f"#{parts.fragment}" if parts.fragment else "",
        )

    def create_href(self, to: To) -> str:
        return to if isinstance(to, str) else create_path(to)


class HashHistory(UrlHistory):
    """History whose locations live in the host URL's fragment.

    ``http://example.com/app#/courses?sort=asc`` is the location
    ``/courses?sort=asc``.
    """

    def _read_path(self) -> Path:
        partial = parse_path(urlsplit(self.host.url).fragment)
        pathname = partial.pathname or "/"
        if not pathname.startswith("/"):
            self._diagnostics.warning(
                not pathname.startswith("."),
                f"relative pathname {pathname!r} in the URL fragment is read as absolute",
            )
            pathname = resolve_path(pathname).pathname
        return Path(pathname, partial.search or "", partial.hash or "")

    def create_href(self, to: To) -> str:
        base = ""
        if self.host.base_href:
            # With a <base> element, fragment hrefs must carry the page URL
            base = self.host.url.split("#", 1)[0]
        return base + "#" + (to if isinstance(to, str) else create_path(to))

    def _validate_location(self, location: Location, to: Any) -> None:
        self._diagnostics.warning(
            location.pathname.startswith("/"),
            f"relative pathnames are not supported in hash history.push({to!r})",
        )


def create_browser_history(
    host: NavigationHost | None = None,
    *,
    diagnostics: Diagnostics | None = None,
) -> BrowserHistory:
    """Create a history over *host*'s URL path (a new ``SimulatedHost`` by default)."""
    return BrowserHistory(host or SimulatedHost(), diagnostics=diagnostics)


def create_hash_history(
    host: NavigationHost | None = None,
    *,
    diagnostics: Diagnostics | None = None,
) -> HashHistory:
    """Create a history over *host*'s URL fragment (a new ``SimulatedHost`` by default)."""
    return HashHistory(host or SimulatedHost(), diagnostics=diagnostics)
