"""Path values and path resolution.

``Path`` is a fully qualified ``{pathname, search, hash}`` triple.
``PartialPath`` is what callers hand in as a navigation target, with any
field possibly missing. ``resolve_to`` resolves a target against the
pathnames of the active route chain the way a filesystem path resolver
would.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias
from urllib.parse import parse_qsl

from waypoint.errors import NavigationTargetError


@dataclass(frozen=True, slots=True)
class Path:
    """A fully resolved path."""

    pathname: str = "/"
    search: str = ""
    hash: str = ""


@dataclass(frozen=True, slots=True)
class PartialPath:
    """A navigation target where any field may be omitted."""

    pathname: str | None = None
    search: str | None = None
    hash: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PartialPath:
        return cls(
            pathname=data.get("pathname"),
            search=data.get("search"),
            hash=data.get("hash"),
        )

    def as_dict(self) -> dict[str, str]:
        """Fields that were supplied, in declaration order."""
        return {
            key: value
            for key, value in (("pathname", self.pathname), ("search", self.search), ("hash", self.hash))
            if value is not None
        }


# Anything accepted as a navigation target
To: TypeAlias = "str | Path | PartialPath | Mapping[str, Any]"


def parse_path(path: str) -> PartialPath:
    """Split a URL path string into its pathname, search, and hash.

    ::

        parse_path("/a/b?x=1#top") -> PartialPath("/a/b", "?x=1", "#top")
        parse_path("?x=1")         -> PartialPath(None, "?x=1", None)
    """
    pathname: str | None = None
    search: str | None = None
    hash_: str | None = None
    if path:
        hash_index = path.find("#")
        if hash_index >= 0:
            hash_ = path[hash_index:]
            path = path[:hash_index]
        search_index = path.find("?")
        if search_index >= 0:
            search = path[search_index:]
            path = path[:search_index]
        if path:
            pathname = path
    return PartialPath(pathname=pathname, search=search, hash=hash_)


def to_partial(to: To) -> PartialPath:
    """Normalize any accepted target shape to a ``PartialPath``."""
    if isinstance(to, str):
        return parse_path(to)
    if isinstance(to, PartialPath):
        return to
    if isinstance(to, Mapping):
        return PartialPath.from_mapping(to)
    # Path, Location, or anything else with the three fields
    return PartialPath(to.pathname, to.search, to.hash)


def create_path(path: Path | PartialPath | Mapping[str, Any]) -> str:
    """Join a path's fields back into a string."""
    partial = to_partial(path) if not isinstance(path, str) else parse_path(path)
    pathname = partial.pathname or "/"
    search = partial.search or ""
    hash_ = partial.hash or ""
    if search and search != "?":
        pathname += search if search.startswith("?") else "?" + search
    if hash_ and hash_ != "#":
        pathname += hash_ if hash_.startswith("#") else "#" + hash_
    return pathname


def join_paths(paths: Sequence[str]) -> str:
    """Join path pieces and collapse duplicate slashes."""
    return re.sub(r"//+", "/", "/".join(paths))


def normalize_pathname(pathname: str) -> str:
    """Strip trailing slashes and force a single leading slash."""
    return re.sub(r"^/*", "/", pathname.rstrip("/"), count=1)


def normalize_search(search: str | None) -> str:
    if not search or search == "?":
        return ""
    return search if search.startswith("?") else "?" + search


def normalize_hash(hash_: str | None) -> str:
    if not hash_ or hash_ == "#":
        return ""
    return hash_ if hash_.startswith("#") else "#" + hash_


def strip_basename(pathname: str, basename: str) -> str | None:
    """Remove *basename* from the front of *pathname*.

    Comparison is case-insensitive. Returns ``None`` when *pathname* is
    not inside *basename*.
    """
    if basename == "/":
        return pathname
    if not pathname.lower().startswith(basename.lower()):
        return None

    # Let the basename carry an optional trailing slash
    start = len(basename) - 1 if basename.endswith("/") else len(basename)
    next_char = pathname[start : start + 1]
    if next_char and next_char != "/":
        # pathname does not start with basename/
        return None
    return pathname[start:] or "/"


def has_naked_index_query(search: str) -> bool:
    """True when the search string carries a bare ``index`` param."""
    return any(
        key == "index" and value == ""
        for key, value in parse_qsl(search.lstrip("?"), keep_blank_values=True)
    )


def resolve_path(to: To, from_pathname: str = "/") -> Path:
    """Resolve *to* relative to *from_pathname*."""
    partial = to_partial(to)
    to_pathname = partial.pathname
    if to_pathname:
        pathname = to_pathname if to_pathname.startswith("/") else _resolve_pathname(to_pathname, from_pathname)
    else:
        pathname = from_pathname
    return Path(
        pathname=pathname,
        search=normalize_search(partial.search),
        hash=normalize_hash(partial.hash),
    )


def _resolve_pathname(relative_path: str, from_pathname: str) -> str:
    segments = from_pathname.rstrip("/").split("/")
    for segment in relative_path.split("/"):
        if segment == "..":
            # Keep the root "/" segment so we don't climb past it
            if len(segments) > 1:
                segments.pop()
        elif segment != ".":
            segments.append(segment)
    return "/".join(segments) if len(segments) > 1 else "/"


def _invalid_path_error(char: str, field: str, dest: str, path: PartialPath) -> NavigationTargetError:
    return NavigationTargetError(
        f"Cannot include a '{char}' character in a manually specified "
        f"`to.{field}` field [{json.dumps(path.as_dict(), separators=(',', ':'))}].  "
        f"Please separate it out to the `to.{dest}` field. Alternatively you may "
        "provide the full path as a string and the router will parse it for you."
    )


def validate_target(path: PartialPath) -> None:
    """Reject punctuation that belongs to another field.

    Raises ``NavigationTargetError`` for a ``?`` or ``#`` inside
    ``pathname`` or a ``#`` inside ``search``.
    """
    if path.pathname and "?" in path.pathname:
        raise _invalid_path_error("?", "pathname", "search", path)
    if path.pathname and "#" in path.pathname:
        raise _invalid_path_error("#", "pathname", "hash", path)
    if path.search and "#" in path.search:
        raise _invalid_path_error("#", "search", "hash", path)


def resolve_to(
    to: To,
    route_pathnames: Sequence[str],
    location_pathname: str,
    is_path_relative: bool = False,
) -> Path:
    """Resolve a navigation target against the active route chain.

    *route_pathnames* are the pathname bases of the path-contributing
    matches, outermost first. Leading ``..`` segments climb that chain
    (route-relative) unless *is_path_relative* is set, in which case they
    climb URL segments instead.

    ::

        resolve_to("..", ["/courses", "/courses/:id"], "/courses/42").pathname
        # "/courses"

    Raises ``NavigationTargetError`` for malformed target objects.
    """
    if isinstance(to, str):
        target = parse_path(to)
    else:
        target = to_partial(to)
        validate_target(target)

    is_empty_path = to == "" or target.pathname == ""
    to_pathname = "/" if is_empty_path else target.pathname

    if to_pathname is None:
        # Search/hash-only targets stay on the current location
        from_pathname = location_pathname
    else:
        route_index = len(route_pathnames) - 1
        if not is_path_relative and to_pathname.startswith(".."):
            to_segments = to_pathname.split("/")
            while to_segments and to_segments[0] == "..":
                to_segments.pop(0)
                route_index -= 1
            target = PartialPath("/".join(to_segments), target.search, target.hash)
        from_pathname = route_pathnames[route_index] if route_index >= 0 else "/"

    path = resolve_path(target, from_pathname)

    # Keep trailing slashes the caller asked for
    has_explicit_trailing_slash = bool(to_pathname) and to_pathname != "/" and to_pathname.endswith("/")
    has_current_trailing_slash = (is_empty_path or to_pathname == ".") and location_pathname.endswith("/")
    if not path.pathname.endswith("/") and (has_explicit_trailing_slash or has_current_trailing_slash):
        path = Path(path.pathname + "/", path.search, path.hash)
    return path


def get_path_contributing_matches(matches: Sequence[Any]) -> list[Any]:
    """Matches that contribute a path segment (plus the root match).

    Pathless layout routes and index routes don't change the URL, so
    they are skipped when resolving relative targets.
    """
    return [m for i, m in enumerate(matches) if i == 0 or (m.route.path and len(m.route.path) > 0)]


def get_resolve_to_matches(matches: Sequence[Any], relative_splat_path: bool = False) -> list[str]:
    """Pathnames used as the base for route-relative resolution.

    With *relative_splat_path*, the leaf match contributes its full
    pathname so relative links inside a splat route resolve below the
    matched splat value.
    """
    path_matches = get_path_contributing_matches(matches)
    if relative_splat_path:
        return [
            m.pathname if i == len(path_matches) - 1 else m.pathname_base
            for i, m in enumerate(path_matches)
        ]
    return [m.pathname_base for m in path_matches]
