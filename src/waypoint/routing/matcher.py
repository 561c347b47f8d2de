"""Ranked route matching.

A route tree is flattened into branches, one per root-to-route chain
that can end a match, and each branch gets a specificity score. Matching
walks the branches best-first and returns the first chain whose every
level matches.

Score weights::

    base           number of "/"-separated segments in the full path
    splat (*)      -2 (applied once)
    index route    +2
    static         +10 per segment
    dynamic (:x)   +3 per segment
    empty          +1 per segment ("" from a leading "/" or pathless route)
"""

from __future__ import annotations

import functools
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from waypoint.errors import ConfigurationError
from waypoint.routing.params import PARAM_RE, SPLAT, decode_path, is_splat, logger
from waypoint.routing.paths import PartialPath, Path, join_paths, normalize_pathname, parse_path, strip_basename
from waypoint.routing.route import PathMatch, PathPattern, PathSegment, RouteMatch

DYNAMIC_SEGMENT_VALUE = 3
INDEX_ROUTE_VALUE = 2
EMPTY_SEGMENT_VALUE = 1
STATIC_SEGMENT_VALUE = 10
SPLAT_PENALTY = -2


def parse_pattern(path: str) -> list[PathSegment]:
    """Parse a route path pattern into segments.

    Examples::

        "courses"         -> [PathSegment("courses")]
        "courses/:id"     -> [PathSegment("courses"), PathSegment(":id", is_param=True, ...)]
        ":lang?/about"    -> [PathSegment(":lang?", is_param=True, is_optional=True), ...]
        "files/*"         -> [PathSegment("files"), PathSegment("*", is_splat=True)]
    """
    segments: list[PathSegment] = []
    for part in path.strip("/").split("/"):
        if not part:
            continue
        if is_splat(part):
            segments.append(PathSegment(value=part, is_splat=True, param_name=SPLAT))
            continue
        optional = part.endswith("?")
        bare = part[:-1] if optional else part
        if PARAM_RE.match(bare):
            segments.append(
                PathSegment(value=part, is_param=True, param_name=bare[1:], is_optional=optional)
            )
        else:
            segments.append(PathSegment(value=part, is_optional=optional))
    return segments


def explode_optional_segments(path: str) -> list[str]:
    """Expand optional segments into every concrete variant.

    ::

        explode_optional_segments("/:lang?/about")  -> ["/:lang/about", "/about"]
        explode_optional_segments("book/:id?")      -> ["book/:id", "book"]
    """
    segments = path.split("/")
    if not segments:
        return []
    first, *rest = segments
    is_optional = first.endswith("?")
    required = first[:-1] if is_optional else first

    if not rest:
        return [required, ""] if is_optional else [required]

    rest_exploded = explode_optional_segments("/".join(rest))
    result = [required if sub == "" else f"{required}/{sub}" for sub in rest_exploded]
    if is_optional:
        result.extend(rest_exploded)
    # An absolute pattern whose every segment was optional still means "/"
    return ["/" if path.startswith("/") and exploded == "" else exploded for exploded in result]


def compute_score(path: str, index: bool) -> int:
    """Specificity score for a fully joined branch path."""
    segments = path.split("/")
    score = len(segments)
    if any(is_splat(s) for s in segments):
        score += SPLAT_PENALTY
    if index:
        score += INDEX_ROUTE_VALUE
    for segment in segments:
        if is_splat(segment):
            continue
        if PARAM_RE.match(segment):
            score += DYNAMIC_SEGMENT_VALUE
        elif segment == "":
            score += EMPTY_SEGMENT_VALUE
        else:
            score += STATIC_SEGMENT_VALUE
    return score


@dataclass(frozen=True, slots=True)
class RouteMeta:
    """One level of a branch."""

    relative_path: str
    case_sensitive: bool
    children_index: int
    route: Any


@dataclass(frozen=True, slots=True)
class Branch:
    """A root-to-route chain with its joined path and score."""

    path: str
    score: int
    routes_meta: tuple[RouteMeta, ...]


def flatten_routes(
    routes: Sequence[Any],
    branches: list[Branch] | None = None,
    parents_meta: tuple[RouteMeta, ...] = (),
    parent_path: str = "",
) -> list[Branch]:
    """Flatten a route tree into branches, children before their parent."""
    if branches is None:
        branches = []

    def flatten_route(route: Any, index: int, relative_path: str | None = None) -> None:
        rel = (route.path or "") if relative_path is None else relative_path
        if rel.startswith("/"):
            if not rel.startswith(parent_path):
                msg = (
                    f'Absolute route path "{rel}" nested under path "{parent_path}" is not '
                    "valid. An absolute child route path must start with the combined path "
                    "of all its parent routes."
                )
                raise ConfigurationError(msg)
            rel = rel[len(parent_path) :]

        meta = RouteMeta(
            relative_path=rel,
            case_sensitive=bool(getattr(route, "case_sensitive", False)),
            children_index=index,
            route=route,
        )
        path = join_paths([parent_path, rel])
        routes_meta = (*parents_meta, meta)

        children = getattr(route, "children", None)
        if children:
            if route.index:
                msg = f'Index routes must not have child routes. Please remove all child routes from route path "{path}".'
                raise ConfigurationError(msg)
            flatten_routes(children, branches, routes_meta, path)

        # Pathless layout routes only match through their children
        if route.path is None and not route.index:
            return

        branches.append(Branch(path=path, score=compute_score(path, route.index), routes_meta=routes_meta))

    for index, route in enumerate(routes):
        if not route.path or "?" not in route.path:
            flatten_route(route, index)
        else:
            for exploded in explode_optional_segments(route.path):
                flatten_route(route, index, exploded)
    return branches


def _compare_indexes(a: Sequence[int], b: Sequence[int]) -> int:
    siblings = len(a) == len(b) and all(x == y for x, y in zip(a[:-1], b[:-1]))
    # Sibling branches keep their declaration order; anything else is a tie
    return a[-1] - b[-1] if siblings else 0


def _compare_branches(a: Branch, b: Branch) -> int:
    if a.score != b.score:
        return b.score - a.score
    return _compare_indexes(
        [m.children_index for m in a.routes_meta],
        [m.children_index for m in b.routes_meta],
    )


def rank_route_branches(branches: list[Branch]) -> list[Branch]:
    """Sort branches best-first. ``list.sort`` is stable, so declaration order breaks ties."""
    branches.sort(key=functools.cmp_to_key(_compare_branches))
    return branches


@dataclass(frozen=True, slots=True)
class CompiledParam:
    name: str
    is_optional: bool = False


_PARAM_SUB_RE = re.compile(r"/:([\w-]+)(\?)?", re.ASCII)
_REGEX_SPECIAL_RE = re.compile(r"[\\.*+^${}|()\[\]]")


def compile_path(path: str, case_sensitive: bool = False, end: bool = True) -> tuple[re.Pattern[str], list[CompiledParam]]:
    """Compile a route path pattern to a regex plus its param names."""
    if not (path == "*" or not path.endswith("*") or path.endswith("/*")):
        logger.warning(
            'Route path "%s" will be treated as if it were "%s" because the `*` character '
            "must always follow a `/` in the pattern.",
            path,
            path[:-1] + "/*",
        )
        path = path[:-1] + "/*"

    params: list[CompiledParam] = []

    def _param(match: re.Match[str]) -> str:
        optional = match.group(2) is not None
        params.append(CompiledParam(match.group(1), optional))
        return "/?([^/]+)?" if optional else "/([^/]+)"

    body = re.sub(r"/*\*?$", "", path, count=1)
    body = re.sub(r"^/*", "/", body, count=1)
    body = _REGEX_SPECIAL_RE.sub(lambda m: "\\" + m.group(0), body)
    source = "^" + _PARAM_SUB_RE.sub(_param, body)

    if path.endswith("*"):
        params.append(CompiledParam(SPLAT))
        source += "(.*)\\Z" if path in ("*", "/*") else "(?:/(.+)|/*)\\Z"
    elif end:
        # Ignore trailing slashes
        source += "/*\\Z"
    elif path not in ("", "/"):
        # Match up to a segment boundary, not mid-segment
        source += "(?=/|\\Z)"

    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(source, flags), params


def match_path(pattern: str | PathPattern, pathname: str) -> PathMatch | None:
    """Match one pattern against *pathname*.

    ::

        match_path("/courses/:id", "/courses/42").params  -> {"id": "42"}
        match_path({"path": "/courses", "end": False}, "/courses/42").pathname_base  -> "/courses"
    """
    if isinstance(pattern, str):
        pattern = PathPattern(path=pattern)
    elif isinstance(pattern, Mapping):
        pattern = PathPattern(**pattern)

    matcher, compiled_params = compile_path(pattern.path, pattern.case_sensitive, pattern.end)
    match = matcher.match(pathname)
    if match is None:
        return None

    matched_pathname = match.group(0)
    pathname_base = re.sub(r"(.)/+$", r"\1", matched_pathname)
    captures = match.groups()
    params: dict[str, str] = {}
    for i, param in enumerate(compiled_params):
        value = captures[i]
        if param.name == SPLAT:
            splat_value = value or ""
            pathname_base = re.sub(
                r"(.)/+$", r"\1", matched_pathname[: len(matched_pathname) - len(splat_value)]
            )
        if param.is_optional and not value:
            continue
        params[param.name] = (value or "").replace("%2F", "/")

    return PathMatch(params=params, pathname=matched_pathname, pathname_base=pathname_base, pattern=pattern)


def match_route_branch(branch: Branch, pathname: str, allow_partial: bool = False) -> list[RouteMatch] | None:
    """Match every level of *branch* against a decoded pathname."""
    matched_params: dict[str, str] = {}
    matched_pathname = "/"
    matches: list[RouteMatch] = []
    last = len(branch.routes_meta) - 1

    for i, meta in enumerate(branch.routes_meta):
        end = i == last
        remaining = pathname if matched_pathname == "/" else (pathname[len(matched_pathname) :] or "/")
        match = match_path(PathPattern(meta.relative_path, meta.case_sensitive, end), remaining)

        if match is None and end and allow_partial and not meta.route.index:
            match = match_path(PathPattern(meta.relative_path, meta.case_sensitive, False), remaining)
        if match is None:
            return None

        matched_params.update(match.params)
        matches.append(
            RouteMatch(
                route=meta.route,
                pathname=join_paths([matched_pathname, match.pathname]),
                pathname_base=normalize_pathname(join_paths([matched_pathname, match.pathname_base])),
                # Snapshot: ancestors never see params bound further down
                params=dict(matched_params),
            )
        )
        if match.pathname_base != "/":
            matched_pathname = join_paths([matched_pathname, match.pathname_base])
    return matches


class RouteTable:
    """Ranked branches for a route tree, compiled once and reused.

    Usage::

        table = RouteTable(routes)
        matches = table.match("/courses/42")

    Call ``invalidate()`` after the tree is mutated (route patching) so
    the branches are rebuilt on the next match.
    """

    __slots__ = ("_branches", "routes")

    def __init__(self, routes: Sequence[Any]) -> None:
        self.routes = routes
        self._branches: list[Branch] | None = None

    @property
    def branches(self) -> list[Branch]:
        if self._branches is None:
            self._branches = rank_route_branches(flatten_routes(self.routes))
        return self._branches

    def invalidate(self) -> None:
        self._branches = None

    def match(
        self,
        location: str | Path | PartialPath | Mapping[str, Any],
        basename: str = "/",
        allow_partial: bool = False,
    ) -> list[RouteMatch] | None:
        """Return the best match chain, or ``None`` when nothing matches."""
        if isinstance(location, str):
            location = parse_path(location)
        raw = location.get("pathname") if isinstance(location, Mapping) else location.pathname
        pathname = strip_basename(raw or "/", basename)
        if pathname is None:
            return None

        decoded = decode_path(pathname)
        for branch in self.branches:
            matches = match_route_branch(branch, decoded, allow_partial)
            if matches is not None:
                return matches
        return None


def match_routes(
    routes: Sequence[Any],
    location: str | Path | PartialPath | Mapping[str, Any],
    basename: str = "/",
) -> list[RouteMatch] | None:
    """Match *location* against a route tree.

    Returns the ordered match chain (outermost route first), or ``None``
    when no branch matches. An empty list is never returned.
    """
    return RouteTable(routes).match(location, basename)
