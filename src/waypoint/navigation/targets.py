"""Navigation target resolution.

Turns what a caller hands ``navigate()``/``fetch()`` into a concrete
path string (basename included), and picks the route a submission is
aimed at.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Literal

from waypoint.history.location import Location
from waypoint.routing.paths import (
    Path,
    To,
    create_path,
    get_path_contributing_matches,
    get_resolve_to_matches,
    has_naked_index_query,
    join_paths,
    parse_path,
    resolve_to,
    strip_basename,
)
from waypoint.routing.route import RouteMatch

Relative = Literal["route", "path"]


def normalize_to(
    location: Location,
    matches: Sequence[RouteMatch],
    basename: str,
    to: To | None,
    *,
    relative_splat_path: bool = False,
    from_route_id: str | None = None,
    relative: Relative = "route",
) -> str:
    """Resolve *to* from the point of view of a route in *matches*.

    With *from_route_id*, resolution happens relative to that route
    instead of the leaf. ``to=None`` means "the current location",
    keeping its search and hash. Targeting an index route's own URL
    gets an ``?index`` marker so submissions reach the index route and
    not its parent.
    """
    contextual: list[RouteMatch] = []
    active: RouteMatch | None = None
    if from_route_id is not None:
        for match in matches:
            contextual.append(match)
            if match.route.id == from_route_id:
                active = match
                break
    else:
        contextual = list(matches)
        active = contextual[-1] if contextual else None

    location_pathname = strip_basename(location.pathname, basename) or location.pathname
    path = resolve_to(
        "." if to is None else to,
        get_resolve_to_matches(contextual, relative_splat_path),
        location_pathname,
        relative == "path",
    )
    if to is None:
        path = Path(path.pathname, location.search, location.hash)

    if to in (None, "", ".") and active is not None and active.route.index and not has_naked_index_query(path.search):
        search = "?index&" + path.search[1:] if path.search else "?index"
        path = Path(path.pathname, search, path.hash)

    if basename != "/":
        pathname = basename if path.pathname == "/" else join_paths([basename, path.pathname])
        path = Path(pathname, path.search, path.hash)
    return create_path(path)


def get_target_match(matches: Sequence[RouteMatch], location: str | Location | Any) -> RouteMatch:
    """The match a submission to *location* is handled by.

    An index leaf only handles it when the URL carries ``?index``;
    otherwise the deepest path-contributing route does.
    """
    search = parse_path(location).search if isinstance(location, str) else location.search
    if matches[-1].route.index and has_naked_index_query(search or ""):
        return matches[-1]
    return get_path_contributing_matches(matches)[-1]


def is_hash_change_only(a: Location, b: Location) -> bool:
    """True when *b* differs from *a* at most in its hash.

    Re-navigating to the same URL with the same non-empty hash counts
    (nothing to load); same URL without a hash does not.
    """
    if a.pathname != b.pathname or a.search != b.search:
        return False
    if a.hash == "":
        return b.hash != ""
    if a.hash == b.hash:
        return True
    return b.hash != ""
