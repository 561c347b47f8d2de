"""Routing — ranked route matching and path resolution.

Route trees are flattened into scored branches and matched best-first;
navigation targets are resolved against the active route chain.
"""

from waypoint.routing.matcher import RouteTable, compile_path, match_path, match_routes
from waypoint.routing.params import generate_path
from waypoint.routing.paths import (
    PartialPath,
    Path,
    create_path,
    get_resolve_to_matches,
    join_paths,
    parse_path,
    resolve_path,
    resolve_to,
    strip_basename,
)
from waypoint.routing.route import DataRoute, PathMatch, PathPattern, PayloadKind, RenderPayload, Route, RouteMatch

__all__ = [
    "DataRoute",
    "PartialPath",
    "Path",
    "PathMatch",
    "PathPattern",
    "PayloadKind",
    "RenderPayload",
    "Route",
    "RouteMatch",
    "RouteTable",
    "compile_path",
    "create_path",
    "generate_path",
    "get_resolve_to_matches",
    "join_paths",
    "match_path",
    "match_routes",
    "parse_path",
    "resolve_path",
    "resolve_to",
    "strip_basename",
]
