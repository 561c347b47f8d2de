"""Loader scheduling and result bookkeeping.

Pure functions over matches and results. The router decides *when*
things happen; these decide *what* runs and what gets committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from waypoint.errors import ErrorResponse
from waypoint.navigation.requests import ShouldRevalidateArgs
from waypoint.navigation.results import HandlerResult
from waypoint.routing.params import SPLAT
from waypoint.routing.route import RouteMatch

logger = logging.getLogger("waypoint.router")

# (route id, result) of the action that ran before loaders
ActionOutcome = tuple[str, HandlerResult]


def find_nearest_boundary(matches: Sequence[RouteMatch], route_id: str | None = None) -> RouteMatch:
    """Closest match at or above *route_id* with an error boundary.

    Falls back to the root match when no route declares one.
    """
    eligible = list(matches)
    if route_id is not None:
        for index, match in enumerate(matches):
            if match.route.id == route_id:
                eligible = list(matches[: index + 1])
                break
    for match in reversed(eligible):
        if match.route.has_error_boundary:
            return match
    return matches[0]


def matches_until(matches: Sequence[RouteMatch], boundary_id: str, include_boundary: bool = False) -> list[RouteMatch]:
    for index, match in enumerate(matches):
        if match.route.id == boundary_id:
            return list(matches[: index + 1 if include_boundary else index])
    return list(matches)


def trim_to_errors(matches: Sequence[RouteMatch], errors: Mapping[str, Any] | None) -> list[RouteMatch]:
    """Drop matches below the outermost route holding an error."""
    if errors:
        for index, match in enumerate(matches):
            if match.route.id in errors:
                return list(matches[: index + 1])
    return list(matches)


def is_new_route_instance(current: RouteMatch, match: RouteMatch) -> bool:
    if current.pathname != match.pathname or current.params != match.params:
        return True
    path = current.route.path
    return path is not None and path.endswith("*") and current.params.get(SPLAT) != match.params.get(SPLAT)


def should_load_on_hydration(route: Any, loader_data: Mapping[str, Any] | None, errors: Mapping[str, Any] | None) -> bool:
    """Whether *route*'s loader must run on top of hydration data.

    A loader with a truthy ``hydrate`` attribute always runs.
    """
    if route.lazy is not None:
        return True
    if route.loader is None:
        return False
    has_data = loader_data is not None and route.id in loader_data
    has_error = errors is not None and route.id in errors
    if not has_data and has_error:
        return False
    if getattr(route.loader, "hydrate", False) is True:
        return True
    return not has_data and not has_error


def should_revalidate(route: Any, args: ShouldRevalidateArgs) -> bool:
    hook: Callable[[ShouldRevalidateArgs], Any] | None = route.should_revalidate
    if hook is None:
        return args.default_should_revalidate
    result = hook(args)
    if isinstance(result, bool):
        return result
    return args.default_should_revalidate


def process_loader_data(
    matches: Sequence[RouteMatch],
    results: Mapping[str, HandlerResult],
    pending_action: ActionOutcome | None = None,
) -> tuple[dict[str, Any], dict[str, BaseException] | None]:
    """Split loader results into data and boundary errors.

    Each error lands on the nearest error boundary at or above the
    failing route; the first error per boundary wins. A pending action
    error takes the place of the outermost loader error, or is reported
    on its own boundary when every loader succeeded.
    """
    loader_data: dict[str, Any] = {}
    errors: dict[str, BaseException] | None = None
    pending_error = pending_action[1].value if pending_action and pending_action[1].is_error else None

    for match in matches:
        route_id = match.route.id
        result = results.get(route_id)
        if result is None or result.is_redirect:
            continue
        if result.is_error:
            boundary = find_nearest_boundary(matches, route_id)
            error = result.value
            if pending_error is not None:
                error, pending_error = pending_error, None
            errors = errors or {}
            errors.setdefault(boundary.route.id, error)
            logger.debug("route %r error caught by boundary %r: %r", route_id, boundary.route.id, error)
        else:
            loader_data[route_id] = result.value

    if pending_error is not None and pending_action is not None:
        errors = {pending_action[0]: pending_error}

    return loader_data, errors


def merge_loader_data(
    current: Mapping[str, Any],
    new: Mapping[str, Any],
    matches: Sequence[RouteMatch],
    errors: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Loader data to commit for *matches*.

    Fresh results win; routes that did not re-run keep their previous
    data. Nothing below an error boundary that caught an error is kept.
    """
    merged: dict[str, Any] = {}
    for match in matches:
        route_id = match.route.id
        if route_id in new:
            merged[route_id] = new[route_id]
        elif route_id in current and match.route.loader is not None:
            merged[route_id] = current[route_id]
        if errors and route_id in errors:
            break
    return merged


def action_data_for_commit(pending_action: ActionOutcome | None) -> dict[str, Any] | None:
    """``None`` without an action; an empty dict (clear on commit) when it failed."""
    if pending_action is None:
        return None
    if pending_action[1].is_error:
        return {}
    return {pending_action[0]: pending_action[1].value}


def method_not_allowed(method: str, pathname: str, route_id: str) -> ErrorResponse:
    return ErrorResponse(
        405,
        "Method Not Allowed",
        f'You made a {method} request to "{pathname}" but did not provide an `action` '
        f'for route "{route_id}", so there is no way to handle the request.',
        internal=True,
    )


def missing_loader(pathname: str, route_id: str) -> ErrorResponse:
    return ErrorResponse(
        400,
        "Bad Request",
        f'You made a GET request to "{pathname}" but did not provide a `loader` '
        f'for route "{route_id}", so there is no way to handle the request.',
        internal=True,
    )


def not_found(pathname: str) -> ErrorResponse:
    return ErrorResponse(404, "Not Found", f'No route matches URL "{pathname}"', internal=True)
