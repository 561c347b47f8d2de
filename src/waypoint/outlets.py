"""What a rendering layer should mount for a committed state.

``render_matches`` walks the committed match chain and decides, per
level, which payload to show: the route's own payload, its error
boundary (when it caught an error), or its hydrate fallback (while
initial loaders are still running). Each level comes with the
``RouteScope`` its UI should read from.

``descendant_matches`` is for route tables rendered *inside* a route:
it matches the part of the URL below the parent scope.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from waypoint.history.location import Location
from waypoint.navigation.state import NavigationState
from waypoint.routing.matcher import RouteTable
from waypoint.routing.paths import join_paths, parse_path
from waypoint.routing.route import NO_PAYLOAD, DataRoute, PayloadKind, RenderPayload, Route, RouteMatch, compile_routes
from waypoint.scope import RouteScope, use_location

logger = logging.getLogger("waypoint.outlets")


@dataclass(frozen=True, slots=True)
class RenderedMatch:
    """One level of UI to mount.

    ``payload`` is what to render at this level. When ``error`` is set
    it is the route's error boundary; when ``fallback`` is set it is
    the route's hydrate fallback and nothing below this level mounts.
    """

    match: RouteMatch
    scope: RouteScope
    payload: RenderPayload
    error: BaseException | None = None
    fallback: bool = False

    @property
    def route_id(self) -> str:
        return self.match.route.id


def render_matches(state: NavigationState, parent: RouteScope | None = None) -> list[RenderedMatch]:
    """The chain to mount for *state*, outermost first.

    *parent* is the scope the chain renders under, usually
    ``RouteScope(router)``. Returns ``[]`` when nothing matched.
    """
    parent = parent or RouteScope(None)
    matches = list(state.matches)
    if not matches:
        return []

    errors = state.errors or {}
    if errors:
        for index, match in enumerate(matches):
            if match.route.id in errors:
                matches = matches[: index + 1]
                break

    fallback_index = -1
    router = parent.router
    if not state.initialized and (router is None or router.future.v7_partial_hydration):
        for index, match in enumerate(matches):
            route = match.route
            if route.hydrate_fallback is not None:
                fallback_index = index
            pending = route.loader is not None and route.id not in state.loader_data and route.id not in errors
            if route.lazy is not None or pending:
                # Render down to the deepest fallback above the first pending loader
                if fallback_index < 0:
                    return []
                matches = matches[: fallback_index + 1]
                break
        else:
            fallback_index = -1

    rendered: list[RenderedMatch] = []
    scope = parent
    for index, match in enumerate(matches):
        scope = scope.child(match)
        route = match.route
        error = errors.get(route.id)
        if error is not None:
            payload = _payload(route.error_boundary)
        elif index == fallback_index:
            payload = _payload(route.hydrate_fallback)
        else:
            payload = route.payload
        rendered.append(RenderedMatch(match, scope, payload, error, index == fallback_index and error is None))
    return rendered


def _payload(value: Any) -> RenderPayload:
    if value is None or value is True or value is False:
        return NO_PAYLOAD
    return RenderPayload(PayloadKind.ELEMENT, value)


def descendant_matches(
    routes: Sequence[Route | DataRoute] | RouteTable,
    scope: RouteScope,
    location: str | Location | None = None,
) -> list[RouteMatch] | None:
    """Match *routes* against the URL remaining below *scope*.

    Params from the parent chain are merged in and pathnames are made
    absolute again. The parent route's path should end in ``*``,
    otherwise deeper URLs never reach it; that is reported as a
    development warning.
    """
    parent = scope.matches[-1] if scope.matches else None
    parent_params = dict(parent.params) if parent else {}
    parent_pathname_base = parent.pathname_base if parent else "/"

    router = scope.router
    if parent is not None and router is not None:
        parent_path = parent.route.path or ""
        router.diagnostics.warn_once(
            f"descendant:{parent.pathname}",
            parent_path.endswith("*") or parent_path.endswith("*?"),
            f'Descendant routes rendered at "{parent.pathname}" (under route path "{parent_path}") '
            'but the parent route path has no trailing "*". Deeper URLs will not match the parent, '
            f'so these routes never render. Change the parent path to "{"*" if parent_path == "/" else parent_path + "/*"}".',
        )

    if location is None:
        pathname = use_location(scope).pathname
    elif isinstance(location, str):
        pathname = parse_path(location).pathname or "/"
    else:
        pathname = location.pathname

    remaining = pathname
    if parent_pathname_base != "/":
        # Drop as many segments as the parent consumed
        parent_segments = parent_pathname_base.lstrip("/").split("/")
        segments = pathname.lstrip("/").split("/")
        remaining = "/" + "/".join(segments[len(parent_segments) :])

    table = routes if isinstance(routes, RouteTable) else RouteTable(_compiled(routes))
    matches = table.match(remaining)
    if matches is None:
        logger.debug("no descendant routes matched %s", remaining)
        return None

    return [
        RouteMatch(
            route=m.route,
            pathname=join_paths([parent_pathname_base, m.pathname]),
            pathname_base=(
                parent_pathname_base if m.pathname_base == "/" else join_paths([parent_pathname_base, m.pathname_base])
            ),
            params={**parent_params, **m.params},
        )
        for m in matches
    ]


def _compiled(routes: Sequence[Route | DataRoute]) -> Sequence[DataRoute]:
    if all(isinstance(r, DataRoute) for r in routes):
        return routes  # type: ignore[return-value]
    return compile_routes(routes, {})  # type: ignore[arg-type]
