"""Explicit route scopes.

A rendering layer hands each mounted route a ``RouteScope``: the router
plus the match chain down to that route. The ``use_*`` functions read
router state from the point of view of that route::

    scope = router.scope("course")
    use_params(scope)            # {"course_id": "42"}
    use_loader_data(scope)       # loader data of "course"
    await use_navigate(scope)("lessons")   # relative to "course"

Every function raises ``ContextMisuseError`` when the scope has no
router bound, or (for route-level functions) no route in its chain.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from waypoint._internal.types import Params
from waypoint.errors import ContextMisuseError
from waypoint.history.location import Location
from waypoint.routing.paths import Path, To, get_resolve_to_matches, join_paths, resolve_to, strip_basename
from waypoint.routing.route import RouteMatch

if TYPE_CHECKING:
    from waypoint.navigation.router import Router
    from waypoint.navigation.state import Navigation, Revalidation


@dataclass(frozen=True, slots=True)
class RouteScope:
    """The router and the route chain a piece of UI renders under."""

    router: Router | None
    matches: tuple[RouteMatch, ...] = ()

    @property
    def route_id(self) -> str | None:
        return self.matches[-1].route.id if self.matches else None

    def child(self, match: RouteMatch) -> RouteScope:
        """Scope one level deeper."""
        return RouteScope(self.router, (*self.matches, match))


@dataclass(frozen=True, slots=True)
class UIMatch:
    """What ``use_matches`` reports for each active route."""

    id: str
    pathname: str
    params: Params
    data: Any
    handle: Any


@dataclass(frozen=True, slots=True)
class Revalidator:
    state: Revalidation
    revalidate: Callable[[], Awaitable[None]]


def _require_router(scope: RouteScope | None, hook: str) -> Router:
    if scope is None or scope.router is None:
        msg = f"{hook}() may be used only within a router scope."
        raise ContextMisuseError(msg)
    return scope.router


def _require_route_id(scope: RouteScope, hook: str) -> str:
    route_id = scope.route_id
    if route_id is None:
        msg = f"{hook}() may be used only within a route."
        raise ContextMisuseError(msg)
    return route_id


def use_location(scope: RouteScope | None) -> Location:
    """The current location, with the router's basename stripped."""
    router = _require_router(scope, "use_location")
    location = router.state.location
    pathname = strip_basename(location.pathname, router.basename)
    if pathname is None or pathname == location.pathname:
        return location
    return location.with_path(Path(pathname, location.search, location.hash))


def use_params(scope: RouteScope | None) -> Params:
    """Params of the innermost route in *scope* (parents' params included)."""
    _require_router(scope, "use_params")
    assert scope is not None
    return dict(scope.matches[-1].params) if scope.matches else {}


def use_resolved_path(scope: RouteScope | None, to: To, *, relative: str = "route") -> Path:
    """Resolve *to* against the scope's route chain.

    ``relative="path"`` resolves ``..`` against URL segments instead of
    route levels.
    """
    router = _require_router(scope, "use_resolved_path")
    assert scope is not None
    return resolve_to(
        to,
        get_resolve_to_matches(scope.matches, router.future.v7_relative_splat_path),
        use_location(scope).pathname,
        relative == "path",
    )


def use_href(scope: RouteScope | None, to: To, *, relative: str = "route") -> str:
    """An href for *to*, basename and history flavor included."""
    router = _require_router(scope, "use_href")
    path = use_resolved_path(scope, to, relative=relative)
    pathname = path.pathname
    if router.basename != "/":
        pathname = router.basename if pathname == "/" else join_paths([router.basename, pathname])
    return router.create_href(Path(pathname, path.search, path.hash))


def use_navigate(scope: RouteScope | None) -> Callable[..., Awaitable[None]]:
    """A ``navigate`` that resolves relative targets from this route."""
    router = _require_router(scope, "use_navigate")
    assert scope is not None
    route_id = scope.route_id

    async def navigate(to: Any, **options: Any) -> None:
        if isinstance(to, int) and not isinstance(to, bool):
            await router.navigate(to)
            return
        options.setdefault("from_route_id", route_id)
        await router.navigate(to, **options)

    return navigate


def use_loader_data(scope: RouteScope | None) -> Any:
    router = _require_router(scope, "use_loader_data")
    assert scope is not None
    return router.state.loader_data.get(_require_route_id(scope, "use_loader_data"))


def use_route_loader_data(scope: RouteScope | None, route_id: str) -> Any:
    """Loader data of any active route, by id."""
    router = _require_router(scope, "use_route_loader_data")
    return router.state.loader_data.get(route_id)


def use_action_data(scope: RouteScope | None) -> Any:
    router = _require_router(scope, "use_action_data")
    assert scope is not None
    action_data = router.state.action_data
    if action_data is None:
        return None
    return action_data.get(_require_route_id(scope, "use_action_data"))


def use_route_error(scope: RouteScope | None) -> BaseException | None:
    """The error caught by this route's boundary, if any."""
    router = _require_router(scope, "use_route_error")
    assert scope is not None
    errors = router.state.errors
    if errors is None:
        return None
    return errors.get(_require_route_id(scope, "use_route_error"))


def use_navigation(scope: RouteScope | None) -> Navigation:
    return _require_router(scope, "use_navigation").state.navigation


def use_matches(scope: RouteScope | None) -> list[UIMatch]:
    router = _require_router(scope, "use_matches")
    state = router.state
    return [
        UIMatch(
            id=m.route.id,
            pathname=m.pathname,
            params=dict(m.params),
            data=state.loader_data.get(m.route.id),
            handle=m.route.handle,
        )
        for m in state.matches
    ]


def use_revalidator(scope: RouteScope | None) -> Revalidator:
    router = _require_router(scope, "use_revalidator")
    return Revalidator(state=router.state.revalidation, revalidate=router.revalidate)
