"""Route definitions, compiled data routes, and match results.

``Route`` is what callers declare. ``compile_routes()`` turns a tree of
them into ``DataRoute`` objects with stable ids, a resolved render
payload, and the ``has_error_boundary`` flag the router relies on.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from waypoint._internal.types import Handler, LazyLoader, Params
from waypoint.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path pattern.

    Static:   ``courses``  (is_param=False)
    Param:    ``:id``      (is_param=True, param_name="id")
    Optional: ``:lang?``   (is_param=True, is_optional=True)
    Splat:    ``*``        (is_splat=True, param_name="*")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    is_optional: bool = False
    is_splat: bool = False


class PayloadKind(Enum):
    """Which kind of render payload a route carries."""

    COMPONENT = "component"
    ELEMENT = "element"
    LAZY = "lazy"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class RenderPayload:
    """Exactly one render payload per route, resolved at registration.

    The router never inspects ``value``; it is handed to the rendering
    layer as-is.
    """

    kind: PayloadKind
    value: Any = None


NO_PAYLOAD = RenderPayload(PayloadKind.NONE)


def resolve_payload(component: Any, element: Any, lazy: Any) -> RenderPayload:
    """Pick the render payload kind for a route definition.

    Raises ``ConfigurationError`` when both ``component`` and
    ``element`` are supplied.
    """
    if component is not None and element is not None:
        msg = "A route may define either `component` or `element`, not both."
        raise ConfigurationError(msg)
    if component is not None:
        return RenderPayload(PayloadKind.COMPONENT, component)
    if element is not None:
        return RenderPayload(PayloadKind.ELEMENT, element)
    if lazy is not None:
        return RenderPayload(PayloadKind.LAZY, lazy)
    return NO_PAYLOAD


@dataclass(frozen=True, slots=True)
class Route:
    """A route definition. Immutable once declared.

    Usage::

        Route(
            path="courses",
            loader=load_courses,
            error_boundary=True,
            children=[
                Route(index=True, component=CoursesIndex),
                Route(path=":id", loader=load_course),
            ],
        )
    """

    path: str | None = None
    id: str | None = None
    index: bool = False
    children: tuple[Route, ...] = ()
    loader: Handler | None = None
    action: Handler | None = None
    error_boundary: Any = None
    lazy: LazyLoader | None = None
    component: Any = None
    element: Any = None
    hydrate_fallback: Any = None
    should_revalidate: Callable[..., Any] | None = None
    handle: Any = None
    case_sensitive: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(coerce_routes(self.children)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Route:
        """Build a Route from a plain mapping with the same field names."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            msg = f"Unknown route field(s): {', '.join(sorted(unknown))}"
            raise ConfigurationError(msg)
        return cls(**data)


def coerce_routes(routes: Iterable[Route | Mapping[str, Any]]) -> list[Route]:
    """Accept ``Route`` instances or plain mappings."""
    return [r if isinstance(r, Route) else Route.from_mapping(r) for r in routes]


# Attributes a lazy module may not replace
IMMUTABLE_ROUTE_KEYS = frozenset({"id", "path", "index", "children", "lazy", "case_sensitive"})


@dataclass(slots=True, eq=False)
class DataRoute:
    """A compiled route owned by the router.

    Mutated only by lazy-module resolution and route patching.
    """

    id: str
    path: str | None = None
    index: bool = False
    children: list[DataRoute] = field(default_factory=list)
    loader: Handler | None = None
    action: Handler | None = None
    error_boundary: Any = None
    lazy: LazyLoader | None = None
    component: Any = None
    element: Any = None
    hydrate_fallback: Any = None
    should_revalidate: Callable[..., Any] | None = None
    handle: Any = None
    case_sensitive: bool = False
    payload: RenderPayload = NO_PAYLOAD

    @property
    def has_error_boundary(self) -> bool:
        return self.error_boundary is not None and self.error_boundary is not False

    def refresh_payload(self) -> None:
        """Recompute ``payload`` after lazy properties were merged."""
        self.payload = resolve_payload(self.component, self.element, self.lazy)

    def __repr__(self) -> str:
        return f"DataRoute(id={self.id!r}, path={self.path!r}, index={self.index})"


def compile_routes(
    routes: Iterable[Route | Mapping[str, Any]],
    manifest: dict[str, DataRoute],
    parent_path: tuple[str, ...] = (),
) -> list[DataRoute]:
    """Convert route definitions into ``DataRoute`` objects.

    Routes without an explicit ``id`` get one from their position in the
    tree (``"0"``, ``"0-1"``, ...). Every compiled route is registered in
    *manifest*, which must not already contain its id.
    """
    compiled: list[DataRoute] = []
    for index, route in enumerate(coerce_routes(routes)):
        tree_path = (*parent_path, str(index))
        route_id = route.id if route.id is not None else "-".join(tree_path)

        if route.index and route.children:
            msg = f"Cannot specify children on an index route (id {route_id!r})."
            raise ConfigurationError(msg)
        if route_id in manifest:
            msg = (
                f"Found a route id collision on id {route_id!r}. "
                "Route ids must be globally unique within a router."
            )
            raise ConfigurationError(msg)

        data_route = DataRoute(
            id=route_id,
            path=route.path,
            index=route.index,
            loader=route.loader,
            action=route.action,
            error_boundary=route.error_boundary,
            lazy=route.lazy,
            component=route.component,
            element=route.element,
            hydrate_fallback=route.hydrate_fallback,
            should_revalidate=route.should_revalidate,
            handle=route.handle,
            case_sensitive=route.case_sensitive,
            payload=resolve_payload(route.component, route.element, route.lazy),
        )
        manifest[route_id] = data_route
        if route.children:
            data_route.children = compile_routes(route.children, manifest, tree_path)
        compiled.append(data_route)
    return compiled


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """One level of a successful match.

    ``pathname_base`` is the prefix consumed by this route and all its
    ancestors. ``params`` holds the params accumulated down to this
    level.
    """

    route: Any
    pathname: str
    pathname_base: str
    params: Params = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PathPattern:
    """A single pattern handed to ``match_path``."""

    path: str
    case_sensitive: bool = False
    end: bool = True


@dataclass(frozen=True, slots=True)
class PathMatch:
    """Result of matching one pattern against a pathname."""

    params: Params
    pathname: str
    pathname_base: str
    pattern: PathPattern
