"""Waypoint — route matching, history, and a navigation state machine.

Matches URLs against nested route trees, keeps a history stack (memory,
browser path, or URL hash), and coordinates loaders, actions, redirects
and errors for every navigation.

Basic usage::

    from waypoint import Route, create_memory_history, create_router

    routes = [
        Route(path="/", loader=load_root, children=(
            Route(path="courses/:course_id", loader=load_course),
        )),
    ]

    async with create_router(routes, create_memory_history(["/"])) as router:
        router.initialize()
        await router.navigate("/courses/42")
        router.state.loader_data   # {"0": ..., "0-0": ...}

Matching only::

    from waypoint import match_routes
    matches = match_routes(routes, "/courses/42")
"""

__version__ = "0.1.0-dev"
__all__ = [
    "Action",
    "ActionError",
    "ConfigurationError",
    "ContextMisuseError",
    "Diagnostics",
    "ErrorResponse",
    "FutureConfig",
    "HydrationData",
    "LoaderError",
    "Location",
    "MatchError",
    "NavigationState",
    "NavigationTargetError",
    "Redirect",
    "RedirectLoopError",
    "Route",
    "RouteMatch",
    "RouteScope",
    "Router",
    "RouterConfig",
    "WaypointError",
    "create_browser_history",
    "create_hash_history",
    "create_memory_history",
    "create_router",
    "data",
    "generate_path",
    "join_paths",
    "match_path",
    "match_routes",
    "redirect",
    "redirect_document",
    "render_matches",
    "resolve_path",
    "resolve_to",
]

_ROUTING = ("Route", "RouteMatch", "generate_path", "join_paths", "match_path", "match_routes", "resolve_path", "resolve_to")
_HISTORY = ("Action", "Location", "create_browser_history", "create_hash_history", "create_memory_history")
_NAVIGATION = ("HydrationData", "NavigationState", "Redirect", "Router", "create_router", "data", "redirect", "redirect_document")
_ERRORS = (
    "ActionError",
    "ConfigurationError",
    "ContextMisuseError",
    "ErrorResponse",
    "LoaderError",
    "MatchError",
    "NavigationTargetError",
    "RedirectLoopError",
    "WaypointError",
)


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import waypoint`` fast while providing a clean top-level API.
    """
    if name in _ROUTING:
        import waypoint.routing as _routing

        return getattr(_routing, name)

    if name in _HISTORY:
        import waypoint.history as _history

        return getattr(_history, name)

    if name in _NAVIGATION:
        import waypoint.navigation as _navigation

        return getattr(_navigation, name)

    if name in ("RouterConfig", "FutureConfig"):
        from waypoint import config as _config

        return getattr(_config, name)

    if name == "Diagnostics":
        from waypoint.diagnostics import Diagnostics

        return Diagnostics

    if name == "RouteScope":
        from waypoint.scope import RouteScope

        return RouteScope

    if name == "render_matches":
        from waypoint.outlets import render_matches

        return render_matches

    if name in _ERRORS:
        from waypoint import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
