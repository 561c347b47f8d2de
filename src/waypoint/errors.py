"""Waypoint exception hierarchy.

Shared across the matcher, history backends, and the navigation router
so every module raises and catches the same types.
"""

from dataclasses import dataclass
from typing import Any


class WaypointError(Exception):
    """Base for all waypoint-specific errors."""


class ConfigurationError(WaypointError):
    """Raised when a route tree or router configuration is invalid.

    Typically raised while compiling routes in ``create_router()``.
    """


class MatchError(WaypointError):
    """No route branch matches a location.

    Non-fatal: the router never raises it. It is recorded on
    ``NavigationState.not_found`` so the rendering layer can show a
    "no match" condition while ``matches`` is empty.
    """

    def __init__(self, pathname: str) -> None:
        self.pathname = pathname
        super().__init__(f"No routes matched location {pathname!r}")


class NavigationTargetError(WaypointError, ValueError):
    """A ``to`` descriptor mixes punctuation across its fields.

    Raised synchronously to the caller of ``navigate()`` or of a link
    resolution helper. Never enters committed state.
    """


class ContextMisuseError(WaypointError, RuntimeError):
    """An API was used outside an active router scope.

    Not recoverable. Meant to fail fast during development.
    """


class RedirectLoopError(WaypointError):
    """Chained redirects exceeded the configured hop limit."""

    def __init__(self, pathname: str, hops: int) -> None:
        self.pathname = pathname
        self.hops = hops
        super().__init__(f"Too many redirects ({hops}) while navigating to {pathname!r}")


class DataError(WaypointError):
    """A route loader or action raised.

    ``route_id`` names the route whose handler failed. The original
    exception is available as ``error`` and is chained as ``__cause__``.
    """

    kind = "handler"

    def __init__(self, route_id: str, error: BaseException) -> None:
        self.route_id = route_id
        self.error = error
        super().__init__(f"{self.kind.capitalize()} for route {route_id!r} failed: {error}")
        self.__cause__ = error


class LoaderError(DataError):
    """Raised (and committed) when a route loader fails."""

    kind = "loader"


class ActionError(DataError):
    """Raised (and committed) when a route action fails."""

    kind = "action"


@dataclass(frozen=True, slots=True)
class ErrorResponse(WaypointError):
    """An error that carries an HTTP-like status.

    Produced by the router for conditions such as a submission to a
    route without an action (405) or a fetcher target that doesn't
    match (404). Loaders and actions may also raise one directly; it is
    committed as-is instead of being wrapped in ``LoaderError``.
    """

    status: int
    status_text: str = ""
    data: Any = None
    internal: bool = False

    def __str__(self) -> str:
        if self.status_text:
            return f"{self.status}: {self.status_text}"
        return str(self.status)


def is_route_error_response(error: object) -> bool:
    """Return True for errors carrying a status (``ErrorResponse``)."""
    return isinstance(error, ErrorResponse)
