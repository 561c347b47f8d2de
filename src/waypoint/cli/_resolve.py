"""Route table import resolution — resolves ``"module:attribute"`` strings.

Shared by ``waypoint routes`` and ``waypoint match`` to locate a route
tree (or a router) from a user-supplied import string.
"""

import importlib
import sys
from collections.abc import Mapping, Sequence

from waypoint.errors import ConfigurationError
from waypoint.navigation.router import Router
from waypoint.routing.route import DataRoute, Route, compile_routes


def resolve_routes(import_string: str) -> list[DataRoute]:
    """Resolve an import string to a compiled route tree.

    Accepts ``"module:attribute"`` format. When the attribute portion is
    omitted, defaults to ``"routes"``. The attribute may be a sequence of
    ``Route`` objects or mappings, a ``Router``, or a factory function
    returning either.

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the resolved object is not a route tree or router.
        ConfigurationError: If the route tree is invalid.

    """
    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        attr_name = "routes"

    module = importlib.import_module(module_path)
    obj = getattr(module, attr_name)

    if callable(obj) and not isinstance(obj, Router):
        try:
            obj = obj()
        except Exception as exc:
            msg = f"Factory function {import_string!r} raised an error: {exc}"
            raise TypeError(msg) from exc

    if isinstance(obj, Router):
        return obj.routes
    if isinstance(obj, Sequence) and not isinstance(obj, str):
        if all(isinstance(r, DataRoute) for r in obj):
            return list(obj)
        if all(isinstance(r, Route | Mapping) for r in obj):
            return compile_routes(obj, {})

    msg = f"{import_string!r} resolved to {type(obj).__name__}, not a route list or Router"
    raise TypeError(msg)


def resolve_or_exit(import_string: str) -> list[DataRoute]:
    """``resolve_routes`` for commands: report errors and exit 1."""
    try:
        return resolve_routes(import_string)
    except (ModuleNotFoundError, AttributeError, TypeError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
