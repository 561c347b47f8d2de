"""Shared type aliases used across waypoint modules."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

# Route loader or action, receives LoaderArgs/ActionArgs, may be sync or async
Handler: TypeAlias = Callable[..., Any]

# Lazy route module, returns a mapping of route attributes to merge
LazyLoader: TypeAlias = Callable[[], Awaitable[Mapping[str, Any]] | Mapping[str, Any]]

# Route params; values are strings, splats included under "*"
Params: TypeAlias = dict[str, str]

# State subscriber, receives each published NavigationState snapshot
Subscriber: TypeAlias = Callable[[Any], None]
