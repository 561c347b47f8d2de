"""Calling user-supplied route callables.

Loaders, actions, ``lazy`` modules, data strategies and
``patch_routes_on_navigation`` may be plain functions, coroutine
functions, or callables returning any awaitable. The router only ever
goes through ``invoke`` so it never has to care which.
"""

import functools
import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *handler* and await its result when it is awaitable.

    Usage::

        value = await invoke(route.loader, LoaderArgs(request=request))
    """
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def handler_name(handler: Any) -> str:
    """A readable name for *handler* in log records."""
    while isinstance(handler, functools.partial):
        handler = handler.func
    return getattr(handler, "__qualname__", None) or type(handler).__name__
