"""Data strategies: how the scheduled loaders of one attempt are run.

A strategy receives every match of the attempt, each flagged with
``should_load``, and returns ``{route_id: HandlerResult}`` for the ones
it ran. The default runs them concurrently in an anyio task group.

Pipeline::

    parallel_strategy(args)
        start every should_load match as a sibling task
        first Redirect -> cancel the remaining siblings
        -> {route_id: HandlerResult}
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import anyio

from waypoint._internal.types import Params
from waypoint.navigation.requests import LoaderRequest
from waypoint.navigation.results import HandlerResult
from waypoint.routing.route import RouteMatch


@dataclass(frozen=True, slots=True)
class DataStrategyMatch:
    """One match offered to a strategy."""

    match: RouteMatch
    should_load: bool
    _resolver: Callable[[], Awaitable[HandlerResult | None]]

    @property
    def route(self) -> Any:
        return self.match.route

    async def resolve(self) -> HandlerResult | None:
        """Run this route's handler. ``None`` when the route has none."""
        return await self._resolver()


@dataclass(frozen=True, slots=True)
class DataStrategyArgs:
    request: LoaderRequest
    params: Params
    matches: tuple[DataStrategyMatch, ...]
    context: Any = None


async def parallel_strategy(args: DataStrategyArgs) -> dict[str, HandlerResult]:
    """Run every scheduled handler concurrently and wait for all of them.

    A redirect makes the remaining results irrelevant, so the first one
    cancels the sibling tasks still running.
    """
    results: dict[str, HandlerResult] = {}

    async def _resolve(match: DataStrategyMatch) -> None:
        result = await match.resolve()
        if result is None:
            return
        results[match.route.id] = result
        if result.is_redirect:
            tg.cancel_scope.cancel()

    async with anyio.create_task_group() as tg:
        for match in args.matches:
            if match.should_load:
                tg.start_soon(_resolve, match)

    # Report in route order regardless of completion order
    return {m.route.id: results[m.route.id] for m in args.matches if m.route.id in results}


async def sequential_strategy(args: DataStrategyArgs) -> dict[str, HandlerResult]:
    """Run scheduled handlers one at a time, outermost route first.

    Stops at the first redirect.
    """
    results: dict[str, HandlerResult] = {}
    for match in args.matches:
        if not match.should_load:
            continue
        result = await match.resolve()
        if result is None:
            continue
        results[match.route.id] = result
        if result.is_redirect:
            break
    return results
