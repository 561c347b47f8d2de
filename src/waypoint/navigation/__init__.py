"""Navigation — the data router state machine.

``create_router`` builds a ``Router`` over a route tree and a history
store. The router runs loaders and actions, follows redirects, and
publishes frozen ``NavigationState`` snapshots to subscribers.
"""

from waypoint.navigation.requests import AbortSignal, ActionArgs, LoaderArgs, LoaderRequest, PatchArgs, ShouldRevalidateArgs
from waypoint.navigation.results import HandlerResult, Redirect, data, redirect, redirect_document, replace
from waypoint.navigation.router import Router, create_router
from waypoint.navigation.state import (
    IDLE_FETCHER,
    IDLE_NAVIGATION,
    FetcherState,
    HydrationData,
    Navigation,
    NavigationState,
    Revalidation,
    Status,
)
from waypoint.navigation.strategy import DataStrategyArgs, DataStrategyMatch, parallel_strategy, sequential_strategy
from waypoint.navigation.submission import FormData, Submission

__all__ = [
    "IDLE_FETCHER",
    "IDLE_NAVIGATION",
    "AbortSignal",
    "ActionArgs",
    "DataStrategyArgs",
    "DataStrategyMatch",
    "FetcherState",
    "FormData",
    "HandlerResult",
    "HydrationData",
    "LoaderArgs",
    "LoaderRequest",
    "Navigation",
    "NavigationState",
    "PatchArgs",
    "Redirect",
    "Revalidation",
    "Router",
    "ShouldRevalidateArgs",
    "Status",
    "Submission",
    "create_router",
    "data",
    "parallel_strategy",
    "redirect",
    "redirect_document",
    "replace",
    "sequential_strategy",
]
