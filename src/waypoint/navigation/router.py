"""The data router: a navigation state machine over a history store.

Every navigation is an *attempt* with its own ``AbortSignal``. Starting
a new attempt aborts the previous one, and every await is followed by an
identity check, so a superseded attempt can never commit (last navigate
wins). Loader and action results are gathered by the data strategy and
committed in one synchronous step: the new snapshot replaces the old,
history is pushed/replaced, then subscribers are notified.

Lifecycle::

    async with create_router(routes, create_memory_history()) as router:
        router.initialize()
        await router.settled()
        await router.navigate("/courses/42")

The ``async with`` block owns a task group for work the router starts
on its own (the initial load, back/forward coming from the history
store). Leaving it disposes the router and cancels that work.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from typing import Any
from urllib.parse import urlsplit

import anyio
from anyio.abc import TaskGroup

from waypoint._internal.invoke import handler_name, invoke
from waypoint._internal.types import Subscriber
from waypoint.config import FutureConfig, RouterConfig
from waypoint.diagnostics import Diagnostics
from waypoint.errors import (
    ActionError,
    ConfigurationError,
    ContextMisuseError,
    ErrorResponse,
    LoaderError,
    MatchError,
    RedirectLoopError,
)
from waypoint.history.base import History
from waypoint.history.location import Action, Location, Update, create_location
from waypoint.navigation.data import (
    ActionOutcome,
    action_data_for_commit,
    find_nearest_boundary,
    is_new_route_instance,
    matches_until,
    merge_loader_data,
    method_not_allowed,
    missing_loader,
    not_found,
    process_loader_data,
    should_load_on_hydration,
    should_revalidate,
    trim_to_errors,
)
from waypoint.navigation.requests import AbortSignal, ActionArgs, LoaderArgs, LoaderRequest, PatchArgs, ShouldRevalidateArgs
from waypoint.navigation.results import RESUBMIT_STATUSES, HandlerResult, Redirect
from waypoint.navigation.state import (
    IDLE_FETCHER,
    IDLE_NAVIGATION,
    FetcherState,
    HydrationData,
    Navigation,
    NavigationState,
    Revalidation,
    Status,
    done_fetcher,
    loading_fetcher,
    loading_navigation,
    submitting_fetcher,
    submitting_navigation,
)
from waypoint.navigation.strategy import DataStrategyArgs, DataStrategyMatch, parallel_strategy
from waypoint.navigation.submission import FormData, Submission, is_mutation_method, normalize_submission
from waypoint.navigation.targets import Relative, get_target_match, is_hash_change_only, normalize_to
from waypoint.routing.matcher import RouteTable
from waypoint.routing.params import SPLAT
from waypoint.routing.paths import Path, To, get_resolve_to_matches, join_paths, normalize_pathname, resolve_to, strip_basename
from waypoint.routing.route import IMMUTABLE_ROUTE_KEYS, DataRoute, Route, RouteMatch, coerce_routes, compile_routes
from waypoint.scope import RouteScope

logger = logging.getLogger("waypoint.router")

ABSOLUTE_URL_RE = re.compile(r"^(?:[a-z][a-z0-9+.-]*:|//)", re.IGNORECASE)

# Most pathnames remembered as already searched by route discovery
DISCOVERED_LIMIT = 1000

# Route attributes a lazy module may contribute
LAZY_ROUTE_KEYS = frozenset(f.name for f in fields(DataRoute)) - IMMUTABLE_ROUTE_KEYS - {"payload"}


@dataclass(slots=True, eq=False)
class _Attempt:
    """One navigation (or fetcher) attempt and its cancellation token."""

    location: Location
    history_action: Action
    signal: AbortSignal = field(default_factory=AbortSignal)
    prevent_scroll_reset: bool = False
    # Revalidation of the current location; never touches history
    uninterrupted: bool = False
    # History already points at ``location`` (POP or an external push)
    history_synced: bool = False
    is_redirect: bool = False
    redirect_hops: int = 0
    replace: bool | None = None
    consumed_revalidation: bool = False
    # Outcome of the action this attempt is loading after, if any
    pending_action: ActionOutcome | None = None


class Router:
    """Owns ``NavigationState`` and every transition of it.

    Build one with ``create_router()``.
    """

    def __init__(
        self,
        routes: Sequence[Route | Mapping[str, Any]],
        history: History,
        *,
        config: RouterConfig | None = None,
        hydration_data: HydrationData | Mapping[str, Any] | None = None,
        data_strategy: Callable[[DataStrategyArgs], Any] | None = None,
        patch_routes_on_navigation: Callable[[PatchArgs], Any] | None = None,
        diagnostics: Diagnostics | None = None,
        context: Any = None,
    ) -> None:
        self.config = config or RouterConfig()
        self.future: FutureConfig = self.config.future
        self.diagnostics = diagnostics or Diagnostics(enabled=self.config.dev_warnings)
        self.history = history
        self.basename = normalize_pathname(self.config.basename or "/")
        self.manifest: dict[str, DataRoute] = {}
        self._routes = compile_routes(routes, self.manifest)
        self._table = RouteTable(self._routes)
        self._data_strategy = data_strategy or parallel_strategy
        self._patch_routes_on_navigation = patch_routes_on_navigation
        self._context = context

        self._subscribers: list[Subscriber] = []
        self._unlisten: Callable[[], None] | None = None
        self._task_group: TaskGroup | None = None
        self._pending: _Attempt | None = None
        self._navigation_id = 0
        self._fetch_attempts: dict[str, _Attempt] = {}
        self._fetch_reload_id = 0
        self._revalidation_required = False
        self._lazy_loading: dict[str, anyio.Event] = {}
        # Pathnames already searched for better routes, oldest first
        self._discovered: dict[str, None] = {}
        self._inflight = 0
        self._idle: anyio.Event | None = None
        self._claiming_pop = False
        self._claimed_update: Update | None = None
        self._ignore_history_updates = False

        self._state = self._initial_state(HydrationData.coerce(hydration_data))

    def _initial_state(self, hydration: HydrationData | None) -> NavigationState:
        location = self.history.location
        matches = self._table.match(location, self.basename)
        not_found_error: MatchError | None = None

        if matches is None:
            matches = []
            # Route discovery may still find a match on the initial load
            initialized = self._patch_routes_on_navigation is None
            if initialized:
                not_found_error = self._unmatched(location)
        elif any(m.route.lazy is not None for m in matches):
            initialized = False
        elif not any(m.route.loader is not None for m in matches):
            initialized = True
        elif self.future.v7_partial_hydration:
            loader_data = hydration.loader_data if hydration else None
            errors = hydration.errors if hydration else None
            candidates = matches
            if errors:
                candidates = matches_until(matches, next(iter(errors)), include_boundary=True)
            initialized = not any(should_load_on_hydration(m.route, loader_data, errors) for m in candidates)
        else:
            initialized = hydration is not None

        errors = hydration.errors if hydration else None
        return NavigationState(
            location=location,
            matches=tuple(trim_to_errors(matches, errors)),
            loader_data=dict(hydration.loader_data) if hydration else {},
            action_data=hydration.action_data if hydration else None,
            errors=errors,
            initialized=initialized,
            history_action=self.history.action,
            not_found=not_found_error,
        )

    # -- Public surface --

    @property
    def state(self) -> NavigationState:
        """The current snapshot."""
        return self._state

    @property
    def routes(self) -> list[DataRoute]:
        return self._routes

    async def __aenter__(self) -> Router:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(self, *exc_info: Any) -> bool | None:
        task_group, self._task_group = self._task_group, None
        self.dispose()
        assert task_group is not None
        task_group.cancel_scope.cancel()
        return await task_group.__aexit__(*exc_info)

    def initialize(self) -> Router:
        """Start listening to history and run the initial load if needed.

        Must be called inside ``async with router:``.
        """
        if self._task_group is None:
            msg = "Router.initialize() must be called inside `async with router:`."
            raise ContextMisuseError(msg)
        if self._unlisten is None:
            self._unlisten = self.history.listen(self._on_history_update)
        if not self._state.initialized:
            if self.future.v7_partial_hydration:
                for match in self._state.matches:
                    if should_load_on_hydration(match.route, self._state.loader_data, self._state.errors):
                        self.diagnostics.warn_once(
                            f"hydrate-fallback:{match.route.id}",
                            match.route.hydrate_fallback is not None,
                            f"No `hydrate_fallback` provided for route {match.route.id!r} "
                            "while its loader runs during initial hydration.",
                        )
            self._spawn(
                self._start_navigation,
                Action.POP,
                self._state.location,
                initial_hydration=True,
                history_synced=True,
            )
        return self

    def dispose(self) -> None:
        """Stop listening, drop subscribers, abort in-flight work."""
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None
        self._subscribers.clear()
        if self._pending is not None:
            self._pending.signal.abort("disposed")
            self._pending = None
        for key in list(self._fetch_attempts):
            self._abort_fetcher(key)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Call *subscriber* with every new snapshot; returns an unsubscribe function."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    async def settled(self) -> NavigationState:
        """Wait until no navigation, fetcher or revalidation is running."""
        while self._inflight:
            if self._idle is None:
                self._idle = anyio.Event()
            await self._idle.wait()
        return self._state

    def create_href(self, to: To) -> str:
        return self.history.create_href(to)

    def encode_location(self, to: To) -> Path:
        return self.history.encode_location(to)

    def get_fetcher(self, key: str) -> FetcherState:
        return self._state.fetchers.get(key, IDLE_FETCHER)

    def delete_fetcher(self, key: str) -> None:
        """Abort the fetcher's in-flight work and forget its state."""
        self._abort_fetcher(key)
        if key in self._state.fetchers:
            fetchers = dict(self._state.fetchers)
            del fetchers[key]
            self._update_state(fetchers=fetchers)

    def scope(self, route_id: str | None = None) -> RouteScope:
        """A route scope over the current matches, down to *route_id*."""
        matches = list(self._state.matches)
        if route_id is not None:
            ids = [m.route.id for m in matches]
            if route_id not in ids:
                msg = f"Route {route_id!r} is not part of the current match chain."
                raise ContextMisuseError(msg)
            matches = matches[: ids.index(route_id) + 1]
        return RouteScope(self, tuple(matches))

    def patch_routes(self, route_id: str | None, children: Sequence[Route | Mapping[str, Any]]) -> None:
        """Add child routes under *route_id* (or at the root when ``None``).

        Children that duplicate an existing route are skipped.
        """
        if route_id is None:
            siblings = self._routes
        else:
            parent = self.manifest.get(route_id)
            if parent is None:
                msg = f"No route found to patch children into: route_id={route_id!r}"
                raise ConfigurationError(msg)
            siblings = parent.children

        new_routes = [r for r in coerce_routes(children) if not any(_is_same_route(r, e) for e in siblings)]
        if not new_routes:
            return
        parent_path = (route_id or "_", "patch", str(len(siblings)))
        siblings.extend(compile_routes(new_routes, self.manifest, parent_path))
        self._table.invalidate()
        # New routes may now beat a splat match that was already searched
        self._discovered.clear()
        logger.debug("patched %d route(s) under %r", len(new_routes), route_id)

    # -- Navigation --

    async def navigate(
        self,
        to: To | int | None,
        *,
        replace: bool | None = None,
        state: Any = None,
        form_method: str | None = None,
        form_data: FormData | Mapping[str, Any] | None = None,
        form_enc_type: str | None = None,
        json: Any = None,
        text: str | None = None,
        prevent_scroll_reset: bool = False,
        relative: Relative = "route",
        from_route_id: str | None = None,
    ) -> None:
        """Navigate to *to*, or move through history by an integer delta.

        Awaiting returns once the attempt (redirects included) has
        committed or been superseded. Raises ``NavigationTargetError``
        synchronously for malformed targets.
        """
        if isinstance(to, int) and not isinstance(to, bool):
            await self._go(to)
            return

        normalized = normalize_to(
            self._state.location,
            self._state.matches,
            self.basename,
            to,
            relative_splat_path=self.future.v7_relative_splat_path,
            from_route_id=from_route_id,
            relative=relative,
        )
        path, submission, error = normalize_submission(
            normalized,
            form_method=form_method,
            form_data=form_data,
            form_enc_type=form_enc_type,
            json=json,
            text=text,
        )

        current = self._state.location
        next_location = create_location(current, path, state)
        encoded = self.history.encode_location(Path(next_location.pathname, next_location.search, next_location.hash))
        next_location = next_location.with_path(encoded)

        if replace is True:
            history_action = Action.REPLACE
        elif replace is False:
            history_action = Action.PUSH
        elif submission is not None and submission.is_mutation and submission.form_action == current.pathname + current.search:
            # Submitting to the current URL replaces its entry
            history_action = Action.REPLACE
        else:
            history_action = Action.PUSH

        with self._busy():
            await self._start_navigation(
                history_action,
                next_location,
                submission=submission,
                pending_error=error,
                prevent_scroll_reset=prevent_scroll_reset,
                replace=replace,
            )

    async def revalidate(self) -> None:
        """Re-run the active loaders without changing location.

        Fetchers in flight are left alone.
        """
        self._revalidation_required = True
        self._update_state(revalidation=Revalidation.LOADING)
        navigation = self._state.navigation
        if navigation.state is Status.SUBMITTING:
            # The load that follows the action revalidates everything
            return
        with self._busy():
            await self._restart_navigation()

    async def _restart_navigation(self) -> None:
        """Run the current (or in-flight) location's loaders again.

        An in-flight load is superseded by an identical attempt that
        starts its loaders over; with nothing in flight the committed
        location is revalidated in place.
        """
        navigation = self._state.navigation
        pending = self._pending
        if navigation.state is Status.IDLE:
            await self._start_navigation(self._state.history_action, self._state.location, uninterrupted=True)
            return
        assert navigation.location is not None
        await self._start_navigation(
            pending.history_action if pending else self._state.history_action,
            navigation.location,
            override_navigation=navigation,
            pending_action=pending.pending_action if pending else None,
            history_synced=pending.history_synced if pending else False,
            prevent_scroll_reset=pending.prevent_scroll_reset if pending else False,
            replace=pending.replace if pending else None,
            is_redirect=pending.is_redirect if pending else False,
            redirect_hops=pending.redirect_hops if pending else 0,
        )

    async def _go(self, delta: int) -> None:
        self._claiming_pop = True
        try:
            self.history.go(delta)
        finally:
            self._claiming_pop = False
        update, self._claimed_update = self._claimed_update, None
        if update is None:
            # Out of bounds, or the host reports the pop later
            return
        with self._busy():
            await self._start_navigation(Action.POP, update.location, history_synced=True)

    def _on_history_update(self, update: Update) -> None:
        if self._ignore_history_updates:
            return
        if self._claiming_pop:
            self._claimed_update = update
            return
        if self._task_group is None:
            msg = "History changed while the router is not running; use `async with router:`."
            raise ContextMisuseError(msg)
        logger.debug("history %s to %s", update.action.value, update.location.path)
        self._spawn(self._start_navigation, update.action, update.location, history_synced=True)

    async def _start_navigation(
        self,
        history_action: Action,
        location: Location,
        *,
        submission: Submission | None = None,
        pending_error: ErrorResponse | None = None,
        override_navigation: Navigation | None = None,
        pending_action: ActionOutcome | None = None,
        initial_hydration: bool = False,
        uninterrupted: bool = False,
        history_synced: bool = False,
        prevent_scroll_reset: bool = False,
        replace: bool | None = None,
        is_redirect: bool = False,
        redirect_hops: int = 0,
    ) -> None:
        if self._pending is not None:
            logger.debug("aborting navigation to %s", self._pending.location.path)
            self._pending.signal.abort("superseded")

        attempt = _Attempt(
            location=location,
            history_action=history_action,
            prevent_scroll_reset=prevent_scroll_reset,
            uninterrupted=uninterrupted,
            history_synced=history_synced,
            is_redirect=is_redirect,
            redirect_hops=redirect_hops,
            replace=replace,
        )
        self._pending = attempt
        self._navigation_id += 1
        logger.debug("navigation %s %s", history_action.value, location.path)

        matches = self._table.match(location, self.basename)
        if self._patch_routes_on_navigation is not None and self._needs_discovery(location.pathname, matches):
            matches, discovery_error = await self._discover_routes(attempt, location.pathname, matches)
            if attempt is not self._pending:
                return
            if discovery_error is not None:
                self._commit_discovery_error(attempt, location.pathname, discovery_error)
                return

        if matches is None:
            self._complete_navigation(
                attempt, matches=[], loader_data={}, not_found_error=self._unmatched(location)
            )
            return

        if (
            self._state.initialized
            and not self._revalidation_required
            and not uninterrupted
            and is_hash_change_only(self._state.location, location)
            and not (submission is not None and submission.is_mutation)
        ):
            self._complete_navigation(attempt, matches=matches, errors=self._state.errors)
            return

        if pending_error is not None:
            pending_action = (find_nearest_boundary(matches).route.id, HandlerResult.error(pending_error))
        elif submission is not None and submission.is_mutation:
            pending_action = await self._handle_action(attempt, submission, matches)
            if pending_action is None:
                return
            override_navigation = loading_navigation(location, submission)

        await self._handle_loaders(
            attempt,
            matches,
            submission=submission,
            override_navigation=override_navigation,
            pending_action=pending_action,
            initial_hydration=initial_hydration,
        )

    async def _handle_action(
        self,
        attempt: _Attempt,
        submission: Submission,
        matches: list[RouteMatch],
    ) -> ActionOutcome | None:
        """Run the submission's action. ``None`` means the attempt is over."""
        location = attempt.location
        self._update_state(navigation=submitting_navigation(location, submission))

        target = get_target_match(matches, location)
        request = LoaderRequest.create(self.history.create_url(location), attempt.signal, submission)
        result: HandlerResult | None = None
        if target.route.action is not None or target.route.lazy is not None:
            results = await self._call_data_strategy("action", request, [target], matches)
            result = results.get(target.route.id)
        if result is None:
            result = HandlerResult.error(method_not_allowed(submission.form_method, location.pathname, target.route.id))

        if attempt is not self._pending:
            return None

        if result.is_redirect:
            redirect: Redirect = result.value
            replace = attempt.replace
            if replace is None:
                current = self._state.location
                replace = self._normalize_redirect_location(redirect.location, matches, location) == current.pathname + current.search
            await self._start_redirect_navigation(attempt, redirect, matches, submission=submission, replace=replace)
            return None

        if result.is_error:
            boundary = find_nearest_boundary(matches, target.route.id)
            # Keep the pre-submission entry reachable with "back"
            if attempt.replace is not True:
                attempt.history_action = Action.PUSH
            return boundary.route.id, result
        return target.route.id, result

    async def _handle_loaders(
        self,
        attempt: _Attempt,
        matches: list[RouteMatch],
        *,
        submission: Submission | None,
        override_navigation: Navigation | None,
        pending_action: ActionOutcome | None,
        initial_hydration: bool,
    ) -> None:
        location = attempt.location
        loading = override_navigation or loading_navigation(location, submission)
        active_submission = submission or loading.submission
        attempt.consumed_revalidation = self._revalidation_required
        attempt.pending_action = pending_action
        to_load = self._matches_to_load(location, matches, active_submission, pending_action, initial_hydration)
        action_data = action_data_for_commit(pending_action)

        if not to_load:
            errors = None
            if pending_action is not None and pending_action[1].is_error:
                errors = {pending_action[0]: pending_action[1].value}
            self._complete_navigation(attempt, matches=matches, loader_data={}, errors=errors, action_data=action_data)
            return

        if not attempt.uninterrupted and not (self.future.v7_partial_hydration and initial_hydration):
            changes: dict[str, Any] = {"navigation": loading}
            if action_data:
                changes["action_data"] = action_data
            self._update_state(**changes)

        request = LoaderRequest.create(self.history.create_url(location), attempt.signal)
        results = await self._call_data_strategy("loader", request, to_load, matches)
        if attempt is not self._pending:
            return

        redirect = next((r for r in results.values() if r.is_redirect), None)
        if redirect is not None:
            await self._start_redirect_navigation(
                attempt, redirect.value, matches, submission=active_submission, replace=attempt.replace
            )
            return

        loader_data, errors = process_loader_data(matches, results, pending_action)
        self._complete_navigation(attempt, matches=matches, loader_data=loader_data, errors=errors, action_data=action_data)

    def _matches_to_load(
        self,
        location: Location,
        matches: list[RouteMatch],
        submission: Submission | None,
        pending_action: ActionOutcome | None,
        initial_hydration: bool,
    ) -> list[RouteMatch]:
        """Matches whose loader must run for this attempt."""
        state = self._state
        action_result = pending_action[1] if pending_action else None
        action_status = action_result.status if action_result else None
        skip_revalidation = bool(
            self.future.v7_skip_action_error_revalidation and action_status is not None and action_status >= 400
        )

        current_url = self.history.create_url(state.location)
        next_url = self.history.create_url(location)
        current_parts, next_parts = urlsplit(current_url), urlsplit(next_url)
        same_url = (current_parts.path, current_parts.query) == (next_parts.path, next_parts.query)
        search_changed = current_parts.query != next_parts.query

        candidates = matches
        if initial_hydration and state.errors:
            candidates = matches_until(matches, next(iter(state.errors)), include_boundary=True)
        elif action_result is not None and action_result.is_error and pending_action is not None:
            # Nothing at or below the boundary that caught the action error reloads
            candidates = matches_until(matches, pending_action[0])

        to_load: list[RouteMatch] = []
        for index, match in enumerate(candidates):
            route = match.route
            if route.lazy is not None:
                to_load.append(match)
                continue
            if route.loader is None:
                continue
            if initial_hydration:
                if should_load_on_hydration(route, state.loader_data, state.errors):
                    to_load.append(match)
                continue

            current = state.matches[index] if index < len(state.matches) else None
            if current is None or current.route.id != route.id or route.id not in state.loader_data:
                to_load.append(match)
                continue

            default = not skip_revalidation and (
                self._revalidation_required or same_url or search_changed or is_new_route_instance(current, match)
            )
            args = ShouldRevalidateArgs(
                current_url=current_url,
                current_params=dict(current.params),
                next_url=next_url,
                next_params=dict(match.params),
                default_should_revalidate=default,
                form_method=submission.form_method if submission else None,
                form_action=submission.form_action if submission else None,
                form_enc_type=submission.form_enc_type if submission else None,
                form_data=submission.form_data if submission else None,
                json=submission.json if submission else None,
                text=submission.text if submission else None,
                action_result=action_result.value if action_result else None,
                action_status=action_status,
            )
            if should_revalidate(route, args):
                to_load.append(match)
        return to_load

    async def _start_redirect_navigation(
        self,
        attempt: _Attempt,
        redirect: Redirect,
        matches: list[RouteMatch],
        *,
        submission: Submission | None = None,
        replace: bool | None = None,
    ) -> None:
        target = self._normalize_redirect_location(redirect.location, matches, attempt.location)

        if redirect.reload_document or ABSOLUTE_URL_RE.match(target):
            url = target if ABSOLUTE_URL_RE.match(target) else self.history.create_url(target)
            logger.info("redirect to %s leaves the application", url)
            if attempt is self._pending:
                self._pending = None
                self._update_state(navigation=IDLE_NAVIGATION, revalidation=Revalidation.IDLE)
            self.history.assign(url)
            return

        hops = attempt.redirect_hops + 1
        if hops > self.config.max_redirects:
            error = RedirectLoopError(target, self.config.max_redirects)
            logger.warning("%s", error)
            boundary = find_nearest_boundary(matches)
            self._complete_navigation(attempt, matches=matches, loader_data={}, errors={boundary.route.id: error})
            return

        logger.debug("redirect %s -> %s (hop %d)", attempt.location.path, target, hops)
        location = create_location(self._state.location, target)
        history_action = Action.REPLACE if replace is True or redirect.replace else Action.PUSH

        if submission is not None and submission.is_mutation and redirect.status in RESUBMIT_STATUSES:
            await self._start_navigation(
                history_action,
                location,
                submission=dataclasses.replace(submission, form_action=target),
                prevent_scroll_reset=attempt.prevent_scroll_reset,
                is_redirect=True,
                redirect_hops=hops,
            )
            return

        await self._start_navigation(
            history_action,
            location,
            override_navigation=loading_navigation(location, submission),
            prevent_scroll_reset=attempt.prevent_scroll_reset,
            is_redirect=True,
            redirect_hops=hops,
        )

    def _normalize_redirect_location(self, target: str, matches: Sequence[RouteMatch], origin: Location) -> str:
        """Make a redirect target a basename-prefixed path, or keep it absolute when external."""
        if ABSOLUTE_URL_RE.match(target):
            url = "http:" + target if target.startswith("//") else target
            parts = urlsplit(url)
            app = urlsplit(self.history.create_url("/"))
            same_origin = (parts.scheme, parts.netloc) == (app.scheme, app.netloc)
            if same_origin and strip_basename(parts.path or "/", self.basename) is not None:
                path = parts.path or "/"
                if parts.query:
                    path += "?" + parts.query
                if parts.fragment:
                    path += "#" + parts.fragment
                return path
            return target

        # Paths resolve against the route chain that issued the redirect
        pathname = strip_basename(origin.pathname, self.basename) or origin.pathname
        resolved = resolve_to(target, get_resolve_to_matches(matches, self.future.v7_relative_splat_path), pathname)
        if self.basename != "/":
            resolved = Path(
                self.basename if resolved.pathname == "/" else join_paths([self.basename, resolved.pathname]),
                resolved.search,
                resolved.hash,
            )
        return resolved.pathname + resolved.search + resolved.hash

    def _complete_navigation(
        self,
        attempt: _Attempt,
        *,
        matches: Sequence[RouteMatch],
        loader_data: Mapping[str, Any] | None = None,
        errors: Mapping[str, BaseException] | None = None,
        action_data: Mapping[str, Any] | None = None,
        not_found_error: MatchError | None = None,
    ) -> None:
        """Commit *attempt*: new snapshot, then history, then subscribers."""
        if attempt is not self._pending:
            return
        state = self._state
        location = attempt.location

        is_action_reload = (
            state.action_data is not None
            and is_mutation_method(state.navigation.form_method)
            and state.navigation.state is Status.LOADING
            and not attempt.is_redirect
        )
        if action_data is not None:
            committed_action_data = action_data or None
        elif is_action_reload or attempt.uninterrupted:
            committed_action_data = state.action_data
        else:
            committed_action_data = None

        committed_loader_data = (
            merge_loader_data(state.loader_data, loader_data, matches, errors)
            if loader_data is not None
            else state.loader_data
        )

        self._pending = None
        if attempt.consumed_revalidation or attempt.uninterrupted:
            self._revalidation_required = False
        self._state = state.replace(
            location=location,
            matches=tuple(trim_to_errors(matches, errors)),
            loader_data=committed_loader_data,
            action_data=committed_action_data,
            errors=errors or None,
            navigation=IDLE_NAVIGATION,
            revalidation=Revalidation.IDLE,
            initialized=True,
            history_action=attempt.history_action,
            not_found=not_found_error,
            prevent_scroll_reset=attempt.prevent_scroll_reset,
        )

        if not (attempt.uninterrupted or attempt.history_synced or attempt.history_action is Action.POP):
            self._ignore_history_updates = True
            try:
                if attempt.history_action is Action.REPLACE:
                    self.history.replace(location, location.state)
                else:
                    self.history.push(location, location.state)
            finally:
                self._ignore_history_updates = False

        logger.debug("committed %s (%d matches)", location.path, len(self._state.matches))
        self._publish()

    def _unmatched(self, location: Location) -> MatchError:
        if self.config.warn_on_unmatched:
            self.diagnostics.warning(False, f'No routes matched location "{location.path}"')
        return MatchError(location.pathname)

    # -- Route discovery --

    def _needs_discovery(self, pathname: str, matches: list[RouteMatch] | None) -> bool:
        if matches is None:
            return True
        # A splat match might only win because better routes aren't known yet
        return SPLAT in matches[-1].params and pathname not in self._discovered

    def _remember_discovered(self, pathname: str) -> None:
        self._discovered[pathname] = None
        if len(self._discovered) > DISCOVERED_LIMIT:
            del self._discovered[next(iter(self._discovered))]

    async def _discover_routes(
        self,
        attempt: _Attempt,
        pathname: str,
        matches: list[RouteMatch] | None,
    ) -> tuple[list[RouteMatch] | None, BaseException | None]:
        partial = matches if matches is not None else (self._table.match(pathname, self.basename, allow_partial=True) or [])
        while True:
            before = [m.route.id for m in partial]
            args = PatchArgs(path=pathname, matches=tuple(partial), patch=self.patch_routes, signal=attempt.signal)
            try:
                await invoke(self._patch_routes_on_navigation, args)
            except Exception as exc:
                logger.debug("patch_routes_on_navigation failed for %s", pathname, exc_info=True)
                return matches, exc
            if attempt is not self._pending:
                return None, None

            found = self._table.match(pathname, self.basename)
            if found is not None and (matches is None or [m.route.id for m in found] != [m.route.id for m in matches]):
                self._remember_discovered(pathname)
                return found, None

            next_partial = self._table.match(pathname, self.basename, allow_partial=True) or []
            if not next_partial or [m.route.id for m in next_partial] == before:
                if matches is not None:
                    self._remember_discovered(pathname)
                return matches, None
            partial = next_partial

    def _commit_discovery_error(self, attempt: _Attempt, pathname: str, error: BaseException) -> None:
        partial = self._table.match(pathname, self.basename, allow_partial=True)
        if not partial:
            self._complete_navigation(attempt, matches=[], loader_data={}, not_found_error=self._unmatched(attempt.location))
            return
        boundary = find_nearest_boundary(partial)
        wrapped = LoaderError(boundary.route.id, error)
        self._complete_navigation(attempt, matches=partial, loader_data={}, errors={boundary.route.id: wrapped})

    # -- Fetchers --

    async def fetch(
        self,
        key: str,
        route_id: str,
        href: To | None,
        *,
        form_method: str | None = None,
        form_data: FormData | Mapping[str, Any] | None = None,
        form_enc_type: str | None = None,
        json: Any = None,
        text: str | None = None,
        relative: Relative = "route",
    ) -> None:
        """Load or submit to *href* without navigating.

        Results land in ``state.fetchers[key]``; a later ``fetch`` with
        the same key supersedes this one.
        """
        if key in self._fetch_attempts:
            self._abort_fetcher(key)

        normalized = normalize_to(
            self._state.location,
            self._state.matches,
            self.basename,
            href,
            relative_splat_path=self.future.v7_relative_splat_path,
            from_route_id=route_id,
            relative=relative,
        )
        matches = self._table.match(normalized, self.basename)
        if matches is None:
            self._set_fetcher_error(key, route_id, not_found(normalized))
            return

        path, submission, error = normalize_submission(
            normalized,
            form_method=form_method,
            form_data=form_data,
            form_enc_type=form_enc_type,
            json=json,
            text=text,
            is_fetcher=True,
        )
        if error is not None:
            self._set_fetcher_error(key, route_id, error)
            return

        match = get_target_match(matches, path)
        with self._busy():
            if submission is not None and submission.is_mutation:
                await self._handle_fetcher_action(key, route_id, path, match, matches, submission)
            else:
                await self._handle_fetcher_loader(key, route_id, path, match, matches, submission)

    async def _handle_fetcher_loader(
        self,
        key: str,
        route_id: str,
        path: str,
        match: RouteMatch,
        matches: list[RouteMatch],
        submission: Submission | None,
    ) -> None:
        existing = self._state.fetchers.get(key)
        self._set_fetcher(key, loading_fetcher(submission, existing.data if existing else None))
        attempt = _Attempt(location=create_location(self._state.location, path), history_action=Action.PUSH)
        self._fetch_attempts[key] = attempt

        request = LoaderRequest.create(self.history.create_url(path), attempt.signal)
        results = await self._call_data_strategy("loader", request, [match], matches)
        if self._fetch_attempts.get(key) is not attempt:
            return
        del self._fetch_attempts[key]

        result = results.get(match.route.id) or HandlerResult.error(missing_loader(path, match.route.id))
        if result.is_redirect:
            self._set_fetcher(key, done_fetcher(None))
            await self._start_redirect_navigation(attempt, result.value, matches)
            return
        if result.is_error:
            self._set_fetcher_error(key, route_id, result.value)
            return
        self._set_fetcher(key, done_fetcher(result.value))

    async def _handle_fetcher_action(
        self,
        key: str,
        route_id: str,
        path: str,
        match: RouteMatch,
        matches: list[RouteMatch],
        submission: Submission,
    ) -> None:
        if match.route.action is None and match.route.lazy is None:
            self._set_fetcher_error(key, route_id, method_not_allowed(submission.form_method, path, match.route.id))
            return

        existing = self._state.fetchers.get(key)
        self._set_fetcher(key, submitting_fetcher(submission, existing.data if existing else None))
        attempt = _Attempt(location=create_location(self._state.location, path), history_action=Action.PUSH)
        self._fetch_attempts[key] = attempt

        request = LoaderRequest.create(self.history.create_url(path), attempt.signal, submission)
        results = await self._call_data_strategy("action", request, [match], matches)
        if self._fetch_attempts.get(key) is not attempt:
            return

        result = results.get(match.route.id) or HandlerResult.error(
            method_not_allowed(submission.form_method, path, match.route.id)
        )
        if result.is_redirect:
            del self._fetch_attempts[key]
            self._set_fetcher(key, done_fetcher(None))
            await self._start_redirect_navigation(attempt, result.value, matches, submission=submission)
            return
        if result.is_error:
            del self._fetch_attempts[key]
            self._set_fetcher_error(key, route_id, result.value)
            return

        # The mutation succeeded, so every page loader is stale
        self._revalidation_required = True
        if self._pending is not None:
            del self._fetch_attempts[key]
            self._set_fetcher(key, done_fetcher(result.value))
            if self._state.navigation.state is not Status.SUBMITTING:
                # Its loaders may already have read pre-mutation data
                await self._restart_navigation()
            return
        self._set_fetcher(key, loading_fetcher(submission, result.value))
        await self._revalidate_after_fetcher(key, attempt, (match.route.id, result), submission)

    async def _revalidate_after_fetcher(
        self,
        key: str,
        attempt: _Attempt,
        action: ActionOutcome,
        submission: Submission,
    ) -> None:
        state = self._state
        location, matches = state.location, list(state.matches)
        self._fetch_reload_id += 1
        reload_id, navigation_id = self._fetch_reload_id, self._navigation_id

        to_load = self._matches_to_load(location, matches, submission, action, initial_hydration=False)
        self._revalidation_required = False
        self._update_state(revalidation=Revalidation.LOADING)
        results: dict[str, HandlerResult] = {}
        if to_load:
            request = LoaderRequest.create(self.history.create_url(location), attempt.signal)
            results = await self._call_data_strategy("loader", request, to_load, matches)

        owns_fetcher = self._fetch_attempts.get(key) is attempt
        if owns_fetcher:
            del self._fetch_attempts[key]
        fetchers = dict(self._state.fetchers)
        if owns_fetcher and key in fetchers:
            fetchers[key] = done_fetcher(action[1].value)

        stale = navigation_id != self._navigation_id or reload_id != self._fetch_reload_id
        if stale:
            self._update_state(fetchers=fetchers)
            return

        redirect = next((r for r in results.values() if r.is_redirect), None)
        if redirect is not None:
            self._update_state(fetchers=fetchers)
            await self._start_redirect_navigation(attempt, redirect.value, matches)
            return

        loader_data, errors = process_loader_data(matches, results)
        self._update_state(
            loader_data=merge_loader_data(self._state.loader_data, loader_data, matches, errors),
            errors=errors,
            fetchers=fetchers,
            revalidation=Revalidation.IDLE,
        )

    def _set_fetcher(self, key: str, fetcher: FetcherState) -> None:
        fetchers = dict(self._state.fetchers)
        fetchers[key] = fetcher
        self._update_state(fetchers=fetchers)

    def _set_fetcher_error(self, key: str, route_id: str, error: BaseException) -> None:
        """Report a fetcher error on the page and drop the fetcher."""
        matches = self._state.matches
        boundary_id = find_nearest_boundary(matches, route_id).route.id if matches else route_id
        self._fetch_attempts.pop(key, None)
        fetchers = dict(self._state.fetchers)
        fetchers.pop(key, None)
        logger.debug("fetcher %r failed on route %r: %r", key, route_id, error)
        self._update_state(errors={boundary_id: error}, fetchers=fetchers)

    def _abort_fetcher(self, key: str) -> None:
        attempt = self._fetch_attempts.pop(key, None)
        if attempt is not None:
            attempt.signal.abort("superseded")

    # -- Handlers --

    async def _call_data_strategy(
        self,
        kind: str,
        request: LoaderRequest,
        to_load: Sequence[RouteMatch],
        matches: Sequence[RouteMatch],
    ) -> dict[str, HandlerResult]:
        load_ids = {m.route.id for m in to_load}
        strategy_matches = tuple(
            DataStrategyMatch(m, m.route.id in load_ids, functools.partial(self._call_handler, kind, m, request))
            for m in matches
        )
        args = DataStrategyArgs(
            request=request,
            params=dict(matches[-1].params) if matches else {},
            matches=strategy_matches,
            context=self._context,
        )
        try:
            return dict(await invoke(self._data_strategy, args))
        except Exception as exc:
            logger.debug("data strategy %s raised", handler_name(self._data_strategy), exc_info=True)
            wrapper = LoaderError if kind == "loader" else ActionError
            return {m.route.id: HandlerResult.error(wrapper(m.route.id, exc)) for m in to_load}

    async def _call_handler(self, kind: str, match: RouteMatch, request: LoaderRequest) -> HandlerResult | None:
        route = match.route
        try:
            await self._load_lazy_route(route)
            handler = route.loader if kind == "loader" else route.action
            if handler is None:
                return None
            args_type = LoaderArgs if kind == "loader" else ActionArgs
            value = await invoke(handler, args_type(request=request, params=dict(match.params), context=self._context))
        except Redirect as redirect:
            return HandlerResult.from_value(redirect)
        except ErrorResponse as error:
            logger.debug("%s for route %r raised %s", kind, route.id, error)
            return HandlerResult.error(error)
        except Exception as exc:
            logger.debug("%s for route %r raised %r", kind, route.id, exc)
            wrapper = LoaderError if kind == "loader" else ActionError
            return HandlerResult.error(wrapper(route.id, exc))
        return HandlerResult.from_value(value)

    async def _load_lazy_route(self, route: DataRoute) -> None:
        """Merge a route's lazy module into it, once.

        Concurrent callers wait for the first one. Properties the route
        already defines, and structural keys, are never overridden.
        """
        while route.lazy is not None:
            loading = self._lazy_loading.get(route.id)
            if loading is not None:
                await loading.wait()
                continue

            loading = self._lazy_loading[route.id] = anyio.Event()
            try:
                module = await invoke(route.lazy)
                for key, value in dict(module).items():
                    if key not in LAZY_ROUTE_KEYS:
                        self.diagnostics.warning(
                            False,
                            f"Route property {key} is not a supported property to be returned "
                            "from a lazy route function. This property will be ignored.",
                        )
                        continue
                    if getattr(route, key) is not None:
                        self.diagnostics.warning(
                            False,
                            f'Route "{route.id}" has a static property "{key}" defined but its lazy '
                            f'function is also returning a value for this property. The lazy route '
                            f'property "{key}" will be ignored.',
                        )
                        continue
                    setattr(route, key, value)
                route.lazy = None
                route.refresh_payload()
                logger.debug("resolved lazy route %r", route.id)
            finally:
                del self._lazy_loading[route.id]
                loading.set()

    # -- Plumbing --

    def _update_state(self, **changes: Any) -> None:
        self._state = self._state.replace(**changes)
        self._publish()

    def _publish(self) -> None:
        for subscriber in list(self._subscribers):
            subscriber(self._state)

    def _spawn(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        assert self._task_group is not None
        self._begin()

        async def run() -> None:
            try:
                await func(*args, **kwargs)
            finally:
                self._end()

        self._task_group.start_soon(run)

    @contextmanager
    def _busy(self) -> Iterator[None]:
        self._begin()
        try:
            yield
        finally:
            self._end()

    def _begin(self) -> None:
        self._inflight += 1

    def _end(self) -> None:
        self._inflight -= 1
        if not self._inflight and self._idle is not None:
            self._idle.set()
            self._idle = None


def _is_same_route(new: Route, existing: DataRoute) -> bool:
    if new.id is not None and new.id == existing.id:
        return True
    if (new.index, new.path, new.case_sensitive) != (existing.index, existing.path, existing.case_sensitive):
        return False
    if not new.children and not existing.children:
        return True
    return all(any(_is_same_route(child, e) for e in existing.children) for child in new.children)


def create_router(
    routes: Sequence[Route | Mapping[str, Any]],
    history: History,
    *,
    config: RouterConfig | None = None,
    hydration_data: HydrationData | Mapping[str, Any] | None = None,
    future: FutureConfig | Mapping[str, bool] | None = None,
    data_strategy: Callable[[DataStrategyArgs], Any] | None = None,
    patch_routes_on_navigation: Callable[[PatchArgs], Any] | None = None,
    diagnostics: Diagnostics | None = None,
    context: Any = None,
) -> Router:
    """Compile *routes* and build a router over *history*.

    *future* overrides ``config.future``; a mapping of flag names works
    too. Raises ``ConfigurationError`` for an invalid route tree.
    """
    config = config or RouterConfig()
    if future is not None:
        if not isinstance(future, FutureConfig):
            future = dataclasses.replace(config.future, **dict(future))
        config = dataclasses.replace(config, future=future)
    return Router(
        routes,
        history,
        config=config,
        hydration_data=hydration_data,
        data_strategy=data_strategy,
        patch_routes_on_navigation=patch_routes_on_navigation,
        diagnostics=diagnostics,
        context=context,
    )
