"""Immutable router snapshots.

The router never mutates a published ``NavigationState``. Every
transition builds a new one with ``NavigationState.replace()``, and the
mapping fields are read-only proxies.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from waypoint.errors import ErrorResponse, MatchError, WaypointError
from waypoint.history.location import Action, Location
from waypoint.navigation.submission import FORM_URLENCODED, FormData, Submission
from waypoint.routing.route import RouteMatch


class Status(StrEnum):
    """Phase of the page navigation or of one fetcher."""

    IDLE = "idle"
    LOADING = "loading"
    SUBMITTING = "submitting"


class Revalidation(StrEnum):
    IDLE = "idle"
    LOADING = "loading"


@dataclass(frozen=True, slots=True)
class Navigation:
    """The in-flight page navigation, if any.

    ``location`` is where the navigation is heading; the ``form_*``
    fields are set while a submission (or the load that follows it) is
    in flight.
    """

    state: Status = Status.IDLE
    location: Location | None = None
    form_method: str | None = None
    form_action: str | None = None
    form_enc_type: str | None = None
    form_data: FormData | None = None
    json: Any = None
    text: str | None = None

    @property
    def submission(self) -> Submission | None:
        if self.form_method is None or self.form_action is None:
            return None
        return Submission(
            form_method=self.form_method,
            form_action=self.form_action,
            form_enc_type=self.form_enc_type or FORM_URLENCODED,
            form_data=self.form_data,
            json=self.json,
            text=self.text,
        )


IDLE_NAVIGATION = Navigation()


def loading_navigation(location: Location, submission: Submission | None = None) -> Navigation:
    return Navigation(Status.LOADING, location, **_submission_fields(submission))


def submitting_navigation(location: Location, submission: Submission) -> Navigation:
    return Navigation(Status.SUBMITTING, location, **_submission_fields(submission))


@dataclass(frozen=True, slots=True)
class FetcherState:
    """State of one keyed fetcher."""

    state: Status = Status.IDLE
    data: Any = None
    form_method: str | None = None
    form_action: str | None = None
    form_enc_type: str | None = None
    form_data: FormData | None = None
    json: Any = None
    text: str | None = None


IDLE_FETCHER = FetcherState()


def loading_fetcher(submission: Submission | None = None, data: Any = None) -> FetcherState:
    return FetcherState(Status.LOADING, data, **_submission_fields(submission))


def submitting_fetcher(submission: Submission, data: Any = None) -> FetcherState:
    return FetcherState(Status.SUBMITTING, data, **_submission_fields(submission))


def done_fetcher(data: Any) -> FetcherState:
    return FetcherState(Status.IDLE, data)


def _submission_fields(submission: Submission | None) -> dict[str, Any]:
    if submission is None:
        return {}
    return {
        "form_method": submission.form_method,
        "form_action": submission.form_action,
        "form_enc_type": submission.form_enc_type,
        "form_data": submission.form_data,
        "json": submission.json,
        "text": submission.text,
    }


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if mapping is None or isinstance(mapping, MappingProxyType):
        return mapping
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class NavigationState:
    """Snapshot of everything the rendering layer needs.

    ``errors`` maps error-boundary route ids to the error they caught,
    or is ``None`` when nothing failed. ``not_found`` is set (and
    ``matches`` empty) when the location matched no route.
    """

    location: Location
    matches: tuple[RouteMatch, ...] = ()
    loader_data: Mapping[str, Any] = field(default_factory=dict)
    action_data: Mapping[str, Any] | None = None
    errors: Mapping[str, BaseException] | None = None
    navigation: Navigation = IDLE_NAVIGATION
    fetchers: Mapping[str, FetcherState] = field(default_factory=dict)
    revalidation: Revalidation = Revalidation.IDLE
    initialized: bool = False
    history_action: Action = Action.POP
    not_found: MatchError | None = None
    prevent_scroll_reset: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "matches", tuple(self.matches))
        object.__setattr__(self, "loader_data", _freeze(self.loader_data))
        object.__setattr__(self, "action_data", _freeze(self.action_data))
        object.__setattr__(self, "errors", _freeze(self.errors))
        object.__setattr__(self, "fetchers", _freeze(self.fetchers))

    def replace(self, **changes: Any) -> NavigationState:
        """Return a new snapshot with *changes* applied."""
        return dataclasses.replace(self, **changes)

    @property
    def idle(self) -> bool:
        """True when no navigation, revalidation or fetcher is in flight."""
        return (
            self.navigation.state is Status.IDLE
            and self.revalidation is Revalidation.IDLE
            and all(f.state is Status.IDLE for f in self.fetchers.values())
        )


@dataclass(frozen=True, slots=True)
class HydrationData:
    """Data handed over from a server render to skip initial loads.

    Accepts the payload shape ``{loaderData, actionData, errors,
    matches}`` (snake_case keys work too). ``matches`` is accepted and
    ignored: the router re-matches the current location itself.
    """

    loader_data: Mapping[str, Any] = field(default_factory=dict)
    action_data: Mapping[str, Any] | None = None
    errors: Mapping[str, BaseException] | None = None

    @classmethod
    def coerce(cls, payload: HydrationData | Mapping[str, Any] | None) -> HydrationData | None:
        if payload is None or isinstance(payload, HydrationData):
            return payload

        def pick(snake: str, camel: str) -> Any:
            return payload[snake] if snake in payload else payload.get(camel)

        errors = pick("errors", "errors")
        return cls(
            loader_data=dict(pick("loader_data", "loaderData") or {}),
            action_data=pick("action_data", "actionData"),
            errors=deserialize_errors(errors) if errors else None,
        )


def deserialize_errors(errors: Mapping[str, Any]) -> dict[str, BaseException]:
    """Rebuild errors serialized by a server render.

    ``{"__type": "RouteErrorResponse", ...}`` becomes an ``ErrorResponse``
    and ``{"__type": "Error", "message": ...}`` a ``WaypointError``.
    Exceptions pass through; any other value is wrapped in
    ``WaypointError``.
    """
    rebuilt: dict[str, BaseException] = {}
    for route_id, value in errors.items():
        if isinstance(value, BaseException):
            rebuilt[route_id] = value
        elif isinstance(value, Mapping) and value.get("__type") == "RouteErrorResponse":
            rebuilt[route_id] = ErrorResponse(
                status=value.get("status", 500),
                status_text=value.get("statusText", value.get("status_text", "")),
                data=value.get("data"),
                internal=value.get("internal", False),
            )
        elif isinstance(value, Mapping) and value.get("__type") == "Error":
            rebuilt[route_id] = WaypointError(value.get("message", ""))
        else:
            rebuilt[route_id] = WaypointError(str(value))
    return rebuilt
