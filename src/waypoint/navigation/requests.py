"""Arguments passed to loaders, actions, and route hooks."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import anyio

from waypoint._internal.types import Params
from waypoint.navigation.submission import FormData, Submission
from waypoint.routing.route import RouteMatch


class AbortSignal:
    """Set when the attempt that issued a request is superseded.

    Loaders can poll ``aborted`` or ``await signal.wait()`` to stop
    early. Nothing is interrupted forcibly: results from an aborted
    attempt are simply discarded.
    """

    __slots__ = ("_aborted", "_event", "reason")

    def __init__(self) -> None:
        self._aborted = False
        self._event: anyio.Event | None = None
        self.reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self, reason: str | None = None) -> None:
        if self._aborted:
            return
        self._aborted = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        if self._aborted:
            return
        if self._event is None:
            self._event = anyio.Event()
        await self._event.wait()

    def __repr__(self) -> str:
        return f"AbortSignal(aborted={self._aborted})"


@dataclass(frozen=True, slots=True)
class LoaderRequest:
    """The request a loader or action runs for.

    ``url`` is absolute. Mutation requests carry the submission body in
    ``form_data``/``json``/``text``; GET requests carry their fields in
    the URL's query string.
    """

    url: str
    signal: AbortSignal
    method: str = "GET"
    form_data: FormData | None = None
    json: Any = None
    text: str | None = None

    @property
    def pathname(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def search_params(self) -> FormData:
        return FormData.from_query(urlsplit(self.url).query)

    @classmethod
    def create(cls, url: str, signal: AbortSignal, submission: Submission | None = None) -> LoaderRequest:
        if submission is None or not submission.is_mutation:
            return cls(url, signal)
        return cls(
            url,
            signal,
            method=submission.form_method,
            form_data=submission.form_data,
            json=submission.json,
            text=submission.text,
        )


@dataclass(frozen=True, slots=True)
class LoaderArgs:
    """Passed to ``route.loader(args)``."""

    request: LoaderRequest
    params: Params = field(default_factory=dict)
    context: Any = None


@dataclass(frozen=True, slots=True)
class ActionArgs:
    """Passed to ``route.action(args)``."""

    request: LoaderRequest
    params: Params = field(default_factory=dict)
    context: Any = None


@dataclass(frozen=True, slots=True)
class ShouldRevalidateArgs:
    """Passed to ``route.should_revalidate(args)``.

    Return a bool to override ``default_should_revalidate``; returning
    anything else keeps the default.
    """

    current_url: str
    current_params: Params
    next_url: str
    next_params: Params
    default_should_revalidate: bool
    form_method: str | None = None
    form_action: str | None = None
    form_enc_type: str | None = None
    form_data: FormData | None = None
    json: Any = None
    text: str | None = None
    action_result: Any = None
    action_status: int | None = None


@dataclass(frozen=True, slots=True)
class PatchArgs:
    """Passed to ``patch_routes_on_navigation(args)``.

    ``matches`` are the partial matches found so far (possibly empty).
    Call ``patch(route_id, children)`` to add child routes under
    ``route_id``, or at the root when it is ``None``.
    """

    path: str
    matches: Sequence[RouteMatch]
    patch: Callable[[str | None, Sequence[Any]], None]
    signal: AbortSignal
