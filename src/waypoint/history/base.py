"""Common history shape shared by every backend.

Listeners are called synchronously, in registration order, exactly once
per mutation (push, replace, and each effective ``go``).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from waypoint.history.location import Action, Location, Update
from waypoint.routing.paths import Path, To

logger = logging.getLogger("waypoint.history")

Listener = Callable[[Update], None]


class History:
    """Base class for history backends.

    Subclasses provide ``location``, ``push``, ``replace``, ``go``,
    ``create_href``, ``create_url`` and ``encode_location``.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._action = Action.POP

    @property
    def action(self) -> Action:
        """The action that produced the current entry."""
        return self._action

    @property
    def location(self) -> Location:
        raise NotImplementedError

    def listen(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that removes it."""
        self._listeners.append(listener)
        if len(self._listeners) == 1:
            self._on_first_listener()

        def unlisten() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
                if not self._listeners:
                    self._on_last_listener()

        return unlisten

    def _on_first_listener(self) -> None:
        """Hook for backends that attach to a platform event source."""

    def _on_last_listener(self) -> None:
        """Hook for backends that detach from a platform event source."""

    def _notify(self, update: Update) -> None:
        logger.debug("history %s %s (delta=%s)", update.action.value, update.location.path, update.delta)
        for listener in list(self._listeners):
            listener(update)

    def push(self, to: To | Location, state: Any = None) -> None:
        raise NotImplementedError

    def replace(self, to: To | Location, state: Any = None) -> None:
        raise NotImplementedError

    def go(self, delta: int) -> None:
        raise NotImplementedError

    def back(self) -> None:
        self.go(-1)

    def forward(self) -> None:
        self.go(1)

    def create_href(self, to: To) -> str:
        raise NotImplementedError

    def create_url(self, to: To) -> str:
        """Absolute URL for *to*."""
        raise NotImplementedError

    def encode_location(self, to: To) -> Path:
        """Percent-encode *to* the way the platform would store it."""
        raise NotImplementedError

    def assign(self, url: str) -> None:
        """Leave the application with a full document navigation."""
        raise NotImplementedError
