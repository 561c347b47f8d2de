"""Subscriber that keeps every published snapshot."""

from __future__ import annotations

from collections.abc import Callable

import anyio

from waypoint.navigation.state import NavigationState, Status


class StateRecorder:
    """Collect snapshots published by a router.

    Usage::

        recorder = StateRecorder().attach(router)
        await router.navigate("/courses")
        assert recorder.navigation_states == ["loading", "idle"]
    """

    __slots__ = ("_published", "_unsubscribe", "states")

    def __init__(self) -> None:
        self.states: list[NavigationState] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._published: anyio.Event | None = None

    def __call__(self, state: NavigationState) -> None:
        self.states.append(state)
        if self._published is not None:
            self._published.set()
            self._published = None

    def attach(self, router: object) -> StateRecorder:
        self._unsubscribe = router.subscribe(self)  # type: ignore[attr-defined]
        return self

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def clear(self) -> None:
        self.states.clear()

    async def wait_for(self, predicate: Callable[[NavigationState], bool]) -> NavigationState:
        """Block until a recorded snapshot satisfies *predicate* and return it.

        Snapshots recorded before the call count too::

            fast.resolve("data")
            await recorder.wait_for(lambda s: s.navigation.state is Status.IDLE)
        """
        seen = 0
        while True:
            seen = min(seen, len(self.states))
            for state in self.states[seen:]:
                if predicate(state):
                    return state
            seen = len(self.states)
            if self._published is None:
                self._published = anyio.Event()
            await self._published.wait()

    @property
    def last(self) -> NavigationState:
        return self.states[-1]

    @property
    def navigation_states(self) -> list[Status]:
        return [s.navigation.state for s in self.states]

    @property
    def committed_paths(self) -> list[str]:
        """Location of every snapshot that came with an idle navigation."""
        return [s.location.path for s in self.states if s.navigation.state is Status.IDLE]
