"""Development warnings with de-duplication.

``Diagnostics`` owns the "already warned" bookkeeping that would
otherwise live in module-level globals. Each router gets its own
instance (or shares one passed in), and tests can ``reset()`` it.
"""

import logging

logger = logging.getLogger("waypoint.diagnostics")


class Diagnostics:
    """Emit development warnings through the ``waypoint.diagnostics`` logger.

    Usage::

        diagnostics = Diagnostics()
        diagnostics.warning(path.startswith("/"), "relative pathnames are not supported")
        diagnostics.warn_once("route-fallback", has_fallback, "No hydrate fallback provided")
    """

    __slots__ = ("_warned", "enabled")

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self._warned: set[str] = set()

    def warning(self, condition: bool, message: str) -> None:
        """Log *message* when *condition* is false."""
        if condition or not self.enabled:
            return
        logger.warning(message)

    def warn_once(self, key: str, condition: bool, message: str) -> None:
        """Log *message* once per *key* when *condition* is false."""
        if condition or key in self._warned:
            return
        self._warned.add(key)
        self.warning(False, message)

    def has_warned(self, key: str) -> bool:
        return key in self._warned

    def reset(self) -> None:
        """Forget every key recorded by ``warn_once``."""
        self._warned.clear()
