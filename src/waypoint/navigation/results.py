"""What loaders and actions hand back to the router.

A handler may return plain data, return or raise a ``Redirect``, raise an
``ErrorResponse`` for a status-carrying failure, or return ``data(value,
status=...)`` to attach a status to successful data.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from waypoint.errors import ErrorResponse, WaypointError

# Statuses that re-submit the original method and body to the new location
RESUBMIT_STATUSES = frozenset({307, 308})


@dataclass(frozen=True, slots=True)
class Redirect(WaypointError):
    """Send the navigation somewhere else.

    Returned or raised from a loader or action::

        async def loader(args):
            if not await is_signed_in(args.request):
                raise redirect("/login")

    ``replace`` replaces the current history entry instead of pushing.
    ``reload_document`` hands the URL to the host for a full document
    navigation instead of following it in-process.
    """

    location: str
    status: int = 302
    replace: bool = False
    reload_document: bool = False

    def __str__(self) -> str:
        return f"{self.status} -> {self.location}"


def redirect(url: str, status: int = 302) -> Redirect:
    """Redirect, pushing a new history entry."""
    return Redirect(url, status)


def replace(url: str, status: int = 302) -> Redirect:
    """Redirect, replacing the current history entry."""
    return Redirect(url, status, replace=True)


def redirect_document(url: str, status: int = 302) -> Redirect:
    """Redirect with a full document navigation."""
    return Redirect(url, status, reload_document=True)


@dataclass(frozen=True, slots=True)
class DataWithStatus:
    """Successful handler data carrying a status code."""

    data: Any
    status: int = 200


def data(value: Any, *, status: int = 200) -> DataWithStatus:
    """Attach a status to handler data (``should_revalidate`` sees it as ``action_status``)."""
    return DataWithStatus(value, status)


class ResultKind(Enum):
    DATA = "data"
    ERROR = "error"
    REDIRECT = "redirect"


@dataclass(frozen=True, slots=True)
class HandlerResult:
    """Outcome of one loader or action call.

    ``value`` is the data, the caught exception, or the ``Redirect``
    depending on ``kind``.
    """

    kind: ResultKind
    value: Any = None
    status: int | None = None

    @classmethod
    def from_value(cls, value: Any) -> HandlerResult:
        if isinstance(value, Redirect):
            return cls(ResultKind.REDIRECT, value, value.status)
        if isinstance(value, DataWithStatus):
            return cls(ResultKind.DATA, value.data, value.status)
        return cls(ResultKind.DATA, value)

    @classmethod
    def error(cls, error: BaseException) -> HandlerResult:
        status = error.status if isinstance(error, ErrorResponse) else 500
        return cls(ResultKind.ERROR, error, status)

    @property
    def is_error(self) -> bool:
        return self.kind is ResultKind.ERROR

    @property
    def is_redirect(self) -> bool:
        return self.kind is ResultKind.REDIRECT
