"""Form submissions for navigations and fetchers.

``FormData`` is a read-only multi-valued mapping so loaders and actions
read submitted fields the same way whether they came from a form, a
query string, or a mapping built in code.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode

from waypoint.errors import ErrorResponse
from waypoint.routing.paths import PartialPath, Path, create_path, has_naked_index_query, parse_path

FORM_URLENCODED = "application/x-www-form-urlencoded"
APPLICATION_JSON = "application/json"
TEXT_PLAIN = "text/plain"

MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
VALID_METHODS = MUTATION_METHODS | {"GET"}


class FormData(Mapping[str, str]):
    """Immutable multi-valued form fields.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.

    Usage::

        form = FormData.from_pairs([("tag", "a"), ("tag", "b"), ("title", "Hi")])
        form["tag"]            # "a"
        form.get_list("tag")   # ["a", "b"]
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, list[str]] | None = None) -> None:
        object.__setattr__(self, "_data", {k: list(v) for k, v in (data or {}).items()})

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, Any]]) -> FormData:
        data: dict[str, list[str]] = {}
        for key, value in pairs:
            data.setdefault(key, []).append(str(value))
        return cls(data)

    @classmethod
    def from_query(cls, search: str) -> FormData:
        """Parse a ``?a=1&b=2`` query string."""
        return cls.from_pairs(parse_qsl(search.lstrip("?"), keep_blank_values=True))

    @classmethod
    def coerce(cls, value: FormData | Mapping[str, Any] | Iterable[tuple[str, Any]]) -> FormData:
        """Accept a ``FormData``, a mapping (list values allowed), or pairs."""
        if isinstance(value, FormData):
            return value
        if isinstance(value, Mapping):
            pairs: list[tuple[str, Any]] = []
            for key, item in value.items():
                if isinstance(item, (list, tuple)):
                    pairs.extend((key, v) for v in item)
                else:
                    pairs.append((key, item))
            return cls.from_pairs(pairs)
        return cls.from_pairs(value)

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FormData):
            return self._data == other._data
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self.pairs()))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"FormData({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key* (checkboxes, multi-selects)."""
        return list(self._data.get(key, []))

    def pairs(self) -> list[tuple[str, str]]:
        return [(key, value) for key, values in self._data.items() for value in values]

    def to_query(self) -> str:
        """Encode as a query string without the leading ``?``."""
        return urlencode(self.pairs())


@dataclass(frozen=True, slots=True)
class Submission:
    """A form submission attached to a navigation or fetcher.

    Exactly one of ``form_data``, ``json`` and ``text`` carries the body.
    ``form_method`` is always upper case.
    """

    form_method: str
    form_action: str
    form_enc_type: str = FORM_URLENCODED
    form_data: FormData | None = None
    json: Any = None
    text: str | None = None

    @property
    def is_mutation(self) -> bool:
        return is_mutation_method(self.form_method)


def is_mutation_method(method: str | None) -> bool:
    return method is not None and method.upper() in MUTATION_METHODS


def _bad_request(method: str, pathname: str, message: str) -> ErrorResponse:
    return ErrorResponse(400, "Bad Request", f"Invalid request method {method!r} for {pathname!r}: {message}", internal=True)


def normalize_submission(
    path: str,
    *,
    form_method: str | None = None,
    form_data: FormData | Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
    form_enc_type: str | None = None,
    json: Any = None,
    text: str | None = None,
    is_fetcher: bool = False,
) -> tuple[str, Submission | None, ErrorResponse | None]:
    """Turn navigate/fetch keyword options into a path and a submission.

    GET submissions are folded into the path's search string. Returns
    ``(path, submission, error)``; *error* is an ``ErrorResponse`` to be
    committed instead of running anything (unsupported method, or a body
    that GET cannot carry).
    """
    has_body = form_data is not None or json is not None or text is not None
    if form_method is None and not has_body:
        return path, None, None

    method = (form_method or "GET").upper()
    parsed = parse_path(path)
    if method not in VALID_METHODS:
        return path, None, ErrorResponse(
            405, "Method Not Allowed", f"Invalid request method {method!r}", internal=True
        )

    submission: Submission | None = None
    if json is not None:
        submission = Submission(method, create_path(_strip_hash(parsed)), form_enc_type or APPLICATION_JSON, json=json)
    elif text is not None:
        submission = Submission(method, create_path(_strip_hash(parsed)), form_enc_type or TEXT_PLAIN, text=text)
    else:
        data = FormData.coerce(form_data) if form_data is not None else FormData()
        submission = Submission(method, create_path(_strip_hash(parsed)), form_enc_type or FORM_URLENCODED, form_data=data)

    if submission.is_mutation:
        return path, submission, None

    # GET submissions move their fields into the search string
    if submission.form_data is None:
        return path, None, _bad_request(method, parsed.pathname or "/", "GET submissions need form data")
    query = submission.form_data.to_query()
    if is_fetcher and parsed.search and has_naked_index_query(parsed.search):
        query = f"{query}&index" if query else "index"
    new_path = create_path(PartialPath(parsed.pathname, f"?{query}" if query else "", parsed.hash))
    return new_path, submission, None


def _strip_hash(path: PartialPath) -> Path:
    return Path(path.pathname or "/", path.search or "", "")
