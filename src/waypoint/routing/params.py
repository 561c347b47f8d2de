"""Path parameter decoding and path generation.

Dynamic segments are ``:name`` (optionally ``:name?``); a trailing ``*``
captures the rest of the pathname under the ``"*"`` key.
"""

import logging
import re
from collections.abc import Mapping
from urllib.parse import unquote

logger = logging.getLogger("waypoint.routing")

PARAM_RE = re.compile(r"^:[\w-]+$", re.ASCII)
_KEY_RE = re.compile(r"^:([\w-]+)(\??)$", re.ASCII)

SPLAT = "*"


def is_splat(segment: str) -> bool:
    return segment == SPLAT


def decode_path(pathname: str) -> str:
    """Percent-decode each segment of *pathname*.

    Encoded slashes stay encoded (as ``%2F``) so decoding never changes
    the segment structure.
    """
    try:
        return "/".join(
            unquote(segment, errors="strict").replace("/", "%2F")
            for segment in pathname.split("/")
        )
    except UnicodeDecodeError as exc:
        logger.warning(
            "The URL path %r could not be decoded because it is a malformed URL "
            "segment. This is probably due to a bad percent encoding (%s).",
            pathname,
            exc,
        )
        return pathname


def generate_path(original_path: str, params: Mapping[str, object] | None = None) -> str:
    """Fill a path pattern with *params*.

    ::

        generate_path("/courses/:id", {"id": "42"})   -> "/courses/42"
        generate_path("/files/*", {"*": "a/b.txt"})   -> "/files/a/b.txt"
        generate_path("/:lang?/about")                -> "/about"

    Raises ``ValueError`` when a required param is missing.
    """
    params = params or {}
    path = original_path
    if path.endswith("*") and path != "*" and not path.endswith("/*"):
        logger.warning(
            'Route path "%s" will be treated as if it were "%s" because the `*` character '
            'must always follow a `/` in the pattern.',
            path,
            path[:-1] + "/*",
        )
        path = path[:-1] + "/*"

    prefix = "/" if path.startswith("/") else ""
    raw_segments = re.split(r"/+", path)
    segments: list[str] = []
    for i, segment in enumerate(raw_segments):
        is_last = i == len(raw_segments) - 1
        if is_last and segment == SPLAT:
            segments.append(_stringify(params.get(SPLAT)))
            continue
        key_match = _KEY_RE.match(segment)
        if key_match:
            key, optional = key_match.group(1), key_match.group(2)
            value = params.get(key)
            if optional != "?" and value is None:
                msg = f'Missing ":{key}" param'
                raise ValueError(msg)
            segments.append(_stringify(value))
            continue
        segments.append(segment.rstrip("?"))
    return prefix + "/".join(s for s in segments if s)


def _stringify(value: object) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)
