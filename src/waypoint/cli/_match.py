"""``waypoint match`` — show the match chain for one location."""

import argparse

from waypoint.cli._resolve import resolve_or_exit
from waypoint.routing.matcher import match_routes


def run_match(args: argparse.Namespace) -> None:
    """Print ROUTE, PATHNAME and PARAMS per level, outermost first.

    Exits with status 1 when nothing matches.
    """
    routes = resolve_or_exit(args.routes)
    matches = match_routes(routes, args.path, args.basename)
    if matches is None:
        print(f"No routes matched {args.path!r}.")
        raise SystemExit(1)

    rows = [
        (m.route.id, m.pathname, ", ".join(f"{k}={v}" for k, v in m.params.items()))
        for m in matches
    ]
    id_width = max(5, *(len(r[0]) for r in rows))
    path_width = max(8, *(len(r[1]) for r in rows))
    fmt = f"{{:<{id_width}}}  {{:<{path_width}}}  {{}}"
    print(fmt.format("ROUTE", "PATHNAME", "PARAMS").rstrip())
    for row in rows:
        print(fmt.format(*row).rstrip())
