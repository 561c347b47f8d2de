"""``waypoint routes`` — list ranked route branches.

Prints every branch of the route tree in match order with its score,
joined path, route id chain, and dynamic params.
"""

import argparse

from waypoint.cli._resolve import resolve_or_exit
from waypoint.routing.matcher import RouteTable, parse_pattern


def run_routes(args: argparse.Namespace) -> None:
    """List ranked branches for a route tree.

    Resolves ``args.routes`` and prints a table of SCORE, PATH, ROUTE
    (the id chain) and PARAMS, best match first.
    """
    routes = resolve_or_exit(args.routes)
    branches = RouteTable(routes).branches
    if not branches:
        print("No routes registered.")
        return

    rows: list[tuple[str, str, str, str]] = []
    for branch in branches:
        ids = " > ".join(meta.route.id for meta in branch.routes_meta)
        params = ", ".join(
            segment.param_name + ("?" if segment.is_optional else "")
            for segment in parse_pattern(branch.path)
            if segment.param_name
        )
        rows.append((str(branch.score), branch.path or "/", ids, params))

    headers = ("SCORE", "PATH", "ROUTE", "PARAMS")
    widths = [max(len(headers[i]), *(len(r[i]) for r in rows)) for i in range(3)]
    fmt = f"{{:>{widths[0]}}}  {{:<{widths[1]}}}  {{:<{widths[2]}}}  {{}}"
    print(fmt.format(*headers).rstrip())
    print("-" * min(sum(widths) + 6 + max(len(r[3]) for r in rows), 80))
    for row in rows:
        print(fmt.format(*row).rstrip())
