"""Waypoint CLI — inspect route tables.

Entry point registered as ``waypoint`` in ``pyproject.toml``::

    [project.scripts]
    waypoint = "waypoint.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``waypoint`` command."""
    parser = argparse.ArgumentParser(
        prog="waypoint",
        description="Waypoint — route matching and navigation for Python apps.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    subparsers = parser.add_subparsers(dest="command")

    # -- waypoint routes --------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List ranked route branches")
    routes_parser.add_argument("routes", help="Import string (e.g. myapp.routes:routes)")

    # -- waypoint match ---------------------------------------------------
    match_parser = subparsers.add_parser("match", help="Show the match chain for a path")
    match_parser.add_argument("routes", help="Import string (e.g. myapp.routes:routes)")
    match_parser.add_argument("path", help="Location to match (e.g. /courses/42)")
    match_parser.add_argument("--basename", default="/", help="URL prefix to strip first")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if args.command == "routes":
        from waypoint.cli._routes import run_routes

        run_routes(args)
    elif args.command == "match":
        from waypoint.cli._match import run_match

        run_match(args)
