"""Folio CLI — folio build / folio dev.

Entry point for the ``folio`` command-line interface.

Exit status:
    0  build succeeded
    1  at least one artifact failed, or file watching broke
    2  configuration error (bad config file, missing source root)
"""

from __future__ import annotations

import argparse
import sys

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the folio CLI."""
    parser = argparse.ArgumentParser(
        prog="folio",
        description="Static documentation builder with incremental rebuilds and live reload.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # folio build
    build_parser = subparsers.add_parser(
        "build",
        help="Build the site into the output directory",
    )
    build_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    build_parser.add_argument("--output", default=None, help="Output directory")
    build_parser.add_argument(
        "--base-url", default=None, help="Base URL for sitemap generation",
    )

    # folio dev
    dev_parser = subparsers.add_parser(
        "dev",
        help="Serve the site with incremental rebuilds and live reload",
    )
    dev_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    dev_parser.add_argument("--host", default=None, help="Bind address")
    dev_parser.add_argument("--port", type=int, default=None, help="Bind port")
    dev_parser.add_argument("--output", default=None, help="Output directory")

    return parser


def _get_version() -> str:
    """Get the package version."""
    from folio import __version__

    return __version__


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_OK)

    from folio._errors import ConfigError, WatchError
    from folio.app import build, dev

    try:
        if args.command == "build":
            report = build(root=args.root, output=args.output, base_url=args.base_url)
            sys.exit(EXIT_OK if report.ok else EXIT_FAILED)
        elif args.command == "dev":
            dev(root=args.root, host=args.host, port=args.port, output=args.output)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)
    except WatchError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
