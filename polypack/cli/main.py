# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for polypack.

Every operation is a subcommand of `polypack`. The global options
(--config, --log-level) are inherited by every subcommand through argparse's
parent parser mechanism.

Usage:
    polypack build --staging-dir pkg/ --metadata foo.yaml --artifacts-dir out/
    polypack inspect --package out/foo-1.0-r1.x86_64.apk
"""

import argparse
import sys

from polypack.cli.commands import handle_build, handle_inspect
from polypack.cli.exit_codes import USER_ERROR


def _build_global_parser() -> argparse.ArgumentParser:
    """Parent parser with the options every subcommand inherits."""
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level (overrides the config file).",
    )
    return parent


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    build_parser = subparsers.add_parser(
        "build", parents=[parent], help="Build a package from a staged tree."
    )
    build_parser.add_argument(
        "--staging-dir", required=True, dest="staging_dir", help="Root of the staged tree."
    )
    build_parser.add_argument(
        "--metadata", required=True, help="YAML file holding the package metadata record."
    )
    build_parser.add_argument(
        "--artifacts-dir", required=True, dest="artifacts_dir", help="Output directory."
    )
    build_parser.add_argument(
        "--format", default="apk", dest="package_format", help="Package format tag."
    )
    build_parser.set_defaults(func=handle_build)

    inspect_parser = subparsers.add_parser(
        "inspect", parents=[parent], help="List the members and entries of a built package."
    )
    inspect_parser.add_argument("--package", required=True, help="Path to an .apk file.")
    inspect_parser.set_defaults(func=handle_inspect)


def main() -> None:
    """
    Main CLI entrypoint, referenced by pyproject.toml's [project.scripts].

    With no subcommand, help is shown and the exit code is USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="polypack",
        description="polypack: multi-distribution package builder.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args()

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
