"""CLI entry point for revguard (Re:VIEW manuscript checker).

Usage:
    python -m revguard check                  # Tags, ID plan preview, lint
    python -m revguard check --apply-ids      # Same, applying ID fixes

Or via the installed command:
    revguard check -C path/to/book            # Check a book in another directory
    revguard tags --json                      # Unknown tags as JSON
    revguard ids plan --output plan.json      # Save an ID fix plan
    revguard ids apply --plan plan.json       # Apply a saved plan
    revguard lint                             # review-compile warnings
    revguard build                            # Preprocess + review-pdfmaker
    revguard mapfile code/sample.py           # Check and expand a #@mapfile
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

# Set default log level to WARNING (reduces verbose output)
# Users can override with LOG_LEVEL=INFO or LOG_LEVEL=DEBUG
if "LOG_LEVEL" not in os.environ:
    os.environ["LOG_LEVEL"] = "WARNING"

from dotenv import load_dotenv

from revguard._version import get_full_version_string
from revguard.book.commands import (
    EXIT_ERROR,
    cmd_build,
    cmd_check,
    cmd_ids_apply,
    cmd_ids_plan,
    cmd_init,
    cmd_lint,
    cmd_mapfile,
    cmd_security,
    cmd_tags,
    cmd_version,
)

# Load environment variables
load_dotenv()


def configure_logging() -> None:
    """Configure root logging from the LOG_LEVEL environment variable."""
    level = os.environ.get("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="revguard",
        description="revguard - tag and ID checker for Re:VIEW manuscripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  revguard check                         Check the book in the current directory
  revguard check --apply-ids             Check and fix missing/duplicate IDs
  revguard ids plan -o plan.json         Save planned ID fixes for review
  revguard ids apply --plan plan.json    Apply the reviewed plan

Exit codes:
  0  no problems
  1  unknown tags (when blocking) or lint warnings
  2  usage or runtime error

Configuration:
  Create .revguard/config.toml in your book (or run 'revguard init'):
    [check]
    profile = "dual"
    target = "latex"
    block_on_unknown_tags = true

    [allowlist]
    blocks = ["list", "emlist", "image", "table"]
    inline = ["code", "b", "href"]
""",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information and exit",
    )

    # Options shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--cwd",
        "-C",
        type=Path,
        default=None,
        help="Re:VIEW project root (defaults to the current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Check subcommand
    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Check tags and IDs, then lint (for CI)",
    )
    check_parser.add_argument(
        "--apply-ids",
        action="store_true",
        help="Apply planned ID fixes instead of previewing them",
    )

    # Tags subcommand
    tags_parser = subparsers.add_parser(
        "tags",
        parents=[common],
        help="Report tags that are not in the allowlist",
    )
    tags_parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )

    # IDs subcommand group
    ids_parser = subparsers.add_parser("ids", help="Plan or apply ID fixes")
    ids_subparsers = ids_parser.add_subparsers(dest="ids_command", required=True)

    ids_plan_parser = ids_subparsers.add_parser(
        "plan",
        parents=[common],
        help="Plan ID fixes without changing files",
    )
    ids_plan_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Write the plan to a JSON file",
    )

    ids_apply_parser = ids_subparsers.add_parser(
        "apply",
        parents=[common],
        help="Apply ID fixes (writes .bak backups)",
    )
    ids_apply_parser.add_argument(
        "--plan",
        "-p",
        dest="plan_file",
        type=Path,
        default=None,
        help="Apply a saved plan instead of planning afresh",
    )

    # Lint subcommand
    subparsers.add_parser(
        "lint",
        parents=[common],
        help="Compile manuscripts and report warnings",
    )

    # Build subcommand
    pdf_parser = subparsers.add_parser(
        "build",
        parents=[common],
        help="Build the PDF (preprocess + review-pdfmaker)",
    )
    pdf_parser.add_argument(
        "--config",
        dest="config_file",
        default=None,
        help="Re:VIEW config file (default: from .revguard/config.toml, else config.yml)",
    )
    pdf_parser.add_argument(
        "--skip-preprocess",
        action="store_true",
        help="Skip the macro preprocessor",
    )

    # Mapfile subcommand
    mapfile_parser = subparsers.add_parser(
        "mapfile",
        parents=[common],
        help="Check a #@mapfile target and expand it",
    )
    mapfile_parser.add_argument("file", help="File to include, relative to the project root")

    # Security subcommand
    security_parser = subparsers.add_parser(
        "security",
        parents=[common],
        help="Show mapfile security settings",
    )
    security_parser.add_argument(
        "--reload",
        action="store_true",
        help="Ignore cached settings",
    )

    # Init subcommand
    init_parser = subparsers.add_parser(
        "init",
        parents=[common],
        help="Create .revguard/config.toml",
    )
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Overwrite an existing config with defaults",
    )

    # Version subcommand
    subparsers.add_parser(
        "version",
        parents=[common],
        help="Show revguard and Re:VIEW versions",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(get_full_version_string())
        return 0

    if not args.command:
        parser.print_usage(sys.stderr)
        print("revguard: error: a command is required", file=sys.stderr)
        return EXIT_ERROR

    configure_logging()

    cwd = args.cwd.resolve() if args.cwd else Path.cwd()
    if not cwd.is_dir():
        print(f"revguard: error: not a directory: {cwd}", file=sys.stderr)
        return EXIT_ERROR

    if args.command == "check":
        return cmd_check(cwd, apply_ids=args.apply_ids)

    if args.command == "tags":
        return cmd_tags(cwd, json_output=args.json_output)

    if args.command == "ids":
        if args.ids_command == "plan":
            output = args.output.resolve() if args.output else None
            return cmd_ids_plan(cwd, output=output)
        plan_file = args.plan_file.resolve() if args.plan_file else None
        return cmd_ids_apply(cwd, plan_file=plan_file)

    if args.command == "lint":
        return cmd_lint(cwd)

    if args.command == "build":
        return cmd_build(cwd, config_file=args.config_file, skip_preprocess=args.skip_preprocess)

    if args.command == "mapfile":
        return cmd_mapfile(cwd, args.file)

    if args.command == "security":
        return cmd_security(cwd, reload=args.reload)

    if args.command == "init":
        return cmd_init(cwd, force=args.force)

    return cmd_version(cwd)


if __name__ == "__main__":
    sys.exit(main())
