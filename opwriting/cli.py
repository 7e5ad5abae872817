"""Command-line entry point for the opwriting tools."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from opwriting.add import add_post
from opwriting.common import OpwriteError
from opwriting.find import find_posts
from opwriting.publish import publish_pr

PROGRAM_NAME = "opwriting"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its find, add and publish commands."""
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description=(
            "A CLI tool for managing writing repositories with post "
            "directories across Git branches"
        ),
    )
    commands = parser.add_subparsers(dest="command", metavar="command")

    find = commands.add_parser(
        "find",
        help="Find and select a post directory from any branch",
        description=(
            "Find post directories across all Git branches, sorted by commit "
            "distance from main, and allow interactive selection with fzf."
        ),
    )
    find.add_argument("search_terms", nargs="*")

    add = commands.add_parser(
        "add",
        help="Create a new post directory and branch",
        description=(
            "Create a new post by copying from TEMPLATE directory, creating a "
            "new Git branch, and committing the initial files. Name words will "
            "be joined with hyphens."
        ),
    )
    add.add_argument("name_words", nargs="*")

    commands.add_parser(
        "publish",
        help="Create or manage a PR for the current branch",
        description=(
            "Create a pull request for the current branch and monitor its status. "
            "Errors if on main branch or a branch already merged into main. "
            "Waits for checks to pass and can be interrupted at any time."
        ),
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command named in argv and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "find":
            find_posts(args.search_terms)
        elif args.command == "add":
            if not args.name_words:
                raise OpwriteError(
                    "requires at least 1 arg(s), only received 0"
                )
            add_post(args.name_words)
        elif args.command == "publish":
            publish_pr()
        else:
            parser.print_help()
    except OpwriteError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0