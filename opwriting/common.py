"""Settings and errors shared by the opwriting commands."""

from __future__ import annotations

import os

ENV_FILENAME = ".overpowered-writing.env"
WRITING_DIR_ENV_VAR = "WRITING_REPO_DIRPATH"
MAIN_BRANCH_NAME = "main"


class OpwriteError(Exception):
    """Raised when a command cannot complete its work."""


def writing_repo_path() -> str:
    """Return the writing repository path from the environment.

    Raises OpwriteError when the variable is unset or empty.
    """
    path = os.environ.get(WRITING_DIR_ENV_VAR, "")
    if not path:
        raise OpwriteError(
            f"writing directory not configured: {WRITING_DIR_ENV_VAR} "
            "environment variable not set"
        )
    return path