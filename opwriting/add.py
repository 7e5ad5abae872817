"""Create a new post directory on its own Git branch."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Iterable, Sequence

from opwriting.common import MAIN_BRANCH_NAME, OpwriteError, writing_repo_path

TEMPLATE_DIRNAME = "TEMPLATE"
POST_FILENAME = "post.md"


def _succeeds(args: Sequence[str], cwd: str | None = None) -> bool:
    """Run a command quietly and report whether it exited with status 0."""
    try:
        result = subprocess.run(
            list(args),
            cwd=cwd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0


def build_post_name(name_words: Iterable[str]) -> str:
    """Join the name words with hyphens, rejecting empty names and spaces."""
    words = list(name_words)
    if not words:
        raise OpwriteError("post name must have at least one word")
    post_name = "-".join(words)
    if not post_name:
        raise OpwriteError("post name cannot be empty")
    if " " in post_name:
        raise OpwriteError(f"new post name cannot have spaces but was '{post_name}'")
    return post_name


def add_post(name_words: Iterable[str]) -> str:
    """Create a post from the template on a new branch and commit it.

    Prints and returns the path of the new post directory.
    """
    repo_path = writing_repo_path()
    post_name = build_post_name(name_words)
    post_dir_path = os.path.join(repo_path, post_name)

    if os.path.exists(post_dir_path):
        raise OpwriteError(f"can't create post; directory already exists: {post_dir_path}")

    if _succeeds(["git", "-C", repo_path, "rev-parse", "--verify", post_name]):
        raise OpwriteError(f"can't create post; git branch already exists: {post_name}")

    if not os.path.isdir(repo_path):
        raise OpwriteError(f"couldn't cd to writing repo: {repo_path}")

    if not _succeeds(["git", "checkout", MAIN_BRANCH_NAME], cwd=repo_path):
        raise OpwriteError("couldn't check out main branch")

    if not _succeeds(["git", "checkout", "-b", post_name], cwd=repo_path):
        raise OpwriteError(f"failed to check out new branch: {post_name}")

    try:
        shutil.copytree(
            os.path.join(repo_path, TEMPLATE_DIRNAME), post_dir_path, symlinks=True
        )
    except OSError as exc:
        raise OpwriteError("failed to create new post directory from template") from exc

    if not _succeeds(["git", "add", "."], cwd=post_dir_path):
        raise OpwriteError("failed to add new files")

    if not _succeeds(
        ["git", "commit", "-m", f"Initial commit for {post_name}"], cwd=post_dir_path
    ):
        raise OpwriteError("failed to commit new files")

    print(post_dir_path)
    return post_dir_path