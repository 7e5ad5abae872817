"""Open, watch and merge the pull request for the current post branch."""

from __future__ import annotations

import json
import os
import posixpath
import signal
import subprocess
import threading
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from dotenv import dotenv_values

from opwriting.common import (
    ENV_FILENAME,
    MAIN_BRANCH_NAME,
    OpwriteError,
    writing_repo_path,
)

DEFAULT_SUBSTACK_URL = "<your Substack URL here>/post/new"
SUBSTACK_URL_ENV_VAR = "SUBSTACK_URL"
SUBSTACK_PUBLISH_SUFFIX = "/publish/post?type=newsletter"
TEMPLATE_DIRNAME = "TEMPLATE"
POLL_INTERVAL_SECONDS = 10.0

_FAILED_STATES = frozenset({"FAILURE", "ERROR"})


@dataclass(frozen=True)
class StatusCheck:
    """One CI status check reported for a pull request."""

    context: str = ""
    state: str = ""


@dataclass(frozen=True)
class PRBranch:
    """Status of the pull request for the current branch."""

    status_check_rollup: list[StatusCheck] = field(default_factory=list)
    reviews: list[str] = field(default_factory=list)
    state: str = ""

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | None) -> PRBranch:
        """Build from the decoded JSON object that gh reports."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise OpwriteError("PR status is not a JSON object")
        checks = [
            StatusCheck(
                context=str(item.get("context") or ""),
                state=str(item.get("state") or ""),
            )
            for item in data.get("statusCheckRollup") or []
        ]
        reviews = [str(item.get("state") or "") for item in data.get("reviews") or []]
        return cls(
            status_check_rollup=checks,
            reviews=reviews,
            state=str(data.get("state") or ""),
        )


def _run(args: Sequence[str], *, combined: bool = False) -> tuple[bool, str]:
    """Run a command; return whether it succeeded and its captured output.

    With ``combined`` the output holds stderr as well as stdout.
    """
    try:
        result = subprocess.run(
            list(args),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if combined else subprocess.DEVNULL,
            text=True,
            check=False,
        )
    except OSError as exc:
        return False, str(exc)
    return result.returncode == 0, result.stdout or ""


def get_current_branch() -> str:
    """Return the name of the checked-out branch."""
    ok, output = _run(["git", "rev-parse", "--abbrev-ref", "HEAD"])
    if not ok:
        raise OpwriteError("failed to get current branch")
    return output.strip()


def is_branch_merged(branch: str) -> bool:
    """Tell whether the branch is already merged into main."""
    ok, output = _run(["git", "branch", "--merged", MAIN_BRANCH_NAME])
    if not ok:
        raise OpwriteError("failed to check merged branches")
    for line in output.splitlines():
        name = line.strip()
        if name.startswith("*"):
            name = name[1:].strip()
        if name == branch:
            return True
    return False


def get_pr_for_branch(branch: str) -> str:
    """Return the URL of the branch's pull request, or "" when there is none."""
    ok, output = _run(["gh", "pr", "view", branch, "--json", "url"])
    if not ok:
        return ""
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise OpwriteError("failed to parse PR JSON") from exc
    if not isinstance(data, dict):
        raise OpwriteError("failed to parse PR JSON")
    url = data.get("url") or ""
    if not isinstance(url, str):
        raise OpwriteError("failed to parse PR JSON")
    return url


def create_pr(branch: str) -> str:
    """Open a pull request titled after the branch and return its URL."""
    ok, output = _run(["gh", "pr", "create", "--title", branch, "--body", ""])
    if not ok:
        raise OpwriteError("failed to create PR")
    return output.strip()


def get_pr_status() -> PRBranch:
    """Fetch the status of the current branch's pull request."""
    ok, output = _run(
        ["gh", "pr", "status", "--json", "statusCheckRollup,reviews,state"]
    )
    if not ok:
        raise OpwriteError("failed to get PR status")
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise OpwriteError("failed to parse PR status JSON") from exc
    if not isinstance(data, dict):
        raise OpwriteError("failed to parse PR status JSON")
    return PRBranch.from_json(data.get("currentBranch"))


def check_pr_status_once(branch: str) -> bool:
    """Report check states once; True when the PR is merged or all checks pass."""
    try:
        status = get_pr_status()
    except OpwriteError as exc:
        print(f"Error getting PR status: {exc}")
        return False

    if status.state == "MERGED":
        print("PR has been merged externally, proceeding with cleanup...")
        return True

    if not status.status_check_rollup:
        print("No status checks found, continuing to wait...")
        return False

    all_passed = True
    for check in status.status_check_rollup:
        if check.state == "SUCCESS":
            print(f"✅ {check.context}: {check.state}")
        elif check.state in _FAILED_STATES:
            print(f"❌ {check.context}: {check.state}")
            all_passed = False
        else:
            print(f"⏳ {check.context}: {check.state}")
            all_passed = False
    return all_passed


@contextmanager
def _terminate_as_interrupt() -> Iterator[None]:
    """Treat SIGTERM like Ctrl+C while the block runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _raise_interrupt(signum: int, frame: object) -> None:
        raise KeyboardInterrupt

    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def monitor_pr_status(branch: str, interval: float = POLL_INTERVAL_SECONDS) -> None:
    """Poll the PR until checks pass, then merge and clean up.

    Stops quietly when interrupted by the user.
    """
    print("Waiting for checks to pass (Ctrl+C to stop monitoring)...")
    try:
        with _terminate_as_interrupt():
            while not check_pr_status_once(branch):
                time.sleep(interval)
    except KeyboardInterrupt:
        print("\nMonitoring interrupted by user")
        return
    handle_successful_checks(branch)


def validate_writing_directory() -> str:
    """Ensure the working directory lies inside the writing repository.

    Returns the absolute path of the writing repository.
    """
    current_dir = os.getcwd()
    abs_writing_dir = os.path.abspath(writing_repo_path())
    abs_current_dir = os.path.abspath(current_dir)
    try:
        rel_path = os.path.relpath(abs_current_dir, abs_writing_dir)
    except ValueError as exc:
        raise OpwriteError("failed to calculate relative path") from exc
    if rel_path.startswith(".."):
        raise OpwriteError(
            "must run publish command from within the writing directory "
            f"({abs_writing_dir}) or one of its subdirectories"
        )
    return abs_writing_dir


def get_substack_url(env_path: str = ENV_FILENAME) -> str:
    """Return the Substack publishing URL configured in the env file."""
    if not os.path.exists(env_path):
        return DEFAULT_SUBSTACK_URL
    try:
        values = dotenv_values(env_path)
    except (OSError, UnicodeDecodeError):
        return DEFAULT_SUBSTACK_URL
    url = values.get(SUBSTACK_URL_ENV_VAR)
    if url:
        return url + SUBSTACK_PUBLISH_SUFFIX
    return DEFAULT_SUBSTACK_URL


def merge_pr(branch: str) -> None:
    """Merge the pull request and delete its remote branch."""
    ok, output = _run(
        ["gh", "pr", "merge", branch, "--merge", "--delete-branch"], combined=True
    )
    if not ok:
        raise OpwriteError(f"failed to merge PR: {output}")
    print("PR merged and remote branch deleted")


def switch_to_main() -> None:
    """Check out the main branch."""
    ok, output = _run(["git", "checkout", MAIN_BRANCH_NAME], combined=True)
    if not ok:
        raise OpwriteError(f"failed to checkout main: {output}")
    print("Switched to main branch")


def pull_main() -> None:
    """Pull the latest changes into the current branch."""
    ok, output = _run(["git", "pull"], combined=True)
    if not ok:
        raise OpwriteError(f"failed to pull main: {output}")
    print("Pulled latest changes")


def delete_local_branch(branch: str) -> None:
    """Delete the local branch if it still exists."""
    ok, output = _run(["git", "branch", "--list", branch])
    if not ok:
        raise OpwriteError(f"failed to check if branch exists: {output}")
    if not output.strip():
        print(f"Local branch '{branch}' already deleted")
        return
    ok, output = _run(["git", "branch", "-d", branch], combined=True)
    if not ok:
        raise OpwriteError(f"failed to delete local branch: {output}")
    print(f"Deleted local branch '{branch}'")


def parse_added_post_directory(diff_output: str) -> str:
    """Pick the single post directory from a list of added file paths."""
    added = [
        posixpath.dirname(line)
        for line in diff_output.splitlines()
        if line.endswith("/post.md")
    ]
    added = [directory for directory in added if directory != TEMPLATE_DIRNAME]
    if not added:
        raise OpwriteError("no post.md files were added in this branch")
    if len(added) > 1:
        raise OpwriteError(
            "multiple post.md files were added in this branch: "
            f"[{' '.join(added)}]"
        )
    return added[0]


def get_added_post_directory() -> str:
    """Return the post directory added on this branch relative to main."""
    ok, output = _run(
        ["git", "diff", "--name-only", "--diff-filter=A", f"{MAIN_BRANCH_NAME}...HEAD"]
    )
    if not ok:
        raise OpwriteError("failed to get added files")
    return parse_added_post_directory(output)


def open_post_in_chrome(post_dir: str) -> None:
    """Open the post's Markdown file in Google Chrome."""
    post_path = f"{post_dir}/post.md"
    ok, output = _run(["open", "-a", "Google Chrome", post_path], combined=True)
    if not ok:
        raise OpwriteError(f"failed to open post in Chrome: {output}")
    print(f"Opened {post_path} in Chrome")


def handle_successful_checks(branch: str) -> None:
    """Merge the PR, return to an up-to-date main and open the post."""
    print("Merging PR and cleaning up...")
    post_dir = get_added_post_directory()
    merge_pr(branch)
    switch_to_main()
    pull_main()
    delete_local_branch(branch)
    open_post_in_chrome(post_dir)

    substack_url = get_substack_url()
    print("\nPaste the rendered Markdown output into:")
    print(substack_url)
    if substack_url == DEFAULT_SUBSTACK_URL:
        print(
            f"\n💡 Tip: Create a {ENV_FILENAME} file with "
            f"{SUBSTACK_URL_ENV_VAR}=https://yourname.substack.com to get a working link."
        )


def publish_pr() -> None:
    """Create or reuse the PR for the current branch and watch it to merge."""
    validate_writing_directory()
    branch = get_current_branch()
    if branch == MAIN_BRANCH_NAME:
        raise OpwriteError("cannot publish from main branch")
    if is_branch_merged(branch):
        raise OpwriteError(f"branch '{branch}' is already merged into main")

    pr_url = get_pr_for_branch(branch)
    if not pr_url:
        print(f"Creating PR for branch '{branch}'...")
        pr_url = create_pr(branch)
        print(f"PR created: {pr_url}")
    else:
        print(f"Found existing PR: {pr_url}")

    print("Monitoring PR status...")
    monitor_pr_status(branch)