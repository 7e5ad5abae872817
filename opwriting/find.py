"""Find post directories across Git branches and pick one."""

from __future__ import annotations

import os
import posixpath
import re
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from opwriting.common import MAIN_BRANCH_NAME, OpwriteError, writing_repo_path

UNKNOWN_DISTANCE = 999999
_POST_PATTERN = re.compile(r"/post\.md$")
_FZF_CANCEL_CODES = (1, 130)


@dataclass(frozen=True)
class BranchDistance:
    """A branch and the number of commits it is ahead of main."""

    branch: str
    distance: int


def _git_output(args: Sequence[str]) -> str | None:
    """Return a git command's stdout, or None when it fails."""
    try:
        result = subprocess.run(
            ["git", *args], capture_output=True, text=True, check=False
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def parse_post_dirs(listing: str) -> list[str]:
    """Return the directories of every post.md path in a file listing."""
    return [
        posixpath.dirname(line)
        for line in listing.splitlines()
        if _POST_PATTERN.search(line)
    ]


def get_post_dirs_from_branch(repo_path: str, branch: str) -> list[str]:
    """List the post directories present on a branch."""
    output = _git_output(["-C", repo_path, "ls-tree", "-r", "--name-only", branch])
    if output is None:
        raise OpwriteError(f"failed to run git ls-tree for branch {branch}")
    return parse_post_dirs(output)


def _branch_distance(repo_path: str, branch: str) -> BranchDistance:
    output = _git_output(
        ["-C", repo_path, "rev-list", "--count", f"{MAIN_BRANCH_NAME}..{branch}"]
    )
    distance = UNKNOWN_DISTANCE
    if output is not None:
        try:
            distance = int(output.strip())
        except ValueError:
            pass
    return BranchDistance(branch, distance)


def get_branches_sorted_by_distance(repo_path: str) -> list[BranchDistance]:
    """Return unmerged branches, closest to main first."""
    output = _git_output(
        [
            "-C",
            repo_path,
            "branch",
            "--format=%(refname:short)",
            "--no-merged",
            MAIN_BRANCH_NAME,
        ]
    )
    if output is None:
        raise OpwriteError("failed to get branches")

    branches = [line.strip() for line in output.splitlines() if line.strip()]
    if not branches:
        return []

    with ThreadPoolExecutor() as pool:
        distances = list(pool.map(lambda b: _branch_distance(repo_path, b), branches))
    return sorted(distances, key=lambda item: item.distance)


def _last_commit_timestamp(repo_path: str, branch: str, directory: str) -> int:
    output = _git_output(
        ["-C", repo_path, "log", "--max-count=1", "--format=%ct", branch, "--", directory]
    )
    if output is None:
        return 0
    try:
        return int(output.strip())
    except ValueError:
        return 0


def sort_entries_by_commit_date(
    repo_path: str, entries: Iterable[str], branch_mapping: Mapping[str, str]
) -> list[str]:
    """Order entries by their last commit time, most recent first."""
    entries = list(entries)
    with ThreadPoolExecutor() as pool:
        timestamps = list(
            pool.map(
                lambda d: _last_commit_timestamp(repo_path, branch_mapping.get(d, ""), d),
                entries,
            )
        )
    ranked = sorted(zip(entries, timestamps), key=lambda pair: pair[1], reverse=True)
    return [directory for directory, _ in ranked]


def run_fzf(entries: Iterable[str], query: str) -> str:
    """Let the user pick an entry with fzf; return "" when cancelled."""
    try:
        proc = subprocess.Popen(
            ["fzf", "--query", query],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            text=True,
        )
    except OSError as exc:
        raise OpwriteError("failed to start fzf") from exc

    payload = "".join(f"{entry}\n" for entry in entries)
    output, _ = proc.communicate(payload)

    if proc.returncode in _FZF_CANCEL_CODES:
        return ""
    if proc.returncode != 0:
        raise OpwriteError(f"fzf execution failed with exit code {proc.returncode}")
    return (output or "").partition("\n")[0].strip()


def filter_entries_by_search_terms(entries: Sequence[str], search_terms: str) -> list[str]:
    """Keep entries containing every term, in order, ignoring case."""
    terms = search_terms.split()
    if not terms:
        return list(entries)
    pattern = re.compile(
        ".*" + "".join(re.escape(term) + ".*" for term in terms), re.IGNORECASE
    )
    return [entry for entry in entries if pattern.search(entry)]


def collect_entries(repo_path: str) -> tuple[list[str], dict[str, str]]:
    """Gather post directories from main, then from branches by distance.

    Returns the directories in discovery order and a map from each
    directory to the branch it was first found on.
    """
    branch_mapping: dict[str, str] = {}

    for directory in get_post_dirs_from_branch(repo_path, MAIN_BRANCH_NAME):
        branch_mapping.setdefault(directory, MAIN_BRANCH_NAME)

    for branch_distance in get_branches_sorted_by_distance(repo_path):
        for directory in get_post_dirs_from_branch(repo_path, branch_distance.branch):
            branch_mapping.setdefault(directory, branch_distance.branch)

    return list(branch_mapping), branch_mapping


def find_posts(search_terms: Iterable[str]) -> tuple[str, str]:
    """Select a post and print "<branch> <directory>".

    Raises SystemExit(2) when the user cancels the selection.
    """
    repo_path = writing_repo_path()
    query = " ".join(search_terms)

    if not os.path.exists(repo_path):
        raise OpwriteError(f"writing repo path does not exist: {repo_path}")

    entries, branch_mapping = collect_entries(repo_path)
    sorted_entries = sort_entries_by_commit_date(repo_path, entries, branch_mapping)
    filtered = (
        filter_entries_by_search_terms(sorted_entries, query) if query else sorted_entries
    )

    if len(filtered) == 1:
        selection = filtered[0]
    else:
        selection = run_fzf(filtered, query)

    if not selection:
        raise SystemExit(2)

    branch = branch_mapping.get(selection)
    if branch is None:
        raise OpwriteError(f"no branch mapping found for selection: {selection}")

    print(f"{branch} {selection}")
    return branch, selection