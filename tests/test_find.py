import subprocess
from unittest import mock

import pytest

from opwriting.common import WRITING_DIR_ENV_VAR, OpwriteError
from opwriting.find import (
    UNKNOWN_DISTANCE,
    BranchDistance,
    collect_entries,
    filter_entries_by_search_terms,
    find_posts,
    get_branches_sorted_by_distance,
    get_post_dirs_from_branch,
    parse_post_dirs,
    run_fzf,
    sort_entries_by_commit_date,
)

LISTINGS = {
    "main": "TEMPLATE/post.md\nalpha/post.md\nalpha/img.png\n",
    "feature-a": "alpha/post.md\nbeta/post.md\n",
    "feature-b": "gamma/post.md\nbeta/post.md\n",
}
DISTANCES = {"feature-a": "1\n", "feature-b": "3\n"}
TIMESTAMPS = {"TEMPLATE": "100\n", "alpha": "300\n", "beta": "500\n", "gamma": "200\n"}


def make_fake_git(listings=LISTINGS, distances=DISTANCES, timestamps=TIMESTAMPS,
                  branches="feature-b\nfeature-a\n"):
    def fake_run(args, **kwargs):
        def done(out, code=0):
            return subprocess.CompletedProcess(args, code, stdout=out, stderr="")

        if "ls-tree" in args:
            branch = args[-1]
            if branch in listings:
                return done(listings[branch])
            return done("", 128)
        if "branch" in args:
            return done(branches)
        if "rev-list" in args:
            name = args[-1].split("..", 1)[1]
            if name in distances:
                return done(distances[name])
            return done("", 128)
        if "log" in args:
            directory = args[-1]
            return done(timestamps.get(directory, ""))
        return done("", 1)

    return fake_run


class FakePopen:
    returncode_to_use = 0
    output_to_give = ""
    received = []

    def __init__(self, args, **kwargs):
        self.args = args
        self.returncode = None

    def communicate(self, payload=None):
        FakePopen.received.append((self.args, payload))
        self.returncode = FakePopen.returncode_to_use
        return FakePopen.output_to_give, None


def configure_fzf(code, output):
    FakePopen.returncode_to_use = code
    FakePopen.output_to_give = output
    FakePopen.received = []


def test_parse_post_dirs_keeps_only_post_files():
    listing = "alpha/post.md\nalpha/img.png\nnested/deep/post.md\npost.md\n"
    assert parse_post_dirs(listing) == ["alpha", "nested/deep"]


def test_parse_post_dirs_empty():
    assert parse_post_dirs("") == []


def test_get_post_dirs_from_branch():
    with mock.patch("subprocess.run", make_fake_git()):
        assert get_post_dirs_from_branch("/repo", "main") == ["TEMPLATE", "alpha"]


def test_get_post_dirs_from_missing_branch_raises():
    with mock.patch("subprocess.run", make_fake_git()):
        with pytest.raises(OpwriteError, match="nope"):
            get_post_dirs_from_branch("/repo", "nope")


def test_branches_sorted_by_distance():
    with mock.patch("subprocess.run", make_fake_git()):
        result = get_branches_sorted_by_distance("/repo")
    assert result == [BranchDistance("feature-a", 1), BranchDistance("feature-b", 3)]


def test_branch_distance_defaults_on_failure():
    fake = make_fake_git(distances={"feature-a": "2\n"})
    with mock.patch("subprocess.run", fake):
        result = get_branches_sorted_by_distance("/repo")
    assert result[-1] == BranchDistance("feature-b", UNKNOWN_DISTANCE)
    assert UNKNOWN_DISTANCE == 999999


def test_no_branches_gives_empty_list():
    with mock.patch("subprocess.run", make_fake_git(branches="\n  \n")):
        assert get_branches_sorted_by_distance("/repo") == []


def test_sort_entries_most_recent_first():
    mapping = {"alpha": "main", "beta": "feature-a", "gamma": "feature-b", "zeta": "main"}
    with mock.patch("subprocess.run", make_fake_git()):
        result = sort_entries_by_commit_date("/repo", ["alpha", "zeta", "gamma", "beta"], mapping)
    assert result == ["beta", "alpha", "gamma", "zeta"]


def test_filter_matches_case_insensitively():
    entries = ["2024-travel-notes", "cooking", "Travel-Guide"]
    assert filter_entries_by_search_terms(entries, "travel") == ["2024-travel-notes", "Travel-Guide"]


def test_filter_requires_terms_in_order():
    entries = ["2024-travel-notes"]
    assert filter_entries_by_search_terms(entries, "travel notes") == entries
    assert filter_entries_by_search_terms(entries, "notes travel") == []


def test_filter_escapes_regex_characters():
    assert filter_entries_by_search_terms(["a.b", "axb"], "a.b") == ["a.b"]


def test_filter_blank_terms_keep_everything():
    entries = ["one", "two"]
    assert filter_entries_by_search_terms(entries, "   ") == entries


def test_collect_entries_prefers_main_then_closest_branch():
    with mock.patch("subprocess.run", make_fake_git()):
        entries, mapping = collect_entries("/repo")
    assert entries == ["TEMPLATE", "alpha", "beta", "gamma"]
    assert mapping == {
        "TEMPLATE": "main",
        "alpha": "main",
        "beta": "feature-a",
        "gamma": "feature-b",
    }


def test_run_fzf_returns_selection():
    configure_fzf(0, "beta\n")
    with mock.patch("subprocess.Popen", FakePopen):
        assert run_fzf(["alpha", "beta"], "be") == "beta"
    args, payload = FakePopen.received[0]
    assert args == ["fzf", "--query", "be"]
    assert payload == "alpha\nbeta\n"


@pytest.mark.parametrize("code", [1, 130])
def test_run_fzf_cancel_returns_empty(code):
    configure_fzf(code, "")
    with mock.patch("subprocess.Popen", FakePopen):
        assert run_fzf(["alpha"], "") == ""


def test_run_fzf_other_failure_raises():
    configure_fzf(2, "")
    with mock.patch("subprocess.Popen", FakePopen):
        with pytest.raises(OpwriteError, match="fzf execution failed"):
            run_fzf(["alpha"], "")


def test_find_posts_single_match_skips_fzf(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv(WRITING_DIR_ENV_VAR, str(tmp_path))
    configure_fzf(0, "")
    with mock.patch("subprocess.run", make_fake_git()), \
            mock.patch("subprocess.Popen", FakePopen):
        result = find_posts(["gam"])
    assert result == ("feature-b", "gamma")
    assert capsys.readouterr().out == "feature-b gamma\n"
    assert FakePopen.received == []


def test_find_posts_uses_fzf_for_many(tmp_path, monkeypatch):
    monkeypatch.setenv(WRITING_DIR_ENV_VAR, str(tmp_path))
    configure_fzf(0, "alpha\n")
    with mock.patch("subprocess.run", make_fake_git()), \
            mock.patch("subprocess.Popen", FakePopen):
        result = find_posts([])
    assert result == ("main", "alpha")
    assert FakePopen.received[0][1] == "beta\nalpha\ngamma\nTEMPLATE\n"


def test_find_posts_cancel_exits_with_two(tmp_path, monkeypatch):
    monkeypatch.setenv(WRITING_DIR_ENV_VAR, str(tmp_path))
    configure_fzf(130, "")
    with mock.patch("subprocess.run", make_fake_git()), \
            mock.patch("subprocess.Popen", FakePopen):
        with pytest.raises(SystemExit) as excinfo:
            find_posts([])
    assert excinfo.value.code == 2


def test_find_posts_missing_repo_raises(tmp_path, monkeypatch):
    monkeypatch.setenv(WRITING_DIR_ENV_VAR, str(tmp_path / "absent"))
    with pytest.raises(OpwriteError, match="does not exist"):
        find_posts([])


def test_find_posts_requires_environment(monkeypatch):
    monkeypatch.delenv(WRITING_DIR_ENV_VAR, raising=False)
    with pytest.raises(OpwriteError, match="not configured"):
        find_posts(["x"])