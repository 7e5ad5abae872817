# opwriting

Tools for working with a writing repository. Each post lives in its own
directory, holds a `post.md` file, and is written on its own Git branch.

## Requirements

- `git` on your `PATH`
- `fzf` for picking posts interactively
- `gh` (the GitHub CLI), logged in, for publishing
- the `open` command and Google Chrome (macOS) to open a published post

Set `WRITING_REPO_DIRPATH` to the root of your writing repository. That
repository should have a `main` branch and a `TEMPLATE` directory that new
posts are copied from.

```sh
export WRITING_REPO_DIRPATH="$HOME/writing"
```

## Installation

```sh
pip install .
```

This installs the `opwriting` command. Run it with no command to see the
help text.

## Commands

### Start a new post

```sh
opwriting add my new post
```

At least one word is required. The words are joined with hyphens to make
`my-new-post`; a name that ends up containing a space is rejected. The
command checks out `main`, creates a `my-new-post` branch, copies `TEMPLATE`
to `my-new-post/`, runs `git add` and commits with the message
`Initial commit for my-new-post`, and prints the path of the new directory.

The command stops with an error if a directory or branch with that name
already exists.

### Find a post

```sh
opwriting find [search terms...]
```

This collects every directory that holds a `post.md`. It looks first at
`main`. It then looks at the branches not yet merged into `main`, starting
with the one that has the fewest commits beyond `main`. A directory is
credited to the first branch it is found on. The list is sorted by the time
of the last commit touching each directory, most recent first.

Search terms narrow the list. All of them must appear in order, and case is
ignored. If exactly one post matches, it is chosen at once. Otherwise `fzf`
opens, with the search terms as its starting query, so you can pick one. The
command prints the branch and the directory, separated by a space:

```
my-new-post my-new-post
```

If you cancel the selection in `fzf`, the command exits with status 2.

### Publish a post

Run this from inside the writing repository (or one of its subdirectories),
while on the post's branch:

```sh
opwriting publish
```

It refuses to run on `main` or on a branch already merged into `main`. It
opens a pull request titled after the branch, or reuses the one that already
exists. It then checks the PR's status every 10 seconds until all checks
pass or the PR has been merged, printing each check's state. Press Ctrl+C
(or send SIGTERM) to stop waiting.

Once the checks pass, it:

1. finds the single post directory (other than `TEMPLATE`) added on the
   branch; it fails if there is none or more than one
2. merges the PR and deletes the remote branch
3. switches to `main` and pulls
4. deletes the local branch, if it still exists
5. opens the new `post.md` in Google Chrome

Last, it prints the Substack page to paste the rendered post into. To get a
working link there, create a file named `.overpowered-writing.env` in the
directory you run the command from:

```
SUBSTACK_URL=https://yourname.substack.com
```

The printed link is then `SUBSTACK_URL` followed by
`/publish/post?type=newsletter`. Without that file a placeholder is printed
along with a tip.

## Using it from Python

The commands are also available as functions:

- `opwriting.add.add_post(name_words)` and `opwriting.add.build_post_name(name_words)`
- `opwriting.find.find_posts(search_terms)`, plus helpers such as
  `collect_entries`, `filter_entries_by_search_terms` and `parse_post_dirs`
- `opwriting.publish.publish_pr()`, plus helpers such as `get_substack_url`,
  `parse_added_post_directory` and `PRBranch.from_json`
- `opwriting.cli.main(argv=None)`, which returns the exit status

Failures are raised as `opwriting.common.OpwriteError`.

## Errors

When a command fails, it prints `Error: ...` to standard error and exits with
status 1.

## Not included

There is no command that prints shell functions for sourcing into your
shell. To change into a post directory found with `opwriting find`, use its
output in your own shell function or script.