# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional

from pathgate.errors import ChangesetError


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    If git exits with a non-zero status, CalledProcessError is raised.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def _lines(out: str) -> List[str]:
    return out.splitlines() if out else []


def repo_root(cwd: Optional[str | Path] = None) -> Path:
    """Absolute path to the root of the current Git repository."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Full SHA of the current HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def is_dirty(cwd: Optional[str | Path] = None) -> bool:
    """
    Check whether the working tree has uncommitted changes
    (modified, staged or untracked files).
    """
    return _git(["status", "--porcelain"], cwd=cwd) != ""


def changed_files(base: str, head: str = "HEAD", cwd: Optional[str | Path] = None) -> List[str]:
    """
    Files changed between two Git references, relative to the repository root.

    Typical usage:
        base = merge_base("origin/main")
        files = changed_files(base)
    """
    return _lines(_git(["diff", "--name-only", f"{base}..{head}"], cwd=cwd))


def working_tree_changes(cwd: Optional[str | Path] = None) -> List[str]:
    """Staged, unstaged and untracked files, relative to the repository root."""
    files = set()
    files.update(_lines(_git(["diff", "--name-only"], cwd=cwd)))
    files.update(_lines(_git(["diff", "--name-only", "--cached"], cwd=cwd)))
    files.update(_lines(_git(["ls-files", "--others", "--exclude-standard"], cwd=cwd)))
    return sorted(files)


def merge_base(with_ref: str = "origin/main", cwd: Optional[str | Path] = None) -> str:
    """
    Merge-base (common ancestor) between HEAD and another ref: the point
    where the current branch diverged, i.e. the start of the changeset.
    """
    return _git(["merge-base", "HEAD", with_ref], cwd=cwd)


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)


def get_current_ref(cwd: Optional[str | Path] = None) -> str:
    """Current branch name, or the HEAD SHA when detached."""
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if ref == "HEAD":
        return head_sha(cwd=cwd)
    return ref


def collect_changes(compare_ref: str = "origin/main", cwd: Optional[str | Path] = None) -> List[str]:
    """
    The changeset to classify.

      - dirty tree: staged + unstaged + untracked files
      - clean tree: diff against the merge-base with compare_ref,
        falling back to HEAD~1 when the ref is unavailable

    Any git failure past those fallbacks is a hard ChangesetError.
    """
    try:
        root = repo_root(cwd=cwd)
        if is_dirty(cwd=root):
            return working_tree_changes(cwd=root)

        try:
            base = merge_base(compare_ref, cwd=root)
        except subprocess.CalledProcessError:
            # e.g. no remote configured
            base = "HEAD~1"
        return changed_files(base, "HEAD", cwd=root)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise ChangesetError(f"Could not collect changed files from git: {e}") from e
