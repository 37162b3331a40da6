"""Change extraction — turn pushed commits into ordered spec file changes.

Each commit is diffed against its parent with::

    git diff <parent> <sha> --name-status -z --no-renames

and the output is parsed into ``ChangeRecord`` objects.  Commits keep the
order they were pushed in (oldest first).  Within a commit, deletions come
first and applies second, each sorted by path, so a resource whose spec
moved to a new file is removed before it is re-created.
"""

from __future__ import annotations

import logging
from typing import Iterable

from git import GitCommandError

from kubesync.errors import RepositoryError
from kubesync.models.push import PushCommit
from kubesync.models.resource import ChangeKind, ChangeRecord
from kubesync.sync.tag import is_generated_commit
from kubesync.utils.file_scanner import is_spec_path
from kubesync.utils.git_ops import EMPTY_TREE_SHA, WorkingCopy

logger = logging.getLogger(__name__)

APPLY_STATUSES = {"A", "M", "T"}
DELETE_STATUSES = {"D"}
TWO_PATH_STATUSES = {"R", "C"}  # followed by a similarity score, e.g. R100


def parse_name_status_diff(sha: str, diff: str) -> list[ChangeRecord]:
    """Parse ``git diff --name-status`` output for commit *sha*.

    Accepts NUL-delimited (``-z``) or TAB/newline-delimited output.  Only
    root-level spec files produce records; paths are kept exactly as
    reported, embedded spaces included.

    Args:
        sha: Commit the diff belongs to.
        diff: Raw diff output.

    Returns:
        Deletions sorted by path, followed by applies sorted by path.
    """
    deletes: list[str] = []
    applies: list[str] = []
    records = _split_records(diff)
    i = 0
    while i < len(records):
        status = records[i].strip()
        code = status[:1]
        width = 3 if code in TWO_PATH_STATUSES else 2
        paths = records[i + 1:i + width]
        i += width
        if len(paths) < width - 1:
            logger.warning("Truncated diff entry %r in commit %s, ignoring", status, sha)
            break
        if code in DELETE_STATUSES:
            deletes.append(paths[0])
        elif code in APPLY_STATUSES:
            applies.append(paths[0])
        elif code == "R":
            deletes.append(paths[0])
            applies.append(paths[1])
        elif code == "C":
            applies.append(paths[1])
        else:
            logger.warning("Unsupported diff status %r for %s in commit %s, ignoring", status, paths, sha)

    changes = [
        ChangeRecord(sha=sha, change=ChangeKind.DELETE, path=p)
        for p in sorted(p for p in deletes if is_spec_path(p))
    ]
    changes.extend(
        ChangeRecord(sha=sha, change=ChangeKind.APPLY, path=p)
        for p in sorted(p for p in applies if is_spec_path(p))
    )
    return changes


def _split_records(diff: str) -> list[str]:
    """Flatten diff output into ``[status, path, (path,) status, path, ...]``."""
    if "\0" in diff:
        records = diff.split("\0")
        while records and not records[-1].strip():
            records.pop()
        return records
    records = []
    for line in diff.splitlines():
        if line.strip():
            records.extend(line.split("\t"))
    return records


def diff_commits(
    working_copy: WorkingCopy,
    commits: Iterable[PushCommit],
    tag: str,
    depth: int = 20,
) -> list[ChangeRecord]:
    """Extract the spec changes of *commits* (oldest first).

    Commits generated by this sync engine, i.e., whose message contains
    *tag*, are skipped.  In a shallow clone, pushed commits beyond the
    clone depth are fetched first, and a grafted commit is deepened by
    *depth* so it can be diffed against its real parent.

    Raises:
        RepositoryError: If git cannot produce a diff for a commit.
    """
    commits = [c for c in commits if not _skip(c, tag)]
    _fetch_missing(working_copy, [c.sha for c in commits], depth)

    changes: list[ChangeRecord] = []
    for commit in commits:
        try:
            parent = _parent_sha(working_copy, commit.sha, depth)
            diff = working_copy.diff_name_status(parent, commit.sha)
        except GitCommandError as e:
            raise RepositoryError(f"Failed to diff commit {commit.sha}: {(e.stderr or '').strip()}") from e
        commit_changes = parse_name_status_diff(commit.sha, diff)
        logger.debug("Commit %s changed %d spec files", commit.sha, len(commit_changes))
        changes.extend(commit_changes)
    return changes


def _skip(commit: PushCommit, tag: str) -> bool:
    if is_generated_commit(commit.message, tag):
        logger.debug("Skipping sync commit %s", commit.sha)
        return True
    return False


def _fetch_missing(working_copy: WorkingCopy, shas: list[str], depth: int) -> None:
    """Deepen a shallow clone until every commit in *shas* is present."""
    missing = [sha for sha in shas if not working_copy.has_commit(sha)]
    while missing and working_copy.is_shallow:
        logger.info("%d pushed commits are beyond the clone depth, fetching more history", len(missing))
        if not working_copy.deepen(max(depth, len(shas) + 1)):
            break
        missing = [sha for sha in missing if not working_copy.has_commit(sha)]


def _parent_sha(working_copy: WorkingCopy, sha: str, depth: int) -> str:
    parent = working_copy.parent_of(sha)
    if parent is None and working_copy.is_grafted(sha):
        working_copy.deepen(depth)
        parent = working_copy.parent_of(sha)
    return parent or EMPTY_TREE_SHA
