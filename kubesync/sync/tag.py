"""Commit-loop guard — mark and recognize commits made by kubesync itself.

Every commit the reverse-sync writer pushes carries a marker naming the
sync engine.  Forward sync skips those commits, so kubesync never applies
its own writes back to the cluster, and the most recent marked commit
doubles as the sync cursor: everything after it is unprocessed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kubesync.config import SyncOptions
from kubesync.errors import ConfigurationError
from kubesync.models.push import PushEvent

if TYPE_CHECKING:
    from git import Commit

    from kubesync.utils.git_ops import WorkingCopy

logger = logging.getLogger(__name__)

GENERATED_MARKER = "[kubesync:generated]"

# Upper bound on how far back the cursor scan walks
MAX_CURSOR_SCAN = 200
# Commits fetched per deepen when the scan hits a shallow clone boundary
DEEPEN_STEP = 20


def commit_tag(options: SyncOptions | str) -> str:
    """The sync-commit tag for a sync engine (options or bare name)."""
    name = options if isinstance(options, str) else options.name
    return f"[kubesync:sync-commit={name}]"


def commit_message(verb: str, app_name: str, options: SyncOptions) -> str:
    """Message for a reverse-sync commit, e.g. ``Update specs for ns/app``."""
    return f"{verb} specs for {app_name}\n\n{GENERATED_MARKER} {commit_tag(options)}\n"


def is_generated_commit(message: str, tag: str) -> bool:
    return tag in message


def is_sync_repo_push(push: PushEvent, options: SyncOptions) -> bool:
    """Decide whether a push should trigger forward sync.

    The push must be to the configured sync repo branch and contain at
    least one commit not generated by this sync engine.

    Raises:
        ConfigurationError: If the sync repo reference was never resolved.
    """
    repo = options.repo
    if repo is None:
        return False
    if not repo.is_resolved:
        raise ConfigurationError(f"Sync repo reference was not resolved at startup: {repo!r}")
    if (
        push.provider_type != repo.provider_type
        or push.owner != repo.owner
        or push.repo != repo.repo
        or push.branch != repo.branch
    ):
        return False
    tag = commit_tag(options)
    return any(not is_generated_commit(c.message, tag) for c in push.commits)


def unsynced_commits(
    working_copy: WorkingCopy,
    tag: str,
    max_count: int = MAX_CURSOR_SCAN,
    depth: int = DEEPEN_STEP,
) -> list[Commit]:
    """Commits after the most recent generated commit, oldest first.

    The scan walks back from HEAD and stops at the first commit carrying
    *tag*, at the repository root, or after *max_count* commits.  Reaching
    the boundary of a shallow clone fetches *depth* more commits and scans
    again.
    """
    while True:
        pending = []
        found = False
        for commit in working_copy.iter_commits(max_count=max_count):
            if is_generated_commit(commit.message, tag):
                found = True
                break
            pending.append(commit)
        if found or len(pending) >= max_count or not pending:
            break
        if not working_copy.is_grafted(pending[-1].hexsha) or not working_copy.deepen(depth):
            break

    if not found:
        logger.warning("No sync commit found, processing the last %d commits", len(pending))
    pending.reverse()
    return pending
