"""Forward sync — apply sync repo spec changes to the cluster.

Two entry points:

* :func:`sync_push` handles a push to the sync repo: the pushed commits
  are turned into change records which are applied in order.
* :func:`sync_repo` is the bulk sync run at startup and periodically:
  every spec file is applied in file name order, which the naming scheme
  makes dependency order.

In both cases one failing spec does not stop the others; failures are
collected and raised as a single :class:`~kubesync.errors.SyncError`
once every item was attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from kubesync.config import SyncOptions
from kubesync.errors import ApplyError, RepositoryError, SyncError
from kubesync.kubernetes.apply import ResourceApplier
from kubesync.kubernetes.secret import decrypt_secret, is_secret
from kubesync.models.push import PushCommit
from kubesync.models.resource import ChangeKind, ChangeRecord
from kubesync.sync.diff import diff_commits
from kubesync.sync.specs import parse_spec, parse_spec_file
from kubesync.sync.tag import commit_tag, unsynced_commits
from kubesync.utils.file_scanner import scan_spec_files
from kubesync.utils.git_ops import WorkingCopy, clone_working_copy

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of a forward or bulk sync."""

    changes: list[ChangeRecord] = field(default_factory=list)
    applied: list[dict[str, Any]] = field(default_factory=list)
    deleted: list[dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"Changed {len(self.applied) + len(self.deleted)} resources"


def change_resource(
    working_copy: WorkingCopy,
    change: ChangeRecord,
    applier: ResourceApplier,
    options: SyncOptions | None = None,
) -> dict[str, Any] | None:
    """Apply or delete the resource of a single change record.

    The spec of an applied file is read as of the change's commit.  A
    deleted file no longer exists there, so its spec is read as of the
    commit's parent.

    Returns:
        The applied object, the deleted object, or None if there was
        nothing to delete.
    """
    if change.change is ChangeKind.DELETE:
        parent = working_copy.parent_of(change.sha)
        if parent is None:
            raise RepositoryError(f"Commit {change.sha} has no parent to read deleted '{change.path}' from")
        content = working_copy.show(parent, change.path)
    else:
        content = working_copy.show(change.sha, change.path)
    spec = _decrypted(parse_spec(content, change.path), options)
    if change.change is ChangeKind.DELETE:
        return applier.delete(spec)
    return applier.apply(spec)


def sync_push(
    working_copy: WorkingCopy,
    commits: Iterable[PushCommit],
    applier: ResourceApplier,
    options: SyncOptions,
) -> SyncResult:
    """Apply the spec changes of pushed *commits* (oldest first) to the cluster.

    Raises:
        SyncError: After all changes were attempted, if any of them failed.
        RepositoryError: If the commits cannot be diffed.
    """
    changes = diff_commits(working_copy, commits, commit_tag(options), options.clone_depth)
    result = SyncResult(changes=changes)
    errors: list[Exception] = []
    for change in changes:
        verb = "Deleting" if change.change is ChangeKind.DELETE else "Applying"
        logger.info("%s '%s' from commit %s", verb, change.path, change.sha)
        try:
            obj = change_resource(working_copy, change, applier, options)
        except Exception as e:
            msg = f"Failed to {change.change.value} '{change.path}' resource for commit {change.sha}: {e}"
            logger.error(msg)
            errors.append(ApplyError(msg))
            continue
        if obj is None:
            continue
        if change.change is ChangeKind.DELETE:
            result.deleted.append(obj)
        else:
            result.applied.append(obj)
    if errors:
        raise SyncError("There were errors during push sync", errors)
    logger.info(result.summary)
    return result


def sync_pending(working_copy: WorkingCopy, applier: ResourceApplier, options: SyncOptions) -> SyncResult:
    """Forward sync every commit made since the most recent sync commit."""
    pending = unsynced_commits(working_copy, commit_tag(options), depth=options.clone_depth)
    if not pending:
        logger.info("No commits since the last sync commit")
        return SyncResult()
    commits = [PushCommit(sha=c.hexsha, message=c.message) for c in pending]
    return sync_push(working_copy, commits, applier, options)


def sync_repo(working_copy: WorkingCopy, applier: ResourceApplier, options: SyncOptions | None = None) -> SyncResult:
    """Ensure every spec in the sync repo has a matching cluster resource.

    Missing resources are created and existing ones patched.

    Raises:
        SyncError: After all specs were attempted, if any of them failed.
    """
    result = SyncResult()
    errors: list[Exception] = []
    for path in scan_spec_files(working_copy.local_path):
        logger.debug("Processing spec %s", path.name)
        try:
            spec = _decrypted(parse_spec_file(path), options)
            result.applied.append(applier.apply(spec))
        except Exception as e:
            msg = f"Failed to apply '{path.name}': {e}"
            logger.error(msg)
            errors.append(ApplyError(msg))
    if errors:
        raise SyncError("There were errors during repo sync", errors)
    logger.info(result.summary)
    return result


def repo_sync(options: SyncOptions, applier: ResourceApplier) -> SyncResult | None:
    """Clone the sync repo and bulk sync it into the cluster.

    An unreachable repo is logged and the cycle skipped, returning None.
    Spec failures still raise :class:`SyncError`.
    """
    repo = options.repo
    if repo is None:
        logger.info("No sync repo configured, skipping repo sync")
        return None
    try:
        working_copy = clone_working_copy(repo.url, repo.branch, options.credentials, options.clone_depth)
    except RepositoryError as e:
        logger.error("Failed to perform sync using repo %s: %s", repo.slug, e)
        return None
    with working_copy:
        return sync_repo(working_copy, applier, options)


def _decrypted(spec: dict[str, Any], options: SyncOptions | None) -> dict[str, Any]:
    if is_secret(spec) and options is not None and options.secret_key:
        return decrypt_secret(spec, options.secret_key)
    return spec
