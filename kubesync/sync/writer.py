"""Reverse sync — write cluster resource changes back to the sync repo.

For each resource that was upserted or deleted in the cluster, the
existing spec files of the sync repo are searched for one with the same
apiVersion, kind, namespace and name.  Upserts overwrite a matching file
(keeping its format) or create a new file named by
:func:`~kubesync.sync.naming.spec_file_basename`; deletes remove the
matching file.  If anything changed, a single commit carrying the
generated-commit marker is made and pushed.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from pathlib import Path
from typing import Any

import yaml
from git import Actor, GitCommandError

from kubesync.config import SyncOptions
from kubesync.errors import CommitPushError
from kubesync.kubernetes.application import (
    KubernetesApplication,
    app_name,
    delete_application,
    upsert_application,
)
from kubesync.kubernetes.apply import ResourceApplier
from kubesync.kubernetes.secret import encrypt_secret, is_secret
from kubesync.models.resource import SpecFile, SyncAction
from kubesync.sync.naming import spec_file_basename
from kubesync.sync.specs import index_specs, match_spec
from kubesync.sync.tag import commit_message
from kubesync.utils.git_ops import WorkingCopy, clone_working_copy

logger = logging.getLogger(__name__)

NEW_SPEC_EXTENSION = ".json"

# Server-populated metadata that would make every round trip a change
RUNTIME_METADATA = ("creationTimestamp", "generation", "managedFields", "resourceVersion", "selfLink", "uid")
LAST_APPLIED_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"


def sync_application(
    app: KubernetesApplication,
    resources: list[dict[str, Any]],
    action: SyncAction | str,
    options: SyncOptions | None,
) -> str | None:
    """Synchronize resources changed while deploying *app* to the sync repo.

    Does nothing if no sync repo is configured or *resources* is empty.

    Returns:
        The SHA of the pushed commit, or None if nothing was committed.
    """
    if options is None or not options.enabled:
        logger.debug("No sync repo configured, not syncing resources of %s", app_name(app))
        return None
    if not resources:
        return None
    repo = options.repo
    try:
        with clone_working_copy(repo.url, repo.branch, options.credentials, options.clone_depth) as wc:
            return sync_resources(wc, app, resources, action, options)
    except Exception as e:
        logger.error("Failed to sync resources from %s to sync repo %s: %s", app_name(app), repo.slug, e)
        raise


def sync_resources(
    working_copy: WorkingCopy,
    app: KubernetesApplication | str,
    resources: list[dict[str, Any]],
    action: SyncAction | str,
    options: SyncOptions,
) -> str | None:
    """Update the spec files in *working_copy* for *resources*, then commit and push.

    Args:
        working_copy: Writable checkout of the sync repo.
        app: Application (or its ``ns/name`` slug) the resources belong to.
        resources: Resource objects that were upserted or deleted.
        action: ``"upsert"`` or ``"delete"``, for the whole batch.
        options: Sync options; ``secret_key`` enables secret encryption.

    Returns:
        The SHA of the pushed commit, or None if the working copy stayed clean.

    Raises:
        CommitPushError: If committing or pushing fails.
    """
    action = SyncAction(action)
    slug = app if isinstance(app, str) else app_name(app)
    root = working_copy.local_path
    specs = index_specs(root)

    for resource in resources:
        resource = prepare_resource(resource, options)
        spec_file = match_spec(resource, specs)
        if action is SyncAction.DELETE:
            if spec_file is not None:
                _resource_deleted(spec_file)
                specs.remove(spec_file)
        else:
            new_file = _resource_upserted(root, resource, spec_file)
            if new_file is not None:
                specs.append(new_file)

    if working_copy.is_clean():
        logger.debug("Sync repo unchanged after syncing %s", slug)
        return None

    verb = "Delete" if action is SyncAction.DELETE else "Update"
    author = Actor(options.author_name, options.author_email)
    try:
        sha = working_copy.commit(commit_message(verb, slug, options), author)
        working_copy.push()
    except (GitCommandError, OSError) as e:
        msg = f"Failed to commit and push resource changes to sync repo: {e}"
        logger.error(msg)
        raise CommitPushError(msg) from e
    logger.info("Pushed %s of %d resources of %s as %s", verb.lower(), len(resources), slug, sha[:7])
    return sha


def prepare_resource(resource: dict[str, Any], options: SyncOptions) -> dict[str, Any]:
    """Strip runtime metadata and encrypt secret payloads if a key is set."""
    resource = clean_resource(resource)
    if is_secret(resource):
        if options.secret_key:
            resource = encrypt_secret(resource, options.secret_key)
        else:
            name = (resource.get("metadata") or {}).get("name", "")
            logger.warning("No secret key configured, writing values of Secret %s to the sync repo in clear", name)
    return resource


def clean_resource(resource: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *resource* without server-populated fields."""
    result = copy.deepcopy(resource)
    result.pop("status", None)
    metadata = result.get("metadata")
    if isinstance(metadata, dict):
        for key in RUNTIME_METADATA:
            metadata.pop(key, None)
        annotations = metadata.get("annotations")
        if isinstance(annotations, dict):
            annotations.pop(LAST_APPLIED_ANNOTATION, None)
            if not annotations:
                del metadata["annotations"]
    return result


def stringify_spec(resource: dict[str, Any]) -> str:
    """Serialize as indented JSON with sorted keys and a trailing newline."""
    return json.dumps(resource, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def yaml_spec(resource: dict[str, Any]) -> str:
    """Serialize as block-style YAML with sorted keys."""
    return yaml.safe_dump(resource, sort_keys=True, default_flow_style=False, allow_unicode=True)


def _resource_upserted(root: Path, resource: dict[str, Any], spec_file: SpecFile | None) -> SpecFile | None:
    """Persist an upserted resource; returns the new spec file if one was created."""
    if spec_file is not None:
        content = yaml_spec(resource) if spec_file.is_yaml else stringify_spec(resource)
        spec_file.path.write_text(content, encoding="utf-8")
        spec_file.spec = resource
        return None
    base = spec_file_basename(resource)
    path = root / f"{base}{NEW_SPEC_EXTENSION}"
    while path.exists():
        path = root / f"{base}_{uuid.uuid4().hex[:8]}{NEW_SPEC_EXTENSION}"
    path.write_text(stringify_spec(resource), encoding="utf-8")
    logger.debug("Created spec file %s", path.name)
    return SpecFile(path=path, spec=resource)


def _resource_deleted(spec_file: SpecFile) -> None:
    spec_file.path.unlink(missing_ok=True)
    logger.debug("Deleted spec file %s", spec_file.path.name)


def deploy_application(
    app: KubernetesApplication,
    resources: list[dict[str, Any]],
    applier: ResourceApplier,
    options: SyncOptions | None,
) -> list[dict[str, Any]]:
    """Upsert *app* in the cluster and record the result in the sync repo."""
    applied = upsert_application(app, resources, applier)
    sync_application(app, applied, SyncAction.UPSERT, options)
    return applied


def undeploy_application(
    app: KubernetesApplication,
    applier: ResourceApplier,
    options: SyncOptions | None,
) -> list[dict[str, Any]]:
    """Delete *app* from the cluster and remove its specs from the sync repo."""
    deleted = delete_application(app, applier)
    sync_application(app, deleted, SyncAction.DELETE, options)
    return deleted
