"""Tests for applying sync repo changes to the cluster."""

import json

import pytest

from kubesync.config import SyncOptions, SyncRepoRef
from kubesync.errors import SyncError
from kubesync.models.push import PushCommit
from kubesync.models.resource import ChangeKind, ChangeRecord
from kubesync.sync.forward import change_resource, repo_sync, sync_pending, sync_push, sync_repo
from kubesync.sync.tag import GENERATED_MARKER, commit_tag
from kubesync.utils.crypto import encrypt
from kubesync.utils.git_ops import clone_working_copy

KEY = "Letter From Home"


def _spec(api_version, kind, name="lyle", namespace="lovett", **extra):
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    spec = {"apiVersion": api_version, "kind": kind, "metadata": metadata}
    spec.update(extra)
    return json.dumps(spec)


# --- Push sync ---


def test_push_applies_and_deletes_in_commit_order(remote, options, client, applier):
    first = remote.push({
        "10_lovett_namespace.json": _spec("v1", "Namespace", name="lovett", namespace=None),
        "70_lovett_lyle_deployment.json": _spec("apps/v1", "Deployment", spec={"replicas": 1}),
    }, "Add specs")
    second = remote.push({
        "70_lovett_lyle_deployment.json": None,
        "50_lovett_lyle_service.json": _spec("v1", "Service"),
    }, "Replace deployment with service")
    commits = [PushCommit(first, "Add specs"), PushCommit(second, "Replace deployment with service")]

    with clone_working_copy(remote.url, "main") as wc:
        result = sync_push(wc, commits, applier, options)

    assert [(c.change, c.path) for c in result.changes] == [
        (ChangeKind.APPLY, "10_lovett_namespace.json"),
        (ChangeKind.APPLY, "70_lovett_lyle_deployment.json"),
        (ChangeKind.DELETE, "70_lovett_lyle_deployment.json"),
        (ChangeKind.APPLY, "50_lovett_lyle_service.json"),
    ]
    assert len(result.applied) == 3
    assert len(result.deleted) == 1
    assert client.has("v1", "Namespace", None, "lovett")
    assert client.has("v1", "Service", "lovett", "lyle")
    assert not client.has("apps/v1", "Deployment", "lovett", "lyle")
    assert result.summary == "Changed 4 resources"


def test_push_skips_generated_commits(remote, options, client, applier):
    message = f"Update specs for lovett/lyle\n\n{GENERATED_MARKER} {commit_tag(options)}\n"
    sha = remote.push({"50_lovett_lyle_service.json": _spec("v1", "Service")}, message)
    with clone_working_copy(remote.url, "main") as wc:
        result = sync_push(wc, [PushCommit(sha, message)], applier, options)
    assert result.changes == []
    assert client.calls == []


def test_push_errors_are_collected(remote, options, client, applier):
    sha = remote.push({
        "50_lovett_lyle_service.json": _spec("v1", "Service"),
        "60_lovett_lyle_config-map.json": "{broken",
        "70_lovett_lyle_deployment.json": _spec("apps/v1", "Deployment"),
    }, "Add specs")

    with clone_working_copy(remote.url, "main") as wc:
        with pytest.raises(SyncError) as exc:
            sync_push(wc, [PushCommit(sha, "Add specs")], applier, options)

    err = exc.value
    assert err.count == 1
    assert f"Failed to apply '60_lovett_lyle_config-map.json' resource for commit {sha}" in str(err)
    # the other specs were still applied
    assert client.has("v1", "Service", "lovett", "lyle")
    assert client.has("apps/v1", "Deployment", "lovett", "lyle")


def test_secrets_are_decrypted_before_apply(remote, options, client, applier):
    options.secret_key = KEY
    secret = _spec("v1", "Secret", data={"password": encrypt("aGFyZA==", KEY)})
    sha = remote.push({"60_lovett_lyle_secret.json": secret}, "Add secret")
    with clone_working_copy(remote.url, "main") as wc:
        sync_push(wc, [PushCommit(sha, "Add secret")], applier, options)
    assert client.objects[("v1", "Secret", "lovett", "lyle")]["data"] == {"password": "aGFyZA=="}


def test_change_resource_reads_deleted_spec_from_parent(remote, options, client, applier):
    remote.push({"50_lovett_lyle_service.json": _spec("v1", "Service")}, "Add service")
    sha = remote.push({"50_lovett_lyle_service.json": None}, "Remove service")
    client.add(json.loads(_spec("v1", "Service")))

    with clone_working_copy(remote.url, "main") as wc:
        change = ChangeRecord(sha=sha, change=ChangeKind.DELETE, path="50_lovett_lyle_service.json")
        deleted = change_resource(wc, change, applier, options)

    assert deleted["kind"] == "Service"
    assert not client.objects


def test_sync_pending_uses_last_sync_commit(remote, options, client, applier):
    tag = commit_tag(options)
    remote.push({"50_lovett_old_service.json": _spec("v1", "Service", name="old")}, "Old")
    remote.push({"50_lovett_lyle_service.json": _spec("v1", "Service")}, f"Sync\n\n{GENERATED_MARKER} {tag}\n")
    remote.push({"70_lovett_lyle_deployment.json": _spec("apps/v1", "Deployment")}, "New")

    with clone_working_copy(remote.url, "main") as wc:
        result = sync_pending(wc, applier, options)

    assert [c.path for c in result.changes] == ["70_lovett_lyle_deployment.json"]
    assert not client.has("v1", "Service", "lovett", "old")


def test_sync_pending_reaches_cursor_beyond_clone_depth(remote, options, client, applier):
    tag = commit_tag(options)
    remote.push({"50_lovett_old_service.json": _spec("v1", "Service", name="old")}, "Old")
    remote.push({"50_lovett_lyle_service.json": _spec("v1", "Service")}, f"Sync\n\n{GENERATED_MARKER} {tag}\n")
    names = [f"cm-{i:02d}" for i in range(8)]
    for name in names:
        remote.push({f"60_lovett_{name}_config-map.json": _spec("v1", "ConfigMap", name=name)}, f"Add {name}")
    options.clone_depth = 3

    with clone_working_copy(remote.file_url, "main", depth=options.clone_depth) as wc:
        assert wc.is_shallow
        result = sync_pending(wc, applier, options)

    assert len(result.applied) == 8
    assert all(client.has("v1", "ConfigMap", "lovett", name) for name in names)
    assert not client.has("v1", "Service", "lovett", "old")


# --- Bulk sync ---


def test_repo_sync_applies_in_file_order(remote, options, client, applier):
    remote.push({
        "70_lovett_lyle_deployment.json": _spec("apps/v1", "Deployment"),
        "10_lovett_namespace.yaml": "apiVersion: v1\nkind: Namespace\nmetadata:\n  name: lovett\n",
        "50_lovett_lyle_service.json": _spec("v1", "Service"),
        "docs/ignored.json": _spec("v1", "ConfigMap"),
    }, "Add specs")

    result = repo_sync(options, applier)

    assert [c[1] for c in client.ops("create")] == ["Namespace", "Service", "Deployment"]
    assert len(result.applied) == 3


def test_repo_sync_patches_existing_resources(remote, options, client, applier):
    remote.push({"50_lovett_lyle_service.json": _spec("v1", "Service")}, "Add service")
    client.add(json.loads(_spec("v1", "Service")))
    repo_sync(options, applier)
    assert len(client.ops("patch")) == 1
    assert client.ops("create") == []


def test_bulk_sync_errors_are_aggregated(remote, options, client, applier):
    remote.push({
        "50_lovett_a_service.json": "[]",
        "50_lovett_b_service.json": _spec("v1", "Service", name="b"),
        "50_lovett_c_service.json": "nope: [",
    }, "Add specs")
    with clone_working_copy(remote.url, "main") as wc:
        with pytest.raises(SyncError) as exc:
            sync_repo(wc, applier, options)
    assert exc.value.count == 2
    assert str(exc.value).startswith("There were errors during repo sync (2 failed): ")
    assert client.has("v1", "Service", "lovett", "b")


def test_unreachable_repo_skips_the_cycle(tmp_path, applier, client):
    options = SyncOptions(repo=SyncRepoRef(url=str(tmp_path / "missing.git")).resolve())
    assert repo_sync(options, applier) is None
    assert client.calls == []
