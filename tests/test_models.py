"""Tests for the core data models."""

from pathlib import Path

from kubesync.errors import SpecParseError, SyncError
from kubesync.models.push import PushCommit, PushEvent
from kubesync.models.resource import ChangeKind, ResourceIdentity, SpecFile, SyncAction


def test_identity_of_namespaced_resource():
    identity = ResourceIdentity.of({
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "tonina", "namespace": "black-angel"},
    })
    assert identity == ResourceIdentity("apps/v1", "Deployment", "black-angel", "tonina")
    assert str(identity) == "apps/v1 Deployment black-angel/tonina"


def test_identity_none_and_empty_namespace_differ():
    a = ResourceIdentity.of({"kind": "Namespace", "metadata": {"name": "x"}})
    b = ResourceIdentity.of({"kind": "Namespace", "metadata": {"name": "x", "namespace": ""}})
    assert a != b


def test_spec_file_format():
    assert SpecFile(Path("a.yaml"), {}).is_yaml
    assert SpecFile(Path("a.yml"), {}).is_yaml
    assert not SpecFile(Path("a.json"), {}).is_yaml


def test_enums_accept_plain_strings():
    assert SyncAction("upsert") is SyncAction.UPSERT
    assert ChangeKind("delete") is ChangeKind.DELETE


def test_push_event_slug():
    push = PushEvent("github_com", "tonina", "black-angel", "main", [PushCommit("abc", "msg")])
    assert push.slug == "tonina/black-angel"
    assert push.commits[0].message == "msg"


def test_sync_error_aggregates_messages():
    err = SyncError("There were errors during repo sync", [ValueError("one"), ValueError("two")])
    assert err.count == 2
    assert str(err) == "There were errors during repo sync (2 failed): one; two"


def test_spec_parse_error_message():
    err = SpecParseError("svc.json", "Expecting value")
    assert str(err) == "Failed to parse spec file 'svc.json': Expecting value"
