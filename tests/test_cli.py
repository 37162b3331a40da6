"""Tests for the kubesync command line."""

import json

import pytest
from click.testing import CliRunner

from kubesync import __version__
from kubesync.cli import main
from kubesync.kubernetes import clients

KEY = "10. Historia De Un Amor (feat. Javier Limón & Tali Rubinstein)"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("REPO", "BRANCH", "TOKEN", "SECRET_KEY", "INTERVAL"):
        monkeypatch.delenv(f"KUBESYNC_{var}", raising=False)


@pytest.fixture
def fake_cluster(monkeypatch, client):
    monkeypatch.setattr(clients, "make_dynamic_client", lambda context=None: client)
    return client


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_encrypt():
    result = CliRunner().invoke(main, ["encrypt", "w4FyYm9sIERlIExhIFZpZGE=", "--key", KEY])
    assert result.exit_code == 0
    assert result.output.strip() == "kWyypfKtwRYMfLkykh5IGfUIj/RthECc+dDbk60tVQo="


def test_decrypt_with_key_from_environment():
    result = CliRunner().invoke(
        main,
        ["decrypt", "kWyypfKtwRYMfLkykh5IGfUIj/RthECc+dDbk60tVQo="],
        env={"KUBESYNC_SECRET_KEY": KEY},
    )
    assert result.exit_code == 0
    assert result.output.strip() == "w4FyYm9sIERlIExhIFZpZGE="


def test_decrypt_garbage_fails():
    result = CliRunner().invoke(main, ["decrypt", "not base64!", "--key", KEY])
    assert result.exit_code == 1
    assert "Failed to decrypt value" in result.output


def test_encrypt_requires_key():
    result = CliRunner().invoke(main, ["encrypt", "value"])
    assert result.exit_code == 2


def test_name(tmp_path):
    spec = tmp_path / "whatever.yaml"
    spec.write_text("apiVersion: v1\nkind: ServiceAccount\nmetadata:\n  name: tonina\n  namespace: black-angel\n")
    result = CliRunner().invoke(main, ["name", str(spec)])
    assert result.exit_code == 0
    assert result.output.strip() == "20_black-angel_tonina_service-account.json"


def test_name_of_malformed_spec_fails(tmp_path):
    spec = tmp_path / "broken.json"
    spec.write_text("{")
    result = CliRunner().invoke(main, ["name", str(spec)])
    assert result.exit_code == 1
    assert "broken.json" in result.output


def test_sync_without_repo_fails(fake_cluster):
    result = CliRunner().invoke(main, ["sync"])
    assert result.exit_code == 1
    assert "No sync repo configured" in result.output


def test_sync_local_checkout(remote, fake_cluster):
    remote.push({
        "50_lovett_lyle_service.json": json.dumps(
            {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "lyle", "namespace": "lovett"}}
        ),
    }, "Add service")
    result = CliRunner().invoke(main, ["sync", "--repo-path", remote.seed.working_tree_dir])
    assert result.exit_code == 0, result.output
    assert "Changed 1 resources" in result.output
    assert fake_cluster.has("v1", "Service", "lovett", "lyle")


def test_sync_from_configured_repo(remote, fake_cluster, tmp_path):
    remote.push({
        "10_lovett_namespace.json": json.dumps({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "lovett"}}),
    }, "Add namespace")
    config = tmp_path / "kubesync.yaml"
    config.write_text(f"repo:\n  url: {remote.url}\n  branch: main\n")
    result = CliRunner().invoke(main, ["--config", str(config), "sync"])
    assert result.exit_code == 0, result.output
    assert fake_cluster.has("v1", "Namespace", None, "lovett")


def test_push_reports_changes(remote, fake_cluster):
    remote.push({
        "50_lovett_lyle_service.json": json.dumps(
            {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "lyle", "namespace": "lovett"}}
        ),
    }, "Add service")
    result = CliRunner().invoke(main, ["push", "--repo-path", remote.seed.working_tree_dir])
    assert result.exit_code == 0, result.output
    assert "50_lovett_lyle_service.json" in result.output
    assert fake_cluster.has("v1", "Service", "lovett", "lyle")


def test_push_failure_lists_errors(remote, fake_cluster):
    remote.push({"50_lovett_lyle_service.json": "{"}, "Add broken service")
    result = CliRunner().invoke(main, ["push", "--repo-path", remote.seed.working_tree_dir])
    assert result.exit_code == 1
    assert "Push sync failed" in result.output


def test_watch_requires_interval(remote, fake_cluster, tmp_path):
    config = tmp_path / "kubesync.yaml"
    config.write_text(f"repo: {remote.url}\n")
    result = CliRunner().invoke(main, ["--config", str(config), "watch"])
    assert result.exit_code == 1
    assert "No sync interval configured" in result.output
