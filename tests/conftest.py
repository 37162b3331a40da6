"""Shared fixtures: local Git sync repos and an in-memory Kubernetes API."""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path

import pytest
from git import Actor, Repo
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import NotFoundError

from kubesync.config import SyncOptions, SyncRepoRef

AUTHOR = Actor("Lyle Mays", "lyle@example.com")

CLUSTER_SCOPED = {
    "ClusterRole",
    "ClusterRoleBinding",
    "CustomResourceDefinition",
    "Namespace",
    "PersistentVolume",
    "StorageClass",
}


def commit_files(repo: Repo, files: dict, message: str) -> str:
    """Write (or, for ``None`` content, delete) files and commit them all."""
    root = Path(repo.working_tree_dir)
    for name, content in files.items():
        path = root / name
        if content is None:
            path.unlink()
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
    repo.git.add(A=True)
    return repo.index.commit(message, author=AUTHOR, committer=AUTHOR).hexsha


@dataclass
class SyncRemote:
    """A bare "remote" sync repo plus a clone used to push commits to it."""

    url: str
    bare: Repo
    seed: Repo

    def push(self, files: dict, message: str) -> str:
        sha = commit_files(self.seed, files, message)
        self.seed.git.push("origin", "main")
        return sha

    def push_series(self, count: int, prefix: str = "Change") -> list[str]:
        """Push *count* commits, each adding one spec file, in a single push."""
        shas = [
            commit_files(self.seed, {f"{prefix.lower()}-{i:03d}.json": "{}"}, f"{prefix} {i}")
            for i in range(count)
        ]
        self.seed.git.push("origin", "main")
        return shas

    @property
    def file_url(self) -> str:
        """URL that makes git honour --depth, unlike a plain local path."""
        return Path(self.bare.git_dir).as_uri()

    def head(self):
        return self.bare.commit("main")

    def files(self) -> list[str]:
        return sorted(b.name for b in self.head().tree.blobs)

    def read(self, name: str) -> str:
        return self.bare.git.show(f"main:{name}", strip_newline_in_stdout=False)


@pytest.fixture
def remote(tmp_path):
    bare_path = tmp_path / "black-angel.git"
    bare = Repo.init(bare_path, bare=True)
    seed = Repo.init(tmp_path / "seed")
    commit_files(seed, {"README.md": "cluster specs\n"}, "Initial commit")
    seed.git.branch("-M", "main")
    seed.create_remote("origin", str(bare_path))
    seed.git.push("origin", "main")
    return SyncRemote(url=str(bare_path), bare=bare, seed=seed)


@pytest.fixture
def options(remote):
    return SyncOptions(
        repo=SyncRepoRef(url=remote.url, branch="main").resolve(),
        name="kubesync",
        author_email="kubesync@example.com",
    )


# --- Fake Kubernetes API ---


def not_found() -> NotFoundError:
    return NotFoundError(ApiException(status=404, reason="Not Found"))


@dataclass
class FakeResource:
    api_version: str
    kind: str
    namespaced: bool


class FakeResources:
    def get(self, api_version: str, kind: str) -> FakeResource:
        return FakeResource(api_version, kind, kind not in CLUSTER_SCOPED)


class FakeDynamicClient:
    """Stores objects in a dict keyed by identity and records every call.

    ``failures[op]`` is a list of exceptions raised, one per call, by the
    next calls of ``op`` (get, create, patch or delete).
    """

    def __init__(self):
        self.resources = FakeResources()
        self.objects: dict[tuple, dict] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, list[Exception]] = {}
        self._version = 0

    def add(self, obj: dict) -> None:
        metadata = obj["metadata"]
        ns = None if obj["kind"] in CLUSTER_SCOPED else metadata.get("namespace") or "default"
        self.objects[(obj["apiVersion"], obj["kind"], ns, metadata["name"])] = copy.deepcopy(obj)

    def has(self, api_version, kind, namespace, name) -> bool:
        return (api_version, kind, namespace, name) in self.objects

    def _fail(self, op: str) -> None:
        pending = self.failures.get(op)
        if pending:
            raise pending.pop(0)

    def _key(self, resource, name, namespace):
        return (resource.api_version, resource.kind, namespace, name)

    def get(self, resource, name=None, namespace=None):
        self.calls.append(("get", resource.kind, namespace, name))
        self._fail("get")
        key = self._key(resource, name, namespace)
        if key not in self.objects:
            raise not_found()
        return copy.deepcopy(self.objects[key])

    def create(self, resource, body=None, namespace=None):
        name = body["metadata"]["name"]
        self.calls.append(("create", resource.kind, namespace, name))
        self._fail("create")
        self._version += 1
        obj = copy.deepcopy(body)
        obj["metadata"].update(resourceVersion=str(self._version), uid=f"uid-{self._version}")
        obj["status"] = {}
        self.objects[self._key(resource, name, namespace)] = obj
        return copy.deepcopy(obj)

    def patch(self, resource, body=None, name=None, namespace=None, content_type=None):
        self.calls.append(("patch", resource.kind, namespace, name, content_type))
        self._fail("patch")
        key = self._key(resource, name, namespace)
        if key not in self.objects:
            raise not_found()
        self._version += 1
        obj = self.objects[key]
        for k, v in body.items():
            if k != "metadata":
                obj[k] = copy.deepcopy(v)
        obj["metadata"].update(copy.deepcopy(body.get("metadata", {})))
        obj["metadata"]["resourceVersion"] = str(self._version)
        return copy.deepcopy(obj)

    def delete(self, resource, name=None, namespace=None):
        self.calls.append(("delete", resource.kind, namespace, name))
        self._fail("delete")
        key = self._key(resource, name, namespace)
        if key not in self.objects:
            raise not_found()
        return self.objects.pop(key)

    def ops(self, op: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == op]


@pytest.fixture
def client():
    return FakeDynamicClient()


@pytest.fixture
def applier(client):
    from kubesync.kubernetes.apply import ResourceApplier

    return ResourceApplier(client, attempts=3, wait=0)


@pytest.fixture
def commit():
    return commit_files


@pytest.fixture(autouse=True)
def propagate_logs():
    """Undo the CLI's rich handler so caplog sees kubesync records."""
    logger = logging.getLogger("kubesync")
    yield
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
