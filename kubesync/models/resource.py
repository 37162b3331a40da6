"""Core data structures shared by the forward and reverse sync paths."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any


class ChangeKind(str, Enum):
    """What forward sync does with a spec file touched by a commit."""

    APPLY = "apply"
    DELETE = "delete"


class SyncAction(str, Enum):
    """What happened to a batch of resources in the cluster."""

    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(frozen=True)
class ResourceIdentity:
    """The ``(apiVersion, kind, namespace, name)`` join key.

    ``namespace`` is ``None`` for cluster-scoped resources and for specs
    that omit it; ``None`` and ``""`` are different identities.
    """

    api_version: str | None
    kind: str | None
    namespace: str | None
    name: str | None

    @classmethod
    def of(cls, obj: dict[str, Any]) -> "ResourceIdentity":
        metadata = obj.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}
        return cls(
            api_version=obj.get("apiVersion"),
            kind=obj.get("kind"),
            namespace=metadata.get("namespace"),
            name=metadata.get("name"),
        )

    def __str__(self) -> str:
        scope = f"{self.namespace}/" if self.namespace else ""
        return f"{self.api_version} {self.kind} {scope}{self.name}"


@dataclass(frozen=True)
class ChangeRecord:
    """A single spec file change introduced by a commit."""

    sha: str
    change: ChangeKind
    path: str


@dataclass
class SpecFile:
    """A spec file in the sync repo working copy and its parsed content."""

    path: Path
    spec: dict[str, Any]

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity.of(self.spec)

    @property
    def is_yaml(self) -> bool:
        return self.path.suffix in (".yaml", ".yml")
