"""Deterministic spec file names.

A spec file is named ``NN_namespace_name_kind`` (or ``NN_name_kind`` for
cluster-scoped resources), where ``NN`` is a two-digit priority derived
from the resource kind.  Sorting a directory listing lexically therefore
yields an order in which resources can be applied from scratch: namespaces
first, then storage, RBAC, services, config, workloads, and finally
ingresses and autoscalers.
"""

from __future__ import annotations

import re
from typing import Any

DEFAULT_PRIORITY = "50"

RESOURCE_PRIORITY = {
    "Namespace": "10",
    "CustomResourceDefinition": "15",
    "PersistentVolume": "15",
    "StorageClass": "15",
    "ServiceAccount": "20",
    "ClusterRole": "25",
    "Role": "25",
    "ClusterRoleBinding": "30",
    "RoleBinding": "30",
    "LimitRange": "40",
    "NetworkPolicy": "40",
    "PersistentVolumeClaim": "40",
    "PodSecurityPolicy": "40",
    "ResourceQuota": "40",
    "Service": "50",
    "ConfigMap": "60",
    "Secret": "60",
    "CronJob": "70",
    "DaemonSet": "70",
    "Deployment": "70",
    "Job": "70",
    "Pod": "70",
    "ReplicaSet": "70",
    "StatefulSet": "70",
    "HorizontalPodAutoscaler": "80",
    "Ingress": "80",
    "PodDisruptionBudget": "80",
}

_CASE_BOUNDARY = re.compile(r"([a-z])([A-Z])")


def kind_priority(kind: str) -> str:
    """Two-digit ordering class of a resource kind."""
    return RESOURCE_PRIORITY.get(kind, DEFAULT_PRIORITY)


def kebab_kind(kind: str) -> str:
    """``PersistentVolumeClaim`` -> ``persistent-volume-claim``."""
    return _CASE_BOUNDARY.sub(r"\1-\2", kind).lower()


def spec_file_basename(resource: dict[str, Any]) -> str:
    """Create the base file name (no extension) for *resource*'s spec file."""
    kind = resource.get("kind", "")
    metadata = resource.get("metadata") or {}
    parts = [kind_priority(kind)]
    if metadata.get("namespace"):
        parts.append(metadata["namespace"])
    parts.append(metadata.get("name", ""))
    parts.append(kebab_kind(kind))
    return "_".join(parts)


def priority_sort_key(resource: dict[str, Any]) -> str:
    """Sort key that orders resources the way their spec files sort."""
    return spec_file_basename(resource)
