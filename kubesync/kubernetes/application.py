"""Composite applications — the set of resources deployed for one app.

Resources are upserted in priority order (namespace, RBAC, service,
secrets, workload, ingress) and deleted in a fixed order that removes
traffic and workloads before the things they depend on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from kubesync.errors import ApplicationDeleteError, ApplyError
from kubesync.kubernetes.apply import ResourceApplier
from kubesync.sync.naming import priority_sort_key

logger = logging.getLogger(__name__)


@dataclass
class KubernetesApplication:
    """An application deployed to a namespace."""

    name: str
    ns: str
    port: int | None = None
    path: str = ""
    """Ingress path; no ingress is managed without it."""

    host: str = ""
    secrets: list[str] = field(default_factory=list)
    """Names of the Secrets belonging to the application."""

    service_account: str = ""
    """Service account name, defaults to the application name."""

    @property
    def ingress_enabled(self) -> bool:
        return bool(self.port and self.path)


def app_name(app: KubernetesApplication) -> str:
    return f"{app.ns}/{app.name}"


def upsert_application(
    app: KubernetesApplication,
    resources: list[dict[str, Any]],
    applier: ResourceApplier,
) -> list[dict[str, Any]]:
    """Create or patch all *resources* of *app*, in dependency order.

    An Ingress is skipped entirely when the application has no port or
    path.  The first failure aborts the upsert, since later resources
    depend on earlier ones.

    Returns:
        The objects returned by the API server, in apply order.
    """
    slug = app_name(app)
    applied = []
    for spec in sorted(resources, key=priority_sort_key):
        if spec.get("kind") == "Ingress" and not app.ingress_enabled:
            logger.debug("Port or path not provided, will not upsert ingress %s", slug)
            continue
        try:
            applied.append(applier.apply(spec))
        except Exception as e:
            name = (spec.get("metadata") or {}).get("name", "")
            msg = f"Failed to upsert {spec.get('kind')} '{name}' of application {slug}: {e}"
            logger.error(msg)
            raise ApplyError(msg) from e
    return applied


def delete_application(app: KubernetesApplication, applier: ResourceApplier) -> list[dict[str, Any]]:
    """Delete every resource of *app* that exists.

    Each group of resources is attempted even if an earlier group failed.

    Returns:
        The deleted objects.

    Raises:
        ApplicationDeleteError: After all groups were attempted, if any failed.
    """
    slug = app_name(app)
    deleted: list[dict[str, Any]] = []
    errors: list[Exception] = []
    for label, specs in _delete_plan(app):
        try:
            for spec in specs:
                obj = applier.delete(spec)
                if obj is not None:
                    deleted.append(obj)
        except Exception as e:
            errors.append(ApplyError(f"Failed to delete {label} of {slug}: {e}"))
    if errors:
        err = ApplicationDeleteError(f"Failed to delete application '{slug}'", errors)
        logger.error(str(err))
        raise err
    return deleted


def _delete_plan(app: KubernetesApplication) -> list[tuple[str, list[dict[str, Any]]]]:
    sa = app.service_account or app.name
    plan = []
    if app.ingress_enabled:
        plan.append(("ingress", [_ref("networking.k8s.io/v1", "Ingress", app.ns, app.name)]))
    else:
        logger.debug("Port or path not provided, will not delete ingress %s", app_name(app))
    plan.extend([
        ("deployment", [_ref("apps/v1", "Deployment", app.ns, app.name)]),
        ("secrets", [_ref("v1", "Secret", app.ns, s) for s in app.secrets]),
        ("service", [_ref("v1", "Service", app.ns, app.name)]),
        ("RBAC resources", [
            _ref("rbac.authorization.k8s.io/v1", "RoleBinding", app.ns, app.name),
            _ref("rbac.authorization.k8s.io/v1", "Role", app.ns, app.name),
            _ref("v1", "ServiceAccount", app.ns, sa),
        ]),
    ])
    return plan


def _ref(api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any]:
    return {"apiVersion": api_version, "kind": kind, "metadata": {"name": name, "namespace": namespace}}
