"""Resource applier — idempotent create-or-patch and delete of resource specs."""

from __future__ import annotations

import logging
from typing import Any

from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError

from kubesync.kubernetes.retry import DEFAULT_ATTEMPTS, DEFAULT_WAIT, log_retry
from kubesync.models.resource import ResourceIdentity

logger = logging.getLogger(__name__)

STRATEGIC_MERGE_PATCH = "application/strategic-merge-patch+json"
MERGE_PATCH = "application/merge-patch+json"

# API groups served by the core API server, which understand strategic
# merge patches; custom resources only accept JSON merge patches
BUILTIN_API_GROUPS = {
    "",
    "apps",
    "autoscaling",
    "batch",
    "coordination.k8s.io",
    "extensions",
    "networking.k8s.io",
    "policy",
    "rbac.authorization.k8s.io",
    "scheduling.k8s.io",
    "storage.k8s.io",
}


def patch_content_type(api_version: str) -> str:
    """Content type to use when patching a resource of *api_version*."""
    group = api_version.rpartition("/")[0]
    return STRATEGIC_MERGE_PATCH if group in BUILTIN_API_GROUPS else MERGE_PATCH


class ResourceApplier:
    """Applies resource specs to a cluster through a dynamic client.

    The patch content type travels with each patch call, so a single
    client can be shared without any per-call header state.
    """

    def __init__(
        self,
        client: DynamicClient,
        attempts: int = DEFAULT_ATTEMPTS,
        wait: float = DEFAULT_WAIT,
    ):
        self.client = client
        self.attempts = attempts
        self.wait = wait

    def apply(self, spec: dict[str, Any]) -> dict[str, Any]:
        """Create the resource if it does not exist, otherwise patch it.

        Returns:
            The created or patched object as returned by the API server.
        """
        resource, name, namespace = self._locate(spec)
        slug = _slug(spec)
        if self._read(resource, name, namespace, slug) is None:
            logger.debug("Creating %s", slug)
            created = self._call(
                lambda: self.client.create(resource, body=spec, namespace=namespace),
                f"create {slug}",
            )
            return _as_dict(created)
        logger.debug("%s exists, patching", slug)
        patched = self._call(
            lambda: self.client.patch(
                resource,
                body=spec,
                name=name,
                namespace=namespace,
                content_type=patch_content_type(spec["apiVersion"]),
            ),
            f"patch {slug}",
        )
        return _as_dict(patched)

    def delete(self, spec: dict[str, Any]) -> dict[str, Any] | None:
        """Delete the resource if it exists.

        Returns:
            The object as it was before deletion, or None if it did not exist.
        """
        resource, name, namespace = self._locate(spec)
        slug = _slug(spec)
        existing = self._read(resource, name, namespace, slug)
        if existing is None:
            logger.debug("%s does not exist, nothing to delete", slug)
            return None
        try:
            self._call(
                lambda: self.client.delete(resource, name=name, namespace=namespace),
                f"delete {slug}",
            )
        except NotFoundError:
            logger.debug("%s disappeared before it could be deleted", slug)
            return None
        return existing

    def read(self, spec: dict[str, Any]) -> dict[str, Any] | None:
        """Return the live object for *spec*'s identity, or None if absent."""
        resource, name, namespace = self._locate(spec)
        return self._read(resource, name, namespace, _slug(spec))

    def _read(self, resource, name: str, namespace: str | None, slug: str) -> dict[str, Any] | None:
        try:
            found = self._call(
                lambda: self.client.get(resource, name=name, namespace=namespace),
                f"read {slug}",
            )
        except NotFoundError:
            return None
        return _as_dict(found)

    def _locate(self, spec: dict[str, Any]):
        identity = ResourceIdentity.of(spec)
        if not (identity.api_version and identity.kind and identity.name):
            raise ValueError(f"Spec must have apiVersion, kind and metadata.name: {identity}")
        resource = self.client.resources.get(api_version=identity.api_version, kind=identity.kind)
        namespace = None
        if resource.namespaced:
            namespace = identity.namespace or "default"
        return resource, identity.name, namespace

    def _call(self, fn, description: str):
        return log_retry(fn, description, attempts=self.attempts, wait=self.wait)


def _slug(spec: dict[str, Any]) -> str:
    metadata = spec.get("metadata") or {}
    ns = f"{metadata['namespace']}/" if metadata.get("namespace") else ""
    return f"{spec.get('kind', 'resource')} {ns}{metadata.get('name', '')}"


def _as_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)
