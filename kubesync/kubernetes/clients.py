"""Kubernetes API clients used to create/update/delete resources."""

from __future__ import annotations

import logging

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient

from kubesync.errors import ConfigurationError

logger = logging.getLogger(__name__)


def load_kube_config(context: str | None = None) -> client.ApiClient:
    """Build an API client from the in-cluster service account or a kubeconfig.

    In-cluster configuration wins when kubesync runs inside a pod; a
    kubeconfig (optionally a specific *context*) is used otherwise.

    Raises:
        ConfigurationError: If neither configuration can be loaded.
    """
    configuration = client.Configuration()
    if context is None:
        try:
            config.load_incluster_config(client_configuration=configuration)
            logger.debug("Using in-cluster Kubernetes configuration")
            return client.ApiClient(configuration)
        except ConfigException:
            pass
    try:
        config.load_kube_config(context=context, client_configuration=configuration)
    except (ConfigException, FileNotFoundError) as e:
        raise ConfigurationError(f"Failed to load Kubernetes configuration: {e}") from e
    logger.debug("Using kubeconfig context %s", context or "(current)")
    return client.ApiClient(configuration)


def make_dynamic_client(context: str | None = None) -> DynamicClient:
    """Create a discovery-backed client able to handle any resource kind."""
    return DynamicClient(load_kube_config(context))
