"""Kubernetes cluster access — applying and deleting resource specs."""
