"""kubesync — bidirectional GitOps sync between a Git repo and a Kubernetes cluster."""

__version__ = "0.1.0"
