"""Exceptions for kubesync."""

from __future__ import annotations


class KubesyncError(Exception):
    """Base class for all kubesync errors."""


class ConfigurationError(KubesyncError):
    """Raised when the sync configuration is missing or unresolved.

    Configuration errors are fatal: they are raised before any file or
    cluster mutation happens.
    """


class SpecParseError(KubesyncError):
    """Raised when a spec file cannot be parsed into a resource mapping."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to parse spec file '{path}': {reason}")


class SyncError(KubesyncError):
    """Aggregate failure raised after every item of a batch was attempted."""

    def __init__(self, summary: str, errors: list[Exception]):
        self.summary = summary
        self.errors = list(errors)
        messages = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{summary} ({len(self.errors)} failed): {messages}")

    @property
    def count(self) -> int:
        return len(self.errors)


class ApplicationDeleteError(SyncError):
    """Raised when one or more resource kinds of an application failed to delete."""


class CommitPushError(KubesyncError):
    """Raised when committing or pushing the sync repository fails."""


class RepositoryError(KubesyncError):
    """Raised when the sync repository cannot be cloned or opened."""


class ApplyError(KubesyncError):
    """Raised when a single resource could not be applied or deleted."""
