"""Sync configuration — typed options resolved once at startup.

Options are read from a YAML file and may be overridden by ``KUBESYNC_*``
environment variables, so secrets such as the repository token and the
secret cipher passphrase never have to be written to disk::

    repo:
      url: https://github.com/acme/cluster-specs
      branch: main
    secret_key: correct horse battery staple
    interval: 600
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import yaml

from kubesync.errors import ConfigurationError

DEFAULT_BRANCH = "main"
DEFAULT_NAME = "kubesync"

ENV_PREFIX = "KUBESYNC_"

# Known SCM hosts, mapped to provider type
PROVIDER_HOSTS = {
    "github.com": "github_com",
    "gitlab.com": "gitlab_com",
    "bitbucket.org": "bitbucket_org",
}

_SCP_URL = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/].*)$")


@dataclass
class SyncRepoRef:
    """Reference to the repository holding the cluster spec files."""

    url: str
    branch: str = DEFAULT_BRANCH
    owner: str = ""
    repo: str = ""
    provider_type: str = ""

    @property
    def is_resolved(self) -> bool:
        """True when the reference points at a concrete remote branch."""
        return bool(self.url and self.owner and self.repo and self.branch and self.provider_type)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    def resolve(self) -> "SyncRepoRef":
        """Fill in owner, repo and provider type from the URL."""
        if not self.url:
            raise ConfigurationError("Sync repo has no URL")
        host, path = _split_url(self.url)
        parts = [p for p in path.strip("/").split("/") if p]
        if len(parts) < 2:
            raise ConfigurationError(f"Cannot determine owner/repo from sync repo URL: {self.url}")
        repo_name = parts[-1]
        if repo_name.endswith(".git"):
            repo_name = repo_name[: -len(".git")]
        self.owner = self.owner or parts[-2]
        self.repo = self.repo or repo_name
        self.provider_type = self.provider_type or PROVIDER_HOSTS.get(host, "generic" if host else "local")
        self.branch = self.branch or DEFAULT_BRANCH
        return self


def _split_url(url: str) -> tuple[str, str]:
    """Return ``(host, path)`` for HTTP(S), SSH, scp-style and local URLs."""
    if "://" in url:
        parsed = urlparse(url)
        return (parsed.hostname or "").lower(), parsed.path
    match = _SCP_URL.match(url)
    if match and not Path(url).exists():
        return match.group("host").lower(), match.group("path")
    return "", url


@dataclass
class SyncOptions:
    """Everything the sync engine needs, validated at the boundary."""

    repo: SyncRepoRef | None = None
    credentials: str = ""
    """Token used for HTTPS access to the sync repo; empty for anonymous or SSH access."""

    secret_key: str = ""
    """Passphrase for the secret cipher.  Empty means secrets are stored in clear."""

    interval: int = 0
    """Seconds between periodic full syncs; 0 disables the periodic trigger."""

    name: str = DEFAULT_NAME
    """Identity of this sync engine, embedded in generated commit messages."""

    author_name: str = DEFAULT_NAME
    author_email: str = "kubesync@localhost"
    clone_depth: int = 20

    @property
    def enabled(self) -> bool:
        return self.repo is not None and bool(self.repo.url)

    def resolve(self) -> "SyncOptions":
        """Resolve the repo reference and validate; returns ``self``."""
        if self.repo is not None:
            self.repo.resolve()
        self.validate()
        return self

    def validate(self) -> None:
        """Raise ConfigurationError if the options cannot drive a sync."""
        if self.repo is None:
            raise ConfigurationError("No sync repo configured")
        if not self.repo.is_resolved:
            raise ConfigurationError(
                f"Sync repo reference was not resolved to a remote repository: {self.repo.url!r}"
            )
        if self.interval < 0:
            raise ConfigurationError(f"Sync interval must not be negative: {self.interval}")
        if self.clone_depth < 1:
            raise ConfigurationError(f"Clone depth must be positive: {self.clone_depth}")
        if not self.name:
            raise ConfigurationError("Sync engine name must not be empty")


def load_options(path: str | Path | None = None, environ: dict[str, str] | None = None) -> SyncOptions:
    """Load sync options from a YAML file plus environment overrides.

    Args:
        path: YAML file to read.  ``None`` reads only the environment.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        Resolved and validated ``SyncOptions``.

    Raises:
        ConfigurationError: If the file is malformed or options are incomplete.
    """
    env = os.environ if environ is None else environ
    data: dict = {}
    if path is not None:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read sync options from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Sync options in {path} must be a mapping")

    repo_data = data.get("repo") or {}
    if isinstance(repo_data, str):
        repo_data = {"url": repo_data}

    repo_url = env.get(f"{ENV_PREFIX}REPO", repo_data.get("url", ""))
    repo = None
    if repo_url:
        repo = SyncRepoRef(
            url=repo_url,
            branch=env.get(f"{ENV_PREFIX}BRANCH", repo_data.get("branch") or DEFAULT_BRANCH),
            owner=repo_data.get("owner", ""),
            repo=repo_data.get("repo", ""),
            provider_type=repo_data.get("provider_type", ""),
        )

    try:
        interval = int(env.get(f"{ENV_PREFIX}INTERVAL", data.get("interval", 0)) or 0)
        clone_depth = int(data.get("clone_depth", 20))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric sync option: {e}") from e

    options = SyncOptions(
        repo=repo,
        credentials=env.get(f"{ENV_PREFIX}TOKEN", data.get("credentials", "")),
        secret_key=env.get(f"{ENV_PREFIX}SECRET_KEY", data.get("secret_key", "")),
        interval=interval,
        name=data.get("name", DEFAULT_NAME),
        author_name=data.get("author_name", DEFAULT_NAME),
        author_email=data.get("author_email", "kubesync@localhost"),
        clone_depth=clone_depth,
    )
    return options.resolve()
