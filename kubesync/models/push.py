"""Push events delivered by the SCM integration."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PushCommit:
    sha: str
    message: str = ""


@dataclass
class PushEvent:
    """A push to some repository, with its commits oldest first."""

    provider_type: str
    owner: str
    repo: str
    branch: str
    commits: list[PushCommit] = field(default_factory=list)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"
