"""Git operations — clone, inspect and update the sync repo working copy."""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator
from urllib.parse import quote, urlparse, urlunparse

from git import Actor, Commit, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from kubesync.errors import RepositoryError

logger = logging.getLogger(__name__)

# Well-known SHA of the empty tree, used as the "parent" of a root commit
EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


@dataclass
class WorkingCopy:
    """A checked-out sync repo, owned by a single sync cycle.

    Use as a context manager to ensure temp clones are cleaned up::

        with clone_working_copy(url, "main") as wc:
            specs = index_specs(wc.local_path)
        # temp clone is deleted here
    """

    repo: Repo
    branch: str
    source_url: str = ""
    """Original URL if the repo was cloned, empty for local repos."""

    is_temp_clone: bool = False
    """True when the working tree is a temporary clone that should be cleaned up."""

    def __enter__(self) -> "WorkingCopy":
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    @property
    def local_path(self) -> Path:
        return Path(self.repo.working_tree_dir)

    def cleanup(self) -> None:
        """Remove the temporary clone directory, if applicable."""
        path = self.local_path
        self.repo.close()
        if self.is_temp_clone and path.exists():
            shutil.rmtree(path, ignore_errors=True)

    # ------------------------------------------------------------------
    # Reading history
    # ------------------------------------------------------------------

    @property
    def is_shallow(self) -> bool:
        return (Path(self.repo.git_dir) / "shallow").exists()

    def shallow_boundary(self) -> set[str]:
        """Grafted commits whose parents were cut off by the clone depth."""
        shallow = Path(self.repo.git_dir) / "shallow"
        if not shallow.exists():
            return set()
        return {line.strip() for line in shallow.read_text().splitlines() if line.strip()}

    def is_grafted(self, sha: str) -> bool:
        return sha in self.shallow_boundary()

    def has_commit(self, sha: str) -> bool:
        try:
            self.repo.git.cat_file("-e", f"{sha}^{{commit}}")
        except GitCommandError:
            return False
        return True

    def deepen(self, depth: int) -> bool:
        """Fetch *depth* more commits of history into a shallow clone.

        Returns:
            False if the fetch failed or brought in no new history.
        """
        before = self.shallow_boundary()
        try:
            self.repo.git.fetch(f"--deepen={depth}")
        except GitCommandError as e:
            logger.warning("Failed to deepen shallow clone, proceeding anyway: %s", (e.stderr or "").strip())
            return False
        logger.debug("Deepened shallow clone by %d commits", depth)
        return self.shallow_boundary() != before

    def parent_of(self, sha: str) -> str | None:
        """Return the first parent of *sha*, or None for a (grafted) root commit."""
        shas = self.repo.git.rev_list("--parents", "-n", "1", sha).split()
        return shas[1] if len(shas) > 1 else None

    def diff_name_status(self, parent: str, sha: str) -> str:
        """Raw ``--name-status -z`` output of the changes from *parent* to *sha*."""
        return self.repo.git.diff(parent, sha, "--name-status", "-z", "--no-renames")

    def show(self, sha: str, path: str) -> str:
        """Content of *path* as of commit *sha*."""
        return self.repo.git.show(f"{sha}:{path}", strip_newline_in_stdout=False)

    def iter_commits(self, max_count: int | None = None) -> Iterator[Commit]:
        """Commits reachable from HEAD, newest first."""
        return self.repo.iter_commits("HEAD", max_count=max_count)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def is_clean(self) -> bool:
        return not self.repo.is_dirty(untracked_files=True)

    def commit(self, message: str, author: Actor) -> str:
        """Stage every change in the working tree and commit it."""
        self.repo.git.add(A=True)
        commit = self.repo.index.commit(message, author=author, committer=author)
        return commit.hexsha

    def push(self) -> None:
        self.repo.git.push("origin", f"HEAD:refs/heads/{self.branch}")


def clone_working_copy(url: str, branch: str, token: str = "", depth: int | None = None) -> WorkingCopy:
    """Clone *branch* of *url* into a temporary directory.

    Raises:
        RepositoryError: If the clone fails.  The message never contains *token*.
    """
    clone_dir = Path(tempfile.mkdtemp(prefix="kubesync_"))
    kwargs = {"branch": branch}
    if depth:
        kwargs["depth"] = depth
    try:
        repo = Repo.clone_from(_authenticated_url(url, token), clone_dir, **kwargs)
    except GitCommandError as e:
        shutil.rmtree(clone_dir, ignore_errors=True)
        stderr = (e.stderr or "").replace(token, "***") if token else (e.stderr or "")
        raise RepositoryError(f"Failed to clone {url} ({branch}): {stderr.strip()}") from None
    return WorkingCopy(repo=repo, branch=branch, source_url=url, is_temp_clone=True)


def open_working_copy(path: str | Path, branch: str | None = None) -> WorkingCopy:
    """Wrap an existing local checkout.  It is never deleted on cleanup."""
    try:
        repo = Repo(path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        raise RepositoryError(f"Not a Git working copy: {path}") from None
    if repo.bare:
        raise RepositoryError(f"Repository has no working tree: {path}")
    if branch is None:
        branch = "HEAD" if repo.head.is_detached else repo.active_branch.name
    return WorkingCopy(repo=repo, branch=branch, source_url=_get_remote_url(repo))


def _authenticated_url(url: str, token: str) -> str:
    """Embed *token* in an HTTP(S) URL; other URLs are returned unchanged."""
    if not token:
        return url
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return url
    netloc = f"x-access-token:{quote(token, safe='')}@{parsed.hostname}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def _get_remote_url(repo: Repo) -> str:
    """Return the origin remote URL, or empty string."""
    if repo.remotes:
        return repo.remotes[0].url
    return ""
