"""File scanner — discover spec files in a sync repo working copy."""

from pathlib import Path, PurePosixPath

# File extensions we treat as spec files, mapped to their format
SPEC_FORMATS = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
}


def scan_spec_files(repo_path: Path) -> list[Path]:
    """Return the spec files at the root of a working copy, sorted by name.

    Subdirectories are never descended into: the sync repo layout is flat.
    """
    files = []
    for item in Path(repo_path).iterdir():
        if item.is_file() and item.suffix in SPEC_FORMATS:
            files.append(item)
    return sorted(files, key=lambda p: p.name)


def is_spec_path(path: str) -> bool:
    """Check if a repo-relative path names a root-level spec file."""
    pure = PurePosixPath(path)
    return len(pure.parts) == 1 and pure.suffix in SPEC_FORMATS


def classify_spec(path: Path | str) -> str | None:
    """Return ``"json"`` or ``"yaml"`` for a spec path, or None if unknown."""
    return SPEC_FORMATS.get(PurePosixPath(str(path)).suffix)
