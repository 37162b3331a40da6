"""Spec store — load, index and match the spec files of a sync repo."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from kubesync.errors import SpecParseError
from kubesync.models.resource import ResourceIdentity, SpecFile
from kubesync.utils.file_scanner import classify_spec, scan_spec_files

logger = logging.getLogger(__name__)


def parse_spec(content: str, path: str) -> dict[str, Any]:
    """Parse spec file *content*, as JSON or YAML according to *path*'s extension.

    Raises:
        SpecParseError: If the content is malformed or not a mapping.
    """
    fmt = classify_spec(path)
    if fmt is None:
        raise SpecParseError(path, "not a .json, .yaml or .yml file")
    try:
        if fmt == "json":
            spec = json.loads(content)
        else:
            spec = yaml.safe_load(content)
    except (ValueError, yaml.YAMLError) as e:
        raise SpecParseError(path, str(e)) from e
    if not isinstance(spec, dict):
        raise SpecParseError(path, f"expected a mapping, got {type(spec).__name__}")
    return spec


def parse_spec_file(path: Path) -> dict[str, Any]:
    """Read and parse a spec file from disk."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SpecParseError(str(path), str(e)) from e
    return parse_spec(content, path.name)


def index_specs(root: Path) -> list[SpecFile]:
    """Load every root-level spec file under *root*.

    A file that fails to parse is logged and left out of the index so
    that one malformed file does not block syncing the rest.
    """
    specs = []
    for path in scan_spec_files(root):
        try:
            specs.append(SpecFile(path=path, spec=parse_spec_file(path)))
        except SpecParseError as e:
            logger.warning("Failed to process sync repo spec %s, ignoring: %s", path.name, e.reason)
    return specs


def resource_identity(resource: dict[str, Any]) -> ResourceIdentity:
    return ResourceIdentity.of(resource)


def match_spec(resource: dict[str, Any], specs: list[SpecFile]) -> SpecFile | None:
    """Return the first spec file whose resource identity equals *resource*'s.

    The apiVersion, kind, name and namespace must all be equal; an absent
    namespace only matches an absent namespace.
    """
    identity = resource_identity(resource)
    for spec_file in specs:
        if spec_file.identity == identity:
            return spec_file
    return None
