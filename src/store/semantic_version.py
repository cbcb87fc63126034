"""Semantic version parsing and bump policy.

This module maps structural change descriptors onto major/minor/patch
bumps so every mutation moves a dataset version strictly forward.
"""

from __future__ import annotations

import re

from core.errors import CairnValidationError
from core.types import VersionChanges

VersionTuple = tuple[int, int, int]

_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)", re.ASCII)


def parse_version(version: str) -> VersionTuple:
    """Parse a ``major.minor.patch`` string.

    Args:
        version: Version string.

    Returns:
        Parsed version tuple.

    Raises:
        CairnValidationError: If the string is not three non-negative integers.
    """
    match = _VERSION_PATTERN.fullmatch(version)
    if match is None:
        raise CairnValidationError(
            f"Invalid version format: '{version}'. Expected major.minor.patch, e.g. 1.0.0."
        )
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


def format_version(version: VersionTuple) -> str:
    """Render a version tuple as ``major.minor.patch``."""
    return f"{version[0]}.{version[1]}.{version[2]}"


def bump_version(current: VersionTuple, changes: VersionChanges) -> VersionTuple:
    """Compute the next version from a change descriptor.

    Removals are breaking and bump major; additions bump minor; anything
    else, including no detected change at all, bumps patch.

    Args:
        current: Current version tuple.
        changes: Structural change descriptor.

    Returns:
        Next version tuple, strictly greater than ``current``.
    """
    major, minor, patch = current
    if changes.files_removed:
        return major + 1, 0, 0
    if changes.files_added:
        return major, minor + 1, 0
    return major, minor, patch + 1


def next_version(current: str, changes: VersionChanges) -> str:
    """Return the bumped version string for a change descriptor."""
    return format_version(bump_version(parse_version(current), changes))
