"""Cairn exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each failure category raises a specific error type for debuggability.
Partial upload failures are data, not exceptions, and have no class here.
"""

from __future__ import annotations


class CairnError(Exception):
    """Base exception for all Cairn failures."""


class CairnConfigError(CairnError):
    """Raised for invalid runtime configuration."""


class CairnValidationError(CairnError):
    """Raised when operation inputs violate a precondition."""


class CairnConflictError(CairnError):
    """Raised when a dataset name is already used by a live dataset."""


class CairnNotFoundError(CairnError):
    """Raised for unknown dataset ids or version strings."""


class CairnUploadError(CairnError):
    """Raised when strict mode rejects a batch with failed files."""


class CairnConcurrencyError(CairnError):
    """Raised when a dataset changed since the caller last read it."""


class CairnStoreError(CairnError):
    """Raised for content store and catalog persistence failures."""
