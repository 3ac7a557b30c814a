from __future__ import annotations


class BackendError(RuntimeError):
    """Base class for storage backend failures surfaced to callers."""


class BackendUnavailableError(BackendError):
    """The persisted backend cannot be reached or lacks a required capability."""


class BackendTimeoutError(BackendError):
    """A persisted-backend query was interrupted after its deadline."""
