"""
Exception types raised inside the engine.

The updater and engine convert these into ``UpdateResult`` values at their
boundary; callers outside the engine never see them.
"""


class VaultTasksError(Exception):
    """Base class for all engine errors."""


class ValidationError(VaultTasksError, ValueError):
    """A proposed field value violates a constraint."""


class StaleTaskError(VaultTasksError):
    """The text at a task's line no longer matches what was parsed."""


class StoreError(VaultTasksError):
    """The document store failed to read or write."""
