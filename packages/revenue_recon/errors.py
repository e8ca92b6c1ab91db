"""Exception taxonomy for the reconciliation engine.

Three families matter to callers:

- input-format problems (``FeedFormatError``): the operator fixes the export
  and uploads again;
- storage problems (``StorageError``): transient, the same call may be retried;
- missing pending runs (``PendingReconciliationNotFound``): not retryable, the
  feeds must be uploaded again.

``retryable`` is carried on every error so outer layers can pick guidance
without matching on concrete classes.
"""

from __future__ import annotations


class ReconError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class FeedFormatError(ReconError, ValueError):
    """An input feed is empty, headerless, or lacks required columns."""


class StorageError(ReconError):
    """The durable store could not complete an operation."""

    retryable = True


class PendingReconciliationNotFound(ReconError, LookupError):
    """A pending reconciliation does not exist (anymore)."""

    def __init__(self, pending_id: str) -> None:
        super().__init__(
            f"pending reconciliation {pending_id!r} not found; upload the feeds again"
        )
        self.pending_id = pending_id


class RuleSetError(ReconError, ValueError):
    """A category ruleset failed validation."""


__all__ = [
    "ReconError",
    "FeedFormatError",
    "StorageError",
    "PendingReconciliationNotFound",
    "RuleSetError",
]
