from __future__ import annotations


class RecsysError(Exception):
    """Base class for every error raised by the recsys core."""


class DatasetError(RecsysError):
    """Missing table/column, failed or timed-out dataset query."""


class StorageError(RecsysError):
    """Malformed vector or failed write/read against the embedding store."""


class NotFound(RecsysError):
    """Unknown model id, or no embedding stored for a (model_id, item_id) key."""


class ConflictError(RecsysError):
    """Training already in progress, or an illegal model status transition."""


class NoInteractions(RecsysError):
    """The user has no usable interaction history to build a user vector from."""


class ConfigError(RecsysError):
    """Invalid model config string."""


class TrainingCancelled(RecsysError):
    """A training run observed its cancellation signal between item writes."""


__all__ = [
    "RecsysError",
    "DatasetError",
    "StorageError",
    "NotFound",
    "ConflictError",
    "NoInteractions",
    "ConfigError",
    "TrainingCancelled",
]
