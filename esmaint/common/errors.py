"""Error types raised by the index maintenance services."""
from __future__ import annotations


class MaintenanceError(Exception):
    """Base class for failures the sweep loop knows how to absorb."""


class StoreConnectionError(MaintenanceError, ConnectionError):
    """The search cluster could not be reached."""


class EnumerationError(MaintenanceError):
    """Listing indices failed; the current sweep cannot continue."""


class DeletionError(MaintenanceError):
    """A single index could not be deleted."""

    def __init__(self, index: str, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"Failed to delete index {index}: {reason}")


class ConfigurationError(MaintenanceError):
    """Settings could not be parsed or validated."""


__all__ = [
    "MaintenanceError",
    "StoreConnectionError",
    "EnumerationError",
    "DeletionError",
    "ConfigurationError",
]
