"""
Storage Backend Interface

Key/value persistence used by the clustering engine and the stage coordinator.
Records are JSON-compatible dicts addressed by slash-separated paths.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


Record = Dict[str, Any]


class StorageError(Exception):
    """Raised when a backend cannot complete a read or write."""


class StorageBackend(ABC):
    """Record store with plain and conditional (atomic) writes."""

    @abstractmethod
    def write(self, path: str, record: Record) -> None:
        """Write a record, replacing any existing one."""

    @abstractmethod
    def read(self, path: str) -> Optional[Record]:
        """Read a record; an absent path yields None."""

    @abstractmethod
    def list(self, prefix: str) -> List[str]:
        """List record paths under a prefix, sorted."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a record; deleting an absent path is a no-op."""

    @abstractmethod
    def create(self, path: str, record: Record) -> bool:
        """Atomically write a record only if the path is absent."""

    @abstractmethod
    def compare_and_swap(self, path: str, expected: Record, record: Record) -> bool:
        """Atomically replace the record only if it currently equals `expected`."""

    @abstractmethod
    def compare_and_delete(self, path: str, expected: Record) -> bool:
        """Atomically delete the record only if it currently equals `expected`."""
