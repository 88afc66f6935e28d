"""Storage Module

Record persistence shared by the clustering engine and the stage coordinator.
"""

from .backend import StorageBackend, StorageError
from .local_storage import LocalStorage

__all__ = ['StorageBackend', 'StorageError', 'LocalStorage']
