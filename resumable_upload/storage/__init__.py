from .adapter import StorageAdapter, create_storage_adapter, register_backend
from .local import LocalStorageAdapter
from .memory import InMemoryStorageAdapter

register_backend('local', LocalStorageAdapter)
register_backend('memory', InMemoryStorageAdapter)

__all__ = [
    'StorageAdapter',
    'create_storage_adapter',
    'register_backend',
    'LocalStorageAdapter',
    'InMemoryStorageAdapter'
]
