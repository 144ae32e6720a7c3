"""Storage adapter capability and backend selection"""

from typing import Any, Callable, Dict, Protocol
import logging

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


class AsyncReader(Protocol):
    async def read(self, size: int = -1) -> bytes:
        ...


class StorageAdapter(Protocol):
    """
    Persists a reassembled upload and returns a retrievable URL.
    upload() must be safe to call again with the same key after a failure,
    and must raise without leaving a partial object behind.
    """

    async def upload(self, key: str, stream: AsyncReader, mime_type: str) -> str:
        ...


_BACKENDS: Dict[str, Callable[..., StorageAdapter]] = {}


def register_backend(name: str, factory: Callable[..., StorageAdapter]):
    _BACKENDS[name] = factory


def create_storage_adapter(backend: str, **options: Any) -> StorageAdapter:
    """Build the storage backend registered under name"""
    try:
        factory = _BACKENDS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown storage backend '{backend}' (available: {sorted(_BACKENDS)})"
        ) from None

    adapter = factory(**options)
    logger.info(f"Using {backend} storage backend")
    return adapter
