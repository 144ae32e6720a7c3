"""In-process storage backend, used by the benchmark and tests"""

from dataclasses import dataclass
from typing import Dict, Optional

from .adapter import COPY_BUFFER_SIZE, AsyncReader


@dataclass
class StoredObject:
    data: bytes
    mime_type: str


class InMemoryStorageAdapter:
    """Keeps uploaded objects in a dict keyed by storage key"""

    def __init__(self, url_prefix: str = "memory://"):
        self.url_prefix = url_prefix
        self.objects: Dict[str, StoredObject] = {}

    async def upload(self, key: str, stream: AsyncReader, mime_type: str) -> str:
        parts = []
        while True:
            block = await stream.read(COPY_BUFFER_SIZE)
            if not block:
                break
            parts.append(block)

        self.objects[key] = StoredObject(data=b''.join(parts), mime_type=mime_type)
        return f"{self.url_prefix}{key}"

    def get(self, key: str) -> Optional[bytes]:
        stored = self.objects.get(key)
        return stored.data if stored else None
