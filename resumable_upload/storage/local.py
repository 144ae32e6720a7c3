"""Local filesystem storage backend"""

from pathlib import Path
import logging

import aiofiles
import aiofiles.os

from .adapter import COPY_BUFFER_SIZE, AsyncReader

logger = logging.getLogger(__name__)


class LocalStorageAdapter:
    """Writes uploads below upload_dir and serves them from base_url"""

    def __init__(self, upload_dir: Path, base_url: str = "/uploads"):
        self.upload_dir = Path(upload_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip('/')

    def _target(self, key: str) -> Path:
        target = (self.upload_dir / key).resolve()
        if self.upload_dir not in target.parents:
            raise ValueError(f"Storage key escapes upload directory: {key}")
        return target

    async def upload(self, key: str, stream: AsyncReader, mime_type: str) -> str:
        target = self._target(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")

        written = 0
        try:
            async with aiofiles.open(partial, 'wb') as out:
                while True:
                    block = await stream.read(COPY_BUFFER_SIZE)
                    if not block:
                        break
                    await out.write(block)
                    written += len(block)
            await aiofiles.os.replace(partial, target)
        except Exception:
            if partial.exists():
                partial.unlink()
            raise

        logger.info(f"Stored {key} ({written} bytes, {mime_type})")
        return f"{self.base_url}/{key}".replace('\\', '/')
