"""On-disk temporary storage for received chunks"""

from pathlib import Path
from typing import Iterable
import logging

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


class TempChunkStore:
    """Keeps chunk bytes keyed by (session_id, index) until reassembly"""

    def __init__(self, temp_dir: Path):
        self.temp_dir = Path(temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def chunk_path(self, session_id: str, index: int) -> Path:
        return self.temp_dir / f"{session_id}_{index}"

    def combined_path(self, session_id: str) -> Path:
        return self.temp_dir / f"{session_id}_combined"

    async def write_chunk(self, session_id: str, index: int, data: bytes):
        """Store chunk bytes, replacing any earlier delivery atomically"""
        path = self.chunk_path(session_id, index)
        partial = path.with_name(path.name + ".part")

        try:
            async with aiofiles.open(partial, 'wb') as f:
                await f.write(data)
            await aiofiles.os.replace(partial, path)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

    async def read_chunk(self, session_id: str, index: int) -> bytes:
        async with aiofiles.open(self.chunk_path(session_id, index), 'rb') as f:
            return await f.read()

    async def discard(self, session_id: str, indices: Iterable[int]) -> int:
        """
        Best-effort removal of a session's chunk and combined files.
        Returns how many files were removed; failures are only logged.
        """
        paths = []
        for index in indices:
            path = self.chunk_path(session_id, index)
            paths.extend([path, path.with_name(path.name + ".part")])
        paths.append(self.combined_path(session_id))

        removed = 0
        for path in paths:
            try:
                await aiofiles.os.remove(path)
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Could not remove temp file {path}: {e}")
        return removed
