"""Server-side chunked upload service"""

from typing import Optional
import logging

from ..storage.adapter import StorageAdapter
from .config import UploadConfig
from .ingest import ChunkIngestor
from .reassembly import Reassembler
from .session import SessionProgress, SessionRegistry
from .sweeper import CleanupSweeper
from .tempstore import TempChunkStore

logger = logging.getLogger(__name__)


class ChunkedUploadService:
    """
    Session engine behind the init/chunk/complete/progress operations.
    Owns the registry; the sweeper only runs between start() and stop().
    """

    def __init__(self, storage: StorageAdapter, config: Optional[UploadConfig] = None):
        self.config = config or UploadConfig()
        self.storage = storage

        self.registry = SessionRegistry(self.config.chunk_size)
        self.store = TempChunkStore(self.config.temp_dir)
        self.ingestor = ChunkIngestor(
            self.registry, self.store,
            max_file_size=self.config.max_file_size,
            max_chunk_size=self.config.max_chunk_size
        )
        self.reassembler = Reassembler(self.registry, self.store, storage)
        self.sweeper = CleanupSweeper(
            self.registry, self.store, interval=self.config.cleanup_interval
        )

    def init_upload(self, file_name: str, total_size: int, mime_type: str) -> str:
        return self.ingestor.init_session(file_name, total_size, mime_type).id

    async def upload_chunk(self, session_id: str, chunk_index: int, data: bytes,
                           checksum: Optional[str] = None) -> bool:
        return await self.ingestor.ingest(session_id, chunk_index, data, checksum)

    async def complete_upload(self, session_id: str) -> str:
        return await self.reassembler.complete(session_id)

    def get_progress(self, session_id: str) -> Optional[SessionProgress]:
        return self.registry.progress(session_id)

    def total_chunks(self, session_id: str) -> int:
        return self.registry.require(session_id).total_chunks

    def start(self):
        self.sweeper.start()

    async def stop(self):
        await self.sweeper.stop()
