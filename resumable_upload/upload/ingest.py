"""Chunk ingestion: validation and persistence of incoming chunks"""

import hashlib
from typing import Optional
import logging

from .errors import (
    ChecksumMismatchError,
    ChunkTooLargeError,
    FileSizeExceededError,
    InvalidChunkIndexError,
    InvalidRequestError,
)
from .session import SessionRegistry, UploadSession
from .tempstore import TempChunkStore

logger = logging.getLogger(__name__)


class ChunkIngestor:
    """Creates sessions and stores their chunks"""

    def __init__(self, registry: SessionRegistry, store: TempChunkStore,
                 max_file_size: int, max_chunk_size: int):
        self.registry = registry
        self.store = store
        self.max_file_size = max_file_size
        self.max_chunk_size = max_chunk_size

    def init_session(self, file_name: str, total_size: int,
                     mime_type: str) -> UploadSession:
        """Validate declared size and register a new session"""
        if total_size < 0:
            raise InvalidRequestError(f"Invalid file size {total_size}")

        if total_size > self.max_file_size:
            raise FileSizeExceededError(
                f"File size {total_size} exceeds maximum allowed size {self.max_file_size}",
                {'total_size': total_size, 'max_file_size': self.max_file_size}
            )

        session = self.registry.create(file_name, total_size, mime_type)
        logger.info(
            f"Initialized session {session.id} for {file_name} "
            f"({total_size} bytes, {session.total_chunks} chunks)"
        )
        return session

    async def ingest(self, session_id: str, index: int, data: bytes,
                     checksum: Optional[str] = None) -> bool:
        """
        Persist one chunk and record its index.
        Every policy check runs before the session is touched.
        """
        session = self.registry.require(session_id)

        if len(data) > self.max_chunk_size:
            raise ChunkTooLargeError(
                f"Chunk size {len(data)} exceeds maximum allowed size {self.max_chunk_size}",
                {'chunk_size': len(data), 'max_chunk_size': self.max_chunk_size}
            )

        if not 0 <= index < session.total_chunks:
            raise InvalidChunkIndexError(
                f"Chunk index {index} out of range [0, {session.total_chunks})",
                {'chunk_index': index, 'total_chunks': session.total_chunks}
            )

        if checksum is not None:
            actual = hashlib.sha256(data).hexdigest()
            if actual.lower() != checksum.lower():
                raise ChecksumMismatchError(
                    f"Checksum mismatch for chunk {index}",
                    {'chunk_index': index, 'expected': checksum, 'actual': actual}
                )

        async with self.registry.locked(session_id) as session:
            await self.store.write_chunk(session_id, index, data)

            if index in session.received_chunks:
                logger.debug(f"Chunk {index} of {session_id} delivered again, overwritten")
            session.received_chunks.add(index)
            session.touch()

        logger.debug(
            f"Stored chunk {index} for {session_id} "
            f"({len(session.received_chunks)}/{session.total_chunks})"
        )
        return True
