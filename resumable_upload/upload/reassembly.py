"""Ordered reassembly of completed sessions"""

import uuid
from pathlib import Path
import logging

import aiofiles
import aiofiles.os

from ..storage.adapter import StorageAdapter
from .errors import ChunkedUploadError, IncompleteUploadError, StorageError
from .session import SessionRegistry, SessionState, UploadSession
from .tempstore import TempChunkStore

logger = logging.getLogger(__name__)


def make_storage_key(file_name: str) -> str:
    """Unique storage key that keeps the client's base file name"""
    name = Path(file_name).name or "upload"
    return f"uploads/{uuid.uuid4()}-{name}"


class Reassembler:
    """Concatenates a session's chunks in index order and hands them to storage"""

    def __init__(self, registry: SessionRegistry, store: TempChunkStore,
                 storage: StorageAdapter):
        self.registry = registry
        self.store = store
        self.storage = storage

    async def complete(self, session_id: str) -> str:
        """
        Finish a session and return the storage URL.
        On any failure the session stays ACTIVE with its chunks intact,
        so complete can be called again.
        """
        async with self.registry.locked(session_id) as session:
            missing = session.missing_chunks()
            if missing:
                logger.info(f"Session {session_id} incomplete, missing {missing}")
                raise IncompleteUploadError(missing, {'session_id': session_id})

            session.state = SessionState.COMPLETING
            try:
                url = await self._assemble_and_store(session)
            except BaseException:
                session.state = SessionState.ACTIVE
                await self._remove_combined(session_id)
                raise

            await self.store.discard(session_id, range(session.total_chunks))
            self.registry.close(session)

        logger.info(f"✓ Completed session {session_id}: {session.file_name} -> {url}")
        return url

    async def _assemble_and_store(self, session: UploadSession) -> str:
        combined = self.store.combined_path(session.id)

        async with aiofiles.open(combined, 'wb') as out:
            for index in range(session.total_chunks):
                try:
                    data = await self.store.read_chunk(session.id, index)
                except FileNotFoundError:
                    # Recorded but gone from disk; the client has to resend it
                    session.received_chunks.discard(index)
                    logger.warning(f"Chunk {index} of {session.id} missing on disk")
                    raise IncompleteUploadError([index], {'session_id': session.id})
                await out.write(data)

        if session.storage_key is None:
            session.storage_key = make_storage_key(session.file_name)

        try:
            async with aiofiles.open(combined, 'rb') as stream:
                return await self.storage.upload(
                    session.storage_key, stream, session.mime_type
                )
        except ChunkedUploadError:
            raise
        except Exception as e:
            logger.error(f"Storage upload failed for {session.id}: {e}")
            raise StorageError(
                f"Failed to store upload: {e}",
                {'session_id': session.id, 'storage_key': session.storage_key}
            ) from e

    async def _remove_combined(self, session_id: str):
        try:
            await aiofiles.os.remove(self.store.combined_path(session_id))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove combined file for {session_id}: {e}")
