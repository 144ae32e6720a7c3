"""Chunked upload client"""

import asyncio
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
import logging

from ..network.chunks import Chunk, ChunkProducer, calculate_total_chunks
from ..network.protocol import MessageType, encode_chunk
from ..network.transport import MessageTransport, frame_size_for
from ..upload.errors import (
    ChunkedUploadError,
    IncompleteUploadError,
    ProtocolError,
    StorageError,
    error_from_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


@dataclass
class InitResponse:
    session_id: str
    total_chunks: int
    chunk_size: int


@dataclass
class UploadProgress:
    uploaded_chunks: int
    total_chunks: int
    percentage: float


@dataclass
class UploadResult:
    url: str
    file_name: str
    size: int


class UploadClient:
    """
    Drives one upload at a time: init, sequential chunk uploads with bounded
    retry, then complete. Chunks are sent strictly in index order over a
    single connection.
    """

    def __init__(self, host: str, port: int,
                 max_retries: int = DEFAULT_MAX_RETRIES,
                 timeout: Optional[float] = None,
                 send_checksums: bool = True,
                 on_progress: Optional[Callable[[float], None]] = None,
                 on_complete: Optional[Callable[[str], None]] = None,
                 on_error: Optional[Callable[[Exception], None]] = None):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.host = host
        self.port = port
        self.max_retries = max_retries
        self.timeout = timeout
        self.send_checksums = send_checksums
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_error = on_error

        self.transport = MessageTransport()
        self._seq = 0
        self._lock = asyncio.Lock()

    async def connect(self):
        """Connect to server"""
        logger.info(f"Connecting to {self.host}:{self.port}")
        reader, writer = await asyncio.open_connection(self.host, self.port)
        self.transport.set_stream(reader, writer)

    async def close(self):
        await self.transport.close()

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _request(self, msg_type: MessageType, payload: dict,
                       expected: MessageType) -> dict:
        """Send one request and wait for its response"""
        async with self._lock:
            if not self.transport.connected:
                await self.connect()

            self._seq += 1
            seq = self._seq
            try:
                await self.transport.send_message(msg_type, payload, seq=seq)
                response = self.transport.recv_message()
                if self.timeout is not None:
                    response = asyncio.wait_for(response, self.timeout)
                resp_type, resp_seq, resp_payload = await response
            except BaseException:
                # The stream may hold a half-read frame; start fresh next time
                await self.transport.close()
                raise

        if resp_type == MessageType.ERROR:
            raise error_from_payload(resp_payload)
        if resp_type != expected or resp_seq != seq:
            await self.transport.close()
            raise ProtocolError(
                f"Expected {expected.name} #{seq}, got {resp_type.name} #{resp_seq}"
            )
        return resp_payload

    async def init_upload(self, file_name: str, total_size: int,
                          mime_type: str) -> InitResponse:
        payload = await self._request(
            MessageType.UPLOAD_INIT,
            {'file_name': file_name, 'total_size': total_size, 'mime_type': mime_type},
            MessageType.UPLOAD_INIT_ACK
        )
        return InitResponse(
            session_id=payload['session_id'],
            total_chunks=payload['total_chunks'],
            chunk_size=payload['chunk_size']
        )

    async def upload_chunk(self, session_id: str, chunk: Chunk) -> bool:
        request = {
            'session_id': session_id,
            'chunk_index': chunk.index,
            'data': encode_chunk(chunk.data)
        }
        if self.send_checksums:
            request['checksum'] = chunk.checksum

        payload = await self._request(
            MessageType.CHUNK_UPLOAD, request, MessageType.CHUNK_ACK
        )
        return bool(payload.get('success'))

    async def complete_upload(self, session_id: str) -> str:
        payload = await self._request(
            MessageType.UPLOAD_COMPLETE, {'session_id': session_id},
            MessageType.UPLOAD_COMPLETE_ACK
        )
        return payload['url']

    async def get_progress(self, session_id: str) -> Optional[UploadProgress]:
        """Server-side completeness of a session, None if it is unknown"""
        payload = await self._request(
            MessageType.PROGRESS_REQUEST, {'session_id': session_id},
            MessageType.PROGRESS_RESPONSE
        )
        if not payload:
            return None

        return UploadProgress(
            uploaded_chunks=payload['uploaded_chunks'],
            total_chunks=payload['total_chunks'],
            percentage=payload['percentage']
        )

    async def heartbeat(self):
        await self._request(MessageType.HEARTBEAT, {}, MessageType.HEARTBEAT)

    async def _upload_chunk_with_retry(self, session_id: str, chunk: Chunk):
        for attempt in range(1, self.max_retries + 1):
            try:
                if not await self.upload_chunk(session_id, chunk):
                    raise ChunkedUploadError(f"Server did not accept chunk {chunk.index}")
                return
            except Exception as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"Chunk {chunk.index} failed after {attempt} attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"Chunk {chunk.index} attempt {attempt}/{self.max_retries} failed: {e}"
                )

    async def _complete_with_retry(self, session_id: str,
                                   producer: ChunkProducer) -> str:
        """
        Call complete, resending chunks the server reports missing and
        retrying storage failures, for at most max_retries attempts.
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self.complete_upload(session_id)
            except IncompleteUploadError as e:
                if attempt >= self.max_retries:
                    raise
                logger.warning(f"Server is missing chunks {e.missing}, resending")
                missing = set(e.missing)
                for chunk in producer:
                    if chunk.index in missing:
                        await self._upload_chunk_with_retry(session_id, chunk)
            except StorageError as e:
                if attempt >= self.max_retries:
                    raise
                logger.warning(f"Complete attempt {attempt}/{self.max_retries} failed: {e}")

    def _report_progress(self, completed: int, total: int):
        if self.on_progress is not None:
            self.on_progress(completed / total * 100)

    async def upload_file(self, path: Path) -> UploadResult:
        """Upload one file and return its storage URL"""
        path = Path(path)

        try:
            result = await self._upload(path)
        except Exception as e:
            if self.on_error is not None:
                self.on_error(e)
            raise

        if self.on_complete is not None:
            self.on_complete(result.url)
        return result

    async def _upload(self, path: Path) -> UploadResult:
        size = path.stat().st_size
        mime_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'

        init = await self.init_upload(path.name, size, mime_type)
        logger.info(
            f"Session {init.session_id}: uploading {path.name} "
            f"({size} bytes, {init.total_chunks} chunks)"
        )

        expected = calculate_total_chunks(size, init.chunk_size)
        if expected != init.total_chunks:
            raise ProtocolError(
                f"Server expects {init.total_chunks} chunks, client computed {expected}"
            )

        # Chunk frames grow with the server's chunk size
        self.transport.max_frame_size = max(
            self.transport.max_frame_size, frame_size_for(init.chunk_size)
        )

        with open(path, 'rb') as f:
            producer = ChunkProducer(f, init.chunk_size)

            completed = 0
            for chunk in producer:
                await self._upload_chunk_with_retry(init.session_id, chunk)
                completed += 1
                self._report_progress(completed, init.total_chunks)

            url = await self._complete_with_retry(init.session_id, producer)

        logger.info(f"✓ Uploaded {path.name} -> {url}")
        return UploadResult(url=url, file_name=path.name, size=size)
