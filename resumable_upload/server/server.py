"""Chunked upload TCP server"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional, Tuple
import logging

from ..network.protocol import MessageType, decode_chunk, require_field
from ..network.transport import MessageTransport, frame_size_for
from ..upload.errors import ChunkedUploadError, InternalServerError, ProtocolError
from ..upload.service import ChunkedUploadService

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Awaitable[dict]]


class UploadServer:
    """Serves init/chunk/complete/progress requests for a ChunkedUploadService"""

    def __init__(self, host: str, port: int, service: ChunkedUploadService):
        self.host = host
        self.port = port
        self.service = service
        self._server: Optional[asyncio.AbstractServer] = None

        self._handlers: Dict[MessageType, Tuple[Handler, MessageType]] = {
            MessageType.UPLOAD_INIT: (self._handle_init, MessageType.UPLOAD_INIT_ACK),
            MessageType.CHUNK_UPLOAD: (self._handle_chunk, MessageType.CHUNK_ACK),
            MessageType.UPLOAD_COMPLETE: (self._handle_complete, MessageType.UPLOAD_COMPLETE_ACK),
            MessageType.PROGRESS_REQUEST: (self._handle_progress, MessageType.PROGRESS_RESPONSE),
            MessageType.HEARTBEAT: (self._handle_heartbeat, MessageType.HEARTBEAT),
        }

    async def handle_client(self, reader: asyncio.StreamReader,
                            writer: asyncio.StreamWriter):
        """Handle client connection"""
        addr = writer.get_extra_info('peername')
        logger.info(f"New connection from {addr}")

        transport = MessageTransport(
            max_frame_size=frame_size_for(self.service.config.max_chunk_size)
        )
        transport.set_stream(reader, writer)

        try:
            while True:
                try:
                    msg_type, seq, payload = await transport.recv_message()
                except ProtocolError as e:
                    # Framing is no longer trustworthy; report and hang up
                    logger.warning(f"Protocol error from {addr}: {e}")
                    await transport.send_message(MessageType.ERROR, e.to_payload())
                    break

                response_type, response = await self._dispatch(msg_type, payload)
                await transport.send_message(response_type, response, seq=seq)

        except asyncio.IncompleteReadError:
            logger.info(f"Client {addr} disconnected")
        except ConnectionError as e:
            logger.info(f"Connection to {addr} lost: {e}")
        except Exception as e:
            logger.error(f"Error handling client {addr}: {e}", exc_info=True)
        finally:
            await transport.close()

    async def _dispatch(self, msg_type: MessageType, payload: dict) -> Tuple[MessageType, dict]:
        entry = self._handlers.get(msg_type)
        if entry is None:
            error = ProtocolError(f"Unexpected message type {msg_type.name}")
            return MessageType.ERROR, error.to_payload()

        handler, response_type = entry
        try:
            return response_type, await handler(payload)
        except ChunkedUploadError as e:
            logger.debug(f"{msg_type.name} rejected: {e.code}: {e}")
            return MessageType.ERROR, e.to_payload()
        except Exception as e:
            logger.error(f"Unhandled error in {msg_type.name}: {e}", exc_info=True)
            return MessageType.ERROR, InternalServerError(str(e)).to_payload()

    async def _handle_init(self, payload: dict) -> dict:
        file_name = require_field(payload, 'file_name', str)
        total_size = require_field(payload, 'total_size', int)
        mime_type = payload.get('mime_type') or 'application/octet-stream'

        session_id = self.service.init_upload(file_name, total_size, mime_type)
        return {
            'session_id': session_id,
            'total_chunks': self.service.total_chunks(session_id),
            'chunk_size': self.service.config.chunk_size
        }

    async def _handle_chunk(self, payload: dict) -> dict:
        session_id = require_field(payload, 'session_id', str)
        chunk_index = require_field(payload, 'chunk_index', int)
        data = decode_chunk(payload.get('data'))
        checksum = payload.get('checksum')

        success = await self.service.upload_chunk(session_id, chunk_index, data, checksum)
        return {'success': success, 'chunk_index': chunk_index}

    async def _handle_complete(self, payload: dict) -> dict:
        session_id = require_field(payload, 'session_id', str)
        url = await self.service.complete_upload(session_id)
        return {'url': url}

    async def _handle_progress(self, payload: dict) -> dict:
        session_id = require_field(payload, 'session_id', str)
        progress = self.service.get_progress(session_id)
        if progress is None:
            return {}
        return {
            'uploaded_chunks': progress.uploaded_chunks,
            'total_chunks': progress.total_chunks,
            'percentage': progress.percentage
        }

    async def _handle_heartbeat(self, payload: dict) -> dict:
        return {}

    async def start(self) -> asyncio.AbstractServer:
        """Bind the listening socket and start the cleanup sweeper"""
        self._server = await asyncio.start_server(
            self.handle_client, self.host, self.port
        )
        self.port = self._server.sockets[0].getsockname()[1]
        self.service.start()

        addr = self._server.sockets[0].getsockname()
        logger.info(f"Upload server listening on {addr}")
        return self._server

    async def stop(self):
        await self.service.stop()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        logger.info("Upload server stopped")

    async def run(self):
        """Start server"""
        server = await self.start()
        try:
            async with server:
                await server.serve_forever()
        finally:
            await self.stop()
