"""Length-prefixed JSON message transport"""

import asyncio
import struct
import json
from typing import Optional, Tuple
import logging

from ..upload.errors import ProtocolError
from .protocol import MessageType, PROTOCOL_VERSION, is_compatible

logger = logging.getLogger(__name__)

# Large enough for a hex-encoded 5MB chunk plus envelope
DEFAULT_MAX_FRAME_SIZE = 16 * 1024 * 1024

# Room for the JSON envelope, session id and checksum around the chunk
ENVELOPE_HEADROOM = 64 * 1024


def frame_size_for(chunk_size: int) -> int:
    """Smallest frame limit that carries a hex-encoded chunk of chunk_size bytes"""
    return max(DEFAULT_MAX_FRAME_SIZE, 2 * chunk_size + ENVELOPE_HEADROOM)


class MessageTransport:
    """Frames protocol messages over an asyncio stream pair"""

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE):
        self.max_frame_size = max_frame_size
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

    def set_stream(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Set network stream"""
        self.reader = reader
        self.writer = writer

    @property
    def connected(self) -> bool:
        return self.writer is not None and not self.writer.is_closing()

    async def send_message(self, msg_type: MessageType, payload: dict, seq: int = 0):
        """Send one framed message"""
        if not self.writer:
            raise ValueError("No writer stream set")

        message = {
            'version': PROTOCOL_VERSION,
            'type': msg_type.value,
            'seq': seq,
            'payload': payload
        }
        msg_bytes = json.dumps(message).encode('utf-8')

        if len(msg_bytes) > self.max_frame_size:
            raise ProtocolError(
                f"Message of {len(msg_bytes)} bytes exceeds frame limit {self.max_frame_size}"
            )

        try:
            length_prefix = struct.pack('!I', len(msg_bytes))
            self.writer.write(length_prefix + msg_bytes)
            await self.writer.drain()
        except Exception as e:
            logger.error(f"Error sending message: {e}")
            raise

    async def recv_message(self) -> Tuple[MessageType, int, dict]:
        """Receive one framed message as (type, seq, payload)"""
        if not self.reader:
            raise ValueError("No reader stream set")

        length_bytes = await self.reader.readexactly(4)
        msg_length = struct.unpack('!I', length_bytes)[0]

        if msg_length > self.max_frame_size:
            raise ProtocolError(
                f"Incoming frame of {msg_length} bytes exceeds limit {self.max_frame_size}"
            )

        msg_bytes = await self.reader.readexactly(msg_length)

        try:
            message = json.loads(msg_bytes.decode('utf-8'))
            msg_type = MessageType(message['type'])
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed message: {e}") from e

        version = message.get('version', '')
        if not is_compatible(version):
            raise ProtocolError(
                f"Incompatible protocol version {version!r} (ours: {PROTOCOL_VERSION})"
            )

        payload = message.get('payload') or {}
        if not isinstance(payload, dict):
            raise ProtocolError("Message payload must be an object")

        return msg_type, message.get('seq', 0), payload

    async def close(self):
        if self.writer is None:
            return
        writer, self.writer, self.reader = self.writer, None, None
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass
