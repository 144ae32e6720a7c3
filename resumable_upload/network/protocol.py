"""Upload protocol message types and payload helpers"""

from enum import Enum
from typing import Any, Dict
import logging

from ..upload.errors import ProtocolError

logger = logging.getLogger(__name__)

# Protocol version
PROTOCOL_VERSION = "1.0.0"
MIN_COMPATIBLE_VERSION = "1.0.0"


class MessageType(Enum):
    """Protocol message types"""
    # Session lifecycle
    UPLOAD_INIT = 1
    UPLOAD_INIT_ACK = 2
    CHUNK_UPLOAD = 3
    CHUNK_ACK = 4
    UPLOAD_COMPLETE = 5
    UPLOAD_COMPLETE_ACK = 6

    # Queries
    PROGRESS_REQUEST = 10
    PROGRESS_RESPONSE = 11

    # Maintenance
    HEARTBEAT = 20
    ERROR = 21


def is_compatible(peer_version: str) -> bool:
    """Same major version and not older than MIN_COMPATIBLE_VERSION"""
    try:
        peer = tuple(int(p) for p in peer_version.split('.'))
        minimum = tuple(int(p) for p in MIN_COMPATIBLE_VERSION.split('.'))
    except (AttributeError, ValueError):
        return False
    return peer[0] == minimum[0] and peer >= minimum


def encode_chunk(data: bytes) -> str:
    return data.hex()


def decode_chunk(text: Any) -> bytes:
    if not isinstance(text, str):
        raise ProtocolError("Chunk data must be a hex string")
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise ProtocolError("Chunk data is not valid hex") from None


def require_field(payload: Dict[str, Any], name: str, kind: type):
    """Fetch a typed field from a request payload"""
    value = payload.get(name)
    # bool is an int subclass but never a valid size or index
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ProtocolError(
            f"Field '{name}' must be {kind.__name__}", {'field': name}
        )
    return value
