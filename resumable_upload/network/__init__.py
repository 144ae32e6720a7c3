from .protocol import MessageType, PROTOCOL_VERSION, encode_chunk, decode_chunk
from .transport import MessageTransport
from .chunks import ChunkProducer, Chunk, ChunkInfo, calculate_total_chunks

__all__ = [
    'MessageType',
    'PROTOCOL_VERSION',
    'encode_chunk',
    'decode_chunk',
    'MessageTransport',
    'ChunkProducer',
    'Chunk',
    'ChunkInfo',
    'calculate_total_chunks'
]
