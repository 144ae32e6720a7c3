"""Test message framing and payload helpers"""

import asyncio
import json
import struct

import pytest

from resumable_upload.network.protocol import (
    MessageType,
    PROTOCOL_VERSION,
    decode_chunk,
    encode_chunk,
    is_compatible,
    require_field,
)
from resumable_upload.network.transport import (
    DEFAULT_MAX_FRAME_SIZE,
    MessageTransport,
    frame_size_for,
)
from resumable_upload.upload.errors import (
    ChunkedUploadError,
    IncompleteUploadError,
    ProtocolError,
    SessionNotFoundError,
    StorageError,
    error_from_payload,
)


def frame(message) -> bytes:
    body = json.dumps(message).encode('utf-8')
    return struct.pack('!I', len(body)) + body


def reader_with(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestPayloadHelpers:
    """Test protocol helpers"""

    @pytest.mark.parametrize("version,expected", [
        (PROTOCOL_VERSION, True),
        ("1.4.2", True),
        ("0.9.0", False),
        ("2.0.0", False),
        ("garbage", False),
        (None, False),
    ])
    def test_is_compatible(self, version, expected):
        assert is_compatible(version) is expected

    def test_chunk_hex_encoding(self):
        data = bytes(range(256))
        assert decode_chunk(encode_chunk(data)) == data

    @pytest.mark.parametrize("text", ["zz", 123, None])
    def test_decode_rejects_bad_data(self, text):
        with pytest.raises(ProtocolError):
            decode_chunk(text)

    def test_require_field(self):
        assert require_field({'total_size': 10}, 'total_size', int) == 10

        with pytest.raises(ProtocolError):
            require_field({}, 'total_size', int)
        with pytest.raises(ProtocolError):
            require_field({'total_size': "10"}, 'total_size', int)
        with pytest.raises(ProtocolError):
            require_field({'total_size': True}, 'total_size', int)


class TestErrorPayloads:
    """Test error reconstruction from ERROR frames"""

    def test_session_not_found(self):
        error = error_from_payload(SessionNotFoundError("abc").to_payload())
        assert isinstance(error, SessionNotFoundError)
        assert error.session_id == "abc"

    def test_incomplete_keeps_missing(self):
        error = error_from_payload(IncompleteUploadError([2, 0]).to_payload())
        assert isinstance(error, IncompleteUploadError)
        assert error.missing == [0, 2]

    def test_known_code(self):
        error = error_from_payload(StorageError("down", {'key': 'k'}).to_payload())
        assert isinstance(error, StorageError)
        assert error.details == {'key': 'k'}

    def test_unknown_code(self):
        error = error_from_payload({'code': 'mystery', 'message': 'huh'})
        assert type(error) is ChunkedUploadError
        assert str(error) == "huh"


class TestMessageTransport:
    """Test framed message receive"""

    @pytest.mark.asyncio
    async def test_receive_message(self):
        transport = MessageTransport()
        transport.set_stream(reader_with(frame({
            'version': PROTOCOL_VERSION,
            'type': MessageType.CHUNK_ACK.value,
            'seq': 7,
            'payload': {'success': True}
        })), None)

        msg_type, seq, payload = await transport.recv_message()

        assert msg_type == MessageType.CHUNK_ACK
        assert seq == 7
        assert payload == {'success': True}

    @pytest.mark.asyncio
    async def test_oversized_frame_rejected(self):
        transport = MessageTransport(max_frame_size=16)
        transport.set_stream(reader_with(struct.pack('!I', 17) + b"x" * 17), None)

        with pytest.raises(ProtocolError):
            await transport.recv_message()

    @pytest.mark.asyncio
    async def test_incompatible_version_rejected(self):
        transport = MessageTransport()
        transport.set_stream(reader_with(frame({
            'version': "9.0.0", 'type': MessageType.HEARTBEAT.value, 'payload': {}
        })), None)

        with pytest.raises(ProtocolError):
            await transport.recv_message()

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self):
        transport = MessageTransport()
        transport.set_stream(reader_with(frame({
            'version': PROTOCOL_VERSION, 'type': 999, 'payload': {}
        })), None)

        with pytest.raises(ProtocolError):
            await transport.recv_message()

    @pytest.mark.asyncio
    async def test_truncated_frame(self):
        transport = MessageTransport()
        transport.set_stream(reader_with(struct.pack('!I', 100) + b"short"), None)

        with pytest.raises(asyncio.IncompleteReadError):
            await transport.recv_message()

    @pytest.mark.asyncio
    async def test_send_without_stream(self):
        with pytest.raises(ValueError):
            await MessageTransport().send_message(MessageType.HEARTBEAT, {})


class TestFrameSize:
    """Test frame limits derived from chunk size"""

    def test_small_chunks_keep_default(self):
        assert frame_size_for(5 * 1024 * 1024) == DEFAULT_MAX_FRAME_SIZE

    def test_large_chunks_fit_hex_encoding(self):
        chunk_size = 9 * 1024 * 1024
        assert frame_size_for(chunk_size) > 2 * chunk_size
