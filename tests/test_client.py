"""Test the upload client's retry, progress and callback handling"""

import pytest

from resumable_upload.client.client import InitResponse, UploadClient
from resumable_upload.upload.errors import IncompleteUploadError, StorageError

KB = 1024


@pytest.fixture
def sample_file(temp_dir):
    path = temp_dir / "sample.txt"
    path.write_bytes(b"0123456789" * 500)  # 5000 bytes -> 5 chunks of 1KB
    return path


class FakeServer:
    """Stands in for the wire: records chunk sends and scripts failures"""

    def __init__(self, client: UploadClient, chunk_size: int = KB):
        self.chunk_size = chunk_size
        self.sent = []
        self.failures = {}
        self.complete_calls = 0
        self.complete_errors = []

        client.init_upload = self.init_upload
        client.upload_chunk = self.upload_chunk
        client.complete_upload = self.complete_upload

    async def init_upload(self, file_name, total_size, mime_type):
        total = max(1, -(-total_size // self.chunk_size))
        return InitResponse(session_id="sess-1", total_chunks=total, chunk_size=self.chunk_size)

    async def upload_chunk(self, session_id, chunk):
        self.sent.append(chunk.index)
        if self.failures.get(chunk.index, 0) > 0:
            self.failures[chunk.index] -= 1
            raise ConnectionError(f"dropped chunk {chunk.index}")
        return True

    async def complete_upload(self, session_id):
        self.complete_calls += 1
        if self.complete_errors:
            raise self.complete_errors.pop(0)
        return "memory://uploads/sess-1-sample.txt"


class TestUploadFile:
    """Test the full client upload flow against a scripted server"""

    @pytest.mark.asyncio
    async def test_transient_failures_recovered(self, sample_file):
        """Two failures then success is invisible to the caller"""
        errors = []
        client = UploadClient("127.0.0.1", 0, max_retries=3, on_error=errors.append)
        server = FakeServer(client)
        server.failures[2] = 2

        result = await client.upload_file(sample_file)

        assert result.url.endswith("sample.txt")
        assert result.size == 5000
        assert server.sent == [0, 1, 2, 2, 2, 3, 4]
        assert errors == []

    @pytest.mark.asyncio
    async def test_exhausted_retries_abort(self, sample_file):
        """Third failure of one chunk aborts, later chunks are never sent"""
        errors = []
        completed = []
        client = UploadClient(
            "127.0.0.1", 0, max_retries=3,
            on_error=errors.append, on_complete=completed.append
        )
        server = FakeServer(client)
        server.failures[1] = 3

        with pytest.raises(ConnectionError):
            await client.upload_file(sample_file)

        assert server.sent == [0, 1, 1, 1]
        assert server.complete_calls == 0
        assert len(errors) == 1
        assert isinstance(errors[0], ConnectionError)
        assert completed == []

    @pytest.mark.asyncio
    async def test_progress_monotonic_to_100(self, sample_file):
        reports = []
        client = UploadClient("127.0.0.1", 0, on_progress=reports.append)
        server = FakeServer(client)
        server.failures[3] = 1

        await client.upload_file(sample_file)

        assert reports == [20.0, 40.0, 60.0, 80.0, 100.0]
        assert reports == sorted(reports)

    @pytest.mark.asyncio
    async def test_on_complete_called_once(self, sample_file):
        completed = []
        errors = []
        client = UploadClient(
            "127.0.0.1", 0, on_complete=completed.append, on_error=errors.append
        )
        FakeServer(client)

        result = await client.upload_file(sample_file)

        assert completed == [result.url]
        assert errors == []

    @pytest.mark.asyncio
    async def test_chunks_sent_in_order(self, sample_file):
        client = UploadClient("127.0.0.1", 0)
        server = FakeServer(client)

        await client.upload_file(sample_file)

        assert server.sent == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_empty_file_sends_one_chunk(self, temp_dir):
        path = temp_dir / "empty.txt"
        path.write_bytes(b"")
        reports = []
        client = UploadClient("127.0.0.1", 0, on_progress=reports.append)
        server = FakeServer(client)

        await client.upload_file(path)

        assert server.sent == [0]
        assert reports == [100.0]

    @pytest.mark.asyncio
    async def test_missing_chunks_resent_before_complete(self, sample_file):
        client = UploadClient("127.0.0.1", 0)
        server = FakeServer(client)
        server.complete_errors.append(IncompleteUploadError([1, 3]))

        await client.upload_file(sample_file)

        assert server.sent == [0, 1, 2, 3, 4, 1, 3]
        assert server.complete_calls == 2

    @pytest.mark.asyncio
    async def test_storage_failure_retried(self, sample_file):
        client = UploadClient("127.0.0.1", 0)
        server = FakeServer(client)
        server.complete_errors.append(StorageError("bucket unavailable"))

        result = await client.upload_file(sample_file)

        assert result.url
        assert server.complete_calls == 2

    @pytest.mark.asyncio
    async def test_persistent_storage_failure_reported(self, sample_file):
        errors = []
        client = UploadClient("127.0.0.1", 0, max_retries=2, on_error=errors.append)
        server = FakeServer(client)
        server.complete_errors.extend([StorageError("down"), StorageError("still down")])

        with pytest.raises(StorageError):
            await client.upload_file(sample_file)

        assert server.complete_calls == 2
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_missing_file_reported(self, temp_dir):
        errors = []
        client = UploadClient("127.0.0.1", 0, on_error=errors.append)
        FakeServer(client)

        with pytest.raises(FileNotFoundError):
            await client.upload_file(temp_dir / "nope.bin")

        assert len(errors) == 1


class TestClientOptions:
    """Test constructor validation"""

    def test_rejects_zero_retries(self):
        with pytest.raises(ValueError):
            UploadClient("127.0.0.1", 0, max_retries=0)

    def test_defaults(self):
        client = UploadClient("127.0.0.1", 9000)
        assert client.max_retries == 3
        assert client.send_checksums is True
