"""Test idle session eviction"""

import asyncio
import time

import aiofiles.os
import pytest

from resumable_upload.upload.errors import SessionNotFoundError
from resumable_upload.upload.session import SessionState

KB = 1024


class TestCleanupSweeper:
    """Test the cleanup sweep"""

    @pytest.mark.asyncio
    async def test_stale_session_evicted(self, service):
        session_id = service.init_upload("stale.bin", 3 * KB, "application/octet-stream")
        await service.upload_chunk(session_id, 0, b"a")
        await service.upload_chunk(session_id, 2, b"c")
        session = service.registry.get(session_id)

        evicted = await service.sweeper.sweep(now=session.last_modified + 3601)

        assert evicted == [session_id]
        assert session.state is SessionState.CLOSED
        assert service.get_progress(session_id) is None
        assert list(service.store.temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_fresh_session_survives(self, service):
        session_id = service.init_upload("fresh.bin", KB, "application/octet-stream")
        await service.upload_chunk(session_id, 0, b"a")
        session = service.registry.get(session_id)

        assert await service.sweeper.sweep(now=session.last_modified + 3600) == []
        assert await service.sweeper.sweep() == []
        assert service.get_progress(session_id).uploaded_chunks == 1

    @pytest.mark.asyncio
    async def test_only_idle_sessions_evicted(self, service):
        old_id = service.init_upload("old.bin", KB, "text/plain")
        new_id = service.init_upload("new.bin", KB, "text/plain")
        service.registry.get(old_id).last_modified = time.time() - 7200

        assert await service.sweeper.sweep() == [old_id]
        assert old_id not in service.registry
        assert new_id in service.registry

    @pytest.mark.asyncio
    async def test_evicted_session_rejects_operations(self, service):
        session_id = service.init_upload("gone.bin", KB, "text/plain")
        service.registry.get(session_id).last_modified = 0.0

        await service.sweeper.sweep()

        with pytest.raises(SessionNotFoundError):
            await service.upload_chunk(session_id, 0, b"late")
        with pytest.raises(SessionNotFoundError):
            await service.complete_upload(session_id)

    @pytest.mark.asyncio
    async def test_deletion_errors_do_not_abort_sweep(self, service, monkeypatch):
        """A temp file that cannot be removed is logged and skipped"""
        session_id = service.init_upload("stuck.bin", KB, "text/plain")
        await service.upload_chunk(session_id, 0, b"a")
        service.registry.get(session_id).last_modified = 0.0

        async def failing_remove(path):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(aiofiles.os, "remove", failing_remove)

        assert await service.sweeper.sweep() == [session_id]
        assert session_id not in service.registry

    @pytest.mark.asyncio
    async def test_start_and_stop(self, temp_dir, memory_storage):
        from resumable_upload.upload.config import UploadConfig
        from resumable_upload.upload.service import ChunkedUploadService

        config = UploadConfig(temp_dir=temp_dir / "chunks", cleanup_interval=0.05)
        service = ChunkedUploadService(memory_storage, config)
        session_id = service.init_upload("idle.bin", KB, "text/plain")

        service.start()
        assert service.sweeper.running

        await asyncio.sleep(0.3)
        assert session_id not in service.registry

        await service.stop()
        assert not service.sweeper.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, service):
        await service.stop()
        assert not service.sweeper.running

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_temp_file(self, service, monkeypatch):
        session_id = service.init_upload("flaky.bin", 2 * KB, "text/plain")
        await service.upload_chunk(session_id, 0, b"a")

        async def failing_replace(src, dst):
            raise OSError("No space left on device")

        with monkeypatch.context() as patch:
            patch.setattr(aiofiles.os, "replace", failing_replace)
            with pytest.raises(OSError):
                await service.upload_chunk(session_id, 1, b"b")

        names = [p.name for p in service.store.temp_dir.iterdir()]
        assert names == [f"{session_id}_0"]
        assert service.get_progress(session_id).uploaded_chunks == 1

    @pytest.mark.asyncio
    async def test_eviction_removes_unrecorded_chunk_files(self, service):
        """Files at indices never recorded as received are reclaimed too"""
        session_id = service.init_upload("orphan.bin", 3 * KB, "text/plain")
        await service.upload_chunk(session_id, 0, b"a")
        service.store.chunk_path(session_id, 2).write_bytes(b"stray")
        partial = service.store.chunk_path(session_id, 1)
        partial.with_name(partial.name + ".part").write_bytes(b"half")
        service.registry.get(session_id).last_modified = 0.0

        assert await service.sweeper.sweep() == [session_id]
        assert list(service.store.temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_session_not_evicted_mid_update(self, service, monkeypatch):
        """A sweep that waits on an in-flight chunk sees the fresh timestamp"""
        session_id = service.init_upload("busy.bin", 2 * KB, "text/plain")
        session = service.registry.get(session_id)
        session.last_modified = 0.0

        write_started = asyncio.Event()
        release_write = asyncio.Event()
        real_write = service.store.write_chunk

        async def blocking_write(sid, index, data):
            write_started.set()
            await release_write.wait()
            await real_write(sid, index, data)

        monkeypatch.setattr(service.store, "write_chunk", blocking_write)

        ingest = asyncio.create_task(service.upload_chunk(session_id, 0, b"a"))
        await write_started.wait()

        sweep = asyncio.create_task(service.sweeper.sweep())
        await asyncio.sleep(0.01)
        assert not sweep.done()

        release_write.set()
        assert await ingest is True
        assert await sweep == []

        assert session.state is SessionState.ACTIVE
        assert service.get_progress(session_id).uploaded_chunks == 1
