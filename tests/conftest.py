"""Pytest configuration and fixtures"""

import pytest
import tempfile
import shutil
from pathlib import Path

from resumable_upload.storage import InMemoryStorageAdapter
from resumable_upload.upload.config import UploadConfig
from resumable_upload.upload.service import ChunkedUploadService

KB = 1024


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def upload_config(temp_dir):
    """Small limits: 1KB chunks, 10KB files"""
    return UploadConfig(
        max_file_size=10 * KB,
        chunk_size=KB,
        max_chunk_size=KB,
        temp_dir=temp_dir / "chunks",
        cleanup_interval=3600,
        max_retries=3
    )


@pytest.fixture
def memory_storage():
    return InMemoryStorageAdapter()


@pytest.fixture
def service(memory_storage, upload_config):
    return ChunkedUploadService(memory_storage, upload_config)
