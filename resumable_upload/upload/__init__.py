from .config import UploadConfig, LocalStorageConfig, load_config
from .errors import (
    ChunkedUploadError,
    FileSizeExceededError,
    ChunkTooLargeError,
    InvalidChunkIndexError,
    ChecksumMismatchError,
    InvalidRequestError,
    SessionNotFoundError,
    IncompleteUploadError,
    StorageError,
    ProtocolError,
)
from .session import UploadSession, SessionState, SessionProgress, SessionRegistry
from .service import ChunkedUploadService

__all__ = [
    'UploadConfig',
    'LocalStorageConfig',
    'load_config',
    'ChunkedUploadError',
    'FileSizeExceededError',
    'ChunkTooLargeError',
    'InvalidChunkIndexError',
    'ChecksumMismatchError',
    'InvalidRequestError',
    'SessionNotFoundError',
    'IncompleteUploadError',
    'StorageError',
    'ProtocolError',
    'UploadSession',
    'SessionState',
    'SessionProgress',
    'SessionRegistry',
    'ChunkedUploadService'
]
