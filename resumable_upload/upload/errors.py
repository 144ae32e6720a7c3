"""Upload error taxonomy shared by server and client"""

from typing import Dict, List, Optional, Type


class ChunkedUploadError(Exception):
    """Base class for every failure raised by the upload engine"""

    code = "upload_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict:
        """Serialize for an ERROR frame"""
        return {
            'code': self.code,
            'message': self.message,
            'details': self.details
        }


class FileSizeExceededError(ChunkedUploadError):
    code = "size_exceeded"


class ChunkTooLargeError(ChunkedUploadError):
    code = "chunk_too_large"


class InvalidChunkIndexError(ChunkedUploadError):
    code = "invalid_chunk_index"


class ChecksumMismatchError(ChunkedUploadError):
    code = "checksum_mismatch"


class InvalidRequestError(ChunkedUploadError):
    code = "invalid_request"


class SessionNotFoundError(ChunkedUploadError):
    code = "session_not_found"

    def __init__(self, session_id: str, details: Optional[dict] = None):
        details = dict(details or {}, session_id=session_id)
        super().__init__(f"Upload session not found: {session_id}", details)
        self.session_id = session_id


class IncompleteUploadError(ChunkedUploadError):
    """Raised by complete while chunk indices are still missing"""

    code = "incomplete_upload"

    def __init__(self, missing: List[int], details: Optional[dict] = None):
        missing = sorted(missing)
        details = dict(details or {}, missing=missing)
        super().__init__(
            f"Missing chunks: {', '.join(str(i) for i in missing)}", details
        )
        self.missing = missing


class StorageError(ChunkedUploadError):
    """Storage adapter rejected the assembled upload"""

    code = "storage_failed"


class ProtocolError(ChunkedUploadError):
    code = "protocol_error"


class InternalServerError(ChunkedUploadError):
    code = "internal_error"


_ERRORS_BY_CODE: Dict[str, Type[ChunkedUploadError]] = {
    cls.code: cls for cls in (
        FileSizeExceededError,
        ChunkTooLargeError,
        InvalidChunkIndexError,
        ChecksumMismatchError,
        InvalidRequestError,
        StorageError,
        ProtocolError,
        InternalServerError,
    )
}


def error_from_payload(payload: dict) -> ChunkedUploadError:
    """Rebuild the exception carried by an ERROR frame"""
    code = payload.get('code', ChunkedUploadError.code)
    message = payload.get('message', 'Unknown error')
    details = payload.get('details') or {}

    if code == SessionNotFoundError.code:
        return SessionNotFoundError(details.get('session_id', ''), details)
    if code == IncompleteUploadError.code:
        return IncompleteUploadError(details.get('missing', []), details)

    cls = _ERRORS_BY_CODE.get(code, ChunkedUploadError)
    return cls(message, details)
