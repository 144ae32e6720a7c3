"""Upload session records and the in-memory session registry"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional, Set
import logging

from ..network.chunks import calculate_total_chunks
from .errors import SessionNotFoundError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Upload session lifecycle"""
    ACTIVE = "active"
    COMPLETING = "completing"
    CLOSED = "closed"


@dataclass
class SessionProgress:
    """Completeness snapshot of one session"""
    uploaded_chunks: int
    total_chunks: int

    @property
    def percentage(self) -> float:
        return self.uploaded_chunks / self.total_chunks * 100


@dataclass
class UploadSession:
    """Server-side record of one in-progress chunked upload"""
    id: str
    file_name: str
    mime_type: str
    total_size: int
    chunk_size: int
    total_chunks: int
    received_chunks: Set[int] = field(default_factory=set)
    created_at: float = field(default_factory=time.time)
    last_modified: float = field(default_factory=time.time)
    state: SessionState = SessionState.ACTIVE
    storage_key: Optional[str] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def is_open(self) -> bool:
        return self.state is not SessionState.CLOSED

    def missing_chunks(self) -> List[int]:
        """Indices in [0, total_chunks) with no stored chunk"""
        return sorted(set(range(self.total_chunks)) - self.received_chunks)

    def progress(self) -> SessionProgress:
        return SessionProgress(
            uploaded_chunks=len(self.received_chunks),
            total_chunks=self.total_chunks
        )

    def touch(self):
        self.last_modified = time.time()


class SessionRegistry:
    """
    Owns every UploadSession of this process.
    Mutations of a single session go through locked(), which serializes
    them on the session's own lock; different sessions never contend.
    """

    def __init__(self, chunk_size: int):
        self.chunk_size = chunk_size
        self._sessions: Dict[str, UploadSession] = {}

    def create(self, file_name: str, total_size: int, mime_type: str) -> UploadSession:
        """Allocate and register a new ACTIVE session"""
        session = UploadSession(
            id=str(uuid.uuid4()),
            file_name=file_name,
            mime_type=mime_type,
            total_size=total_size,
            chunk_size=self.chunk_size,
            total_chunks=calculate_total_chunks(total_size, self.chunk_size)
        )
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[UploadSession]:
        session = self._sessions.get(session_id)
        if session is None or not session.is_open:
            return None
        return session

    def require(self, session_id: str) -> UploadSession:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @asynccontextmanager
    async def locked(self, session_id: str) -> AsyncIterator[UploadSession]:
        """
        Hold the session lock for a read-modify-write sequence.
        The session is re-checked after the lock is acquired, so a session
        closed while we waited is reported as not found.
        """
        session = self.require(session_id)
        async with session.lock:
            if not session.is_open or self._sessions.get(session_id) is not session:
                raise SessionNotFoundError(session_id)
            yield session

    def close(self, session: UploadSession):
        """Move a session to CLOSED and drop it from the registry"""
        session.state = SessionState.CLOSED
        if self._sessions.get(session.id) is session:
            del self._sessions[session.id]

    def progress(self, session_id: str) -> Optional[SessionProgress]:
        session = self.get(session_id)
        return session.progress() if session else None

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def __len__(self) -> int:
        return len(self._sessions)
