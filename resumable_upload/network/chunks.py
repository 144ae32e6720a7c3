"""Fixed-size file chunking"""

import hashlib
import os
from dataclasses import dataclass
from typing import BinaryIO, Iterator
import logging

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024  # 5MB


def calculate_total_chunks(file_size: int, chunk_size: int) -> int:
    """
    Number of chunks needed for file_size bytes.
    An empty file still travels as one (empty) chunk.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if file_size <= 0:
        return 1
    return (file_size + chunk_size - 1) // chunk_size


@dataclass
class ChunkInfo:
    """Byte range of one chunk"""
    index: int
    offset: int
    size: int


@dataclass
class Chunk:
    """One chunk read from the source file"""
    index: int
    offset: int
    data: bytes

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.data).hexdigest()


class ChunkProducer:
    """
    Splits a binary file into contiguous chunks of at most chunk_size bytes.
    Iterating is lazy and always starts again from offset 0.
    """

    def __init__(self, file: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.file = file
        self.chunk_size = chunk_size

    @property
    def file_size(self) -> int:
        return self.file.seek(0, os.SEEK_END)

    @property
    def total_chunks(self) -> int:
        return calculate_total_chunks(self.file_size, self.chunk_size)

    def ranges(self) -> Iterator[ChunkInfo]:
        """Byte ranges covering [0, file_size), without reading data"""
        file_size = self.file_size
        for index in range(calculate_total_chunks(file_size, self.chunk_size)):
            offset = index * self.chunk_size
            yield ChunkInfo(
                index=index,
                offset=offset,
                size=max(0, min(self.chunk_size, file_size - offset))
            )

    def __iter__(self) -> Iterator[Chunk]:
        for info in self.ranges():
            self.file.seek(info.offset)
            data = self.file.read(info.size)
            if len(data) != info.size:
                raise IOError(
                    f"Short read at offset {info.offset}: "
                    f"expected {info.size} bytes, got {len(data)}"
                )
            yield Chunk(index=info.index, offset=info.offset, data=data)

    def __len__(self) -> int:
        return self.total_chunks
