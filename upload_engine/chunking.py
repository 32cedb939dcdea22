"""
Chunk arithmetic shared by the uploader and the session manager.

Chunk ``i`` of a file covers the half-open byte range
``[i * chunk_size, min((i + 1) * chunk_size, total_size))``; every chunk but
the last is exactly ``chunk_size`` bytes.
"""
from dataclasses import dataclass
from typing import Iterable, Iterator


@dataclass(frozen=True)
class ChunkPlan:
    total_size: int
    chunk_size: int

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.total_size < 0:
            raise ValueError(f"total_size must not be negative, got {self.total_size}")

    @property
    def total_chunks(self) -> int:
        return (self.total_size + self.chunk_size - 1) // self.chunk_size

    def byte_range(self, index: int) -> tuple[int, int]:
        """Half-open ``(start, end)`` byte range of chunk ``index``"""
        if not 0 <= index < self.total_chunks:
            raise ValueError(f"Chunk index {index} outside [0, {self.total_chunks})")
        start = index * self.chunk_size
        return start, min(start + self.chunk_size, self.total_size)

    def chunk_length(self, index: int) -> int:
        start, end = self.byte_range(index)
        return end - start

    def ranges(self) -> Iterator[tuple[int, int]]:
        for index in range(self.total_chunks):
            yield self.byte_range(index)

    def bytes_for(self, indices: Iterable[int]) -> int:
        """Total size of the given chunks"""
        return sum(self.chunk_length(index) for index in indices)
