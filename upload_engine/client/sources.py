"""
Byte sources the uploader can read chunk ranges from
"""
import asyncio
import mimetypes
import os
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@runtime_checkable
class ByteSource(Protocol):
    name: str
    size: int
    content_type: str

    async def read_range(self, start: int, end: int) -> bytes:
        """Bytes ``[start, end)``"""
        ...


class FileByteSource:
    """A file on disk; each range read opens its own handle in a worker thread"""

    def __init__(self, path: str | Path, content_type: Optional[str] = None):
        self.path = Path(path)
        if not self.path.is_file():
            raise FileNotFoundError(f"No such file: {self.path}")
        self.name = self.path.name
        self.size = os.path.getsize(self.path)
        self.content_type = (
            content_type
            or mimetypes.guess_type(self.name)[0]
            or DEFAULT_CONTENT_TYPE
        )

    def _read(self, start: int, end: int) -> bytes:
        with open(self.path, "rb") as handle:
            handle.seek(start)
            return handle.read(end - start)

    async def read_range(self, start: int, end: int) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, start, end)

    def __repr__(self):
        return f"<FileByteSource {self.path} ({self.size} bytes)>"


class BytesByteSource:
    """In-memory bytes, mostly for tests and small payloads"""

    def __init__(self, data: bytes, name: str, content_type: str = DEFAULT_CONTENT_TYPE):
        self.data = bytes(data)
        self.name = name
        self.size = len(self.data)
        self.content_type = content_type

    async def read_range(self, start: int, end: int) -> bytes:
        return self.data[start:end]

    def __repr__(self):
        return f"<BytesByteSource {self.name} ({self.size} bytes)>"
