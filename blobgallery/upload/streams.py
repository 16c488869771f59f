"""
Input streams read by the uploaders.

An input stream has a known total length and supports positional reads.
Uploaders only read from it; they never close or retain it.
"""

import io
import os
from typing import BinaryIO, Protocol, runtime_checkable


@runtime_checkable
class InputStream(Protocol):
    """Finite byte source with a known length."""

    def length(self) -> int:
        ...

    def read_exact(self, offset: int, count: int) -> bytes:
        """
        Read exactly ``count`` bytes starting at ``offset``.

        Raises:
            EOFError: If fewer than ``count`` bytes are available
            OSError: On local I/O failure
        """
        ...


class BytesInputStream:
    """Input stream over an in-memory buffer."""

    def __init__(self, data: bytes):
        self._data = memoryview(bytes(data))

    def length(self) -> int:
        return len(self._data)

    def read_exact(self, offset: int, count: int) -> bytes:
        if offset < 0 or count < 0 or offset + count > len(self._data):
            raise EOFError(
                f"Range [{offset}, {offset + count}) is outside a {len(self._data)} byte buffer"
            )
        return self._data[offset:offset + count].tobytes()


class FileInputStream:
    """
    Input stream over a seekable binary file object.

    Works with regular files and with the spooled temporary file behind an
    uploaded form file. The length is captured when the stream is created.
    """

    def __init__(self, fileobj: BinaryIO):
        self._file = fileobj
        position = fileobj.tell()
        self._length = fileobj.seek(0, io.SEEK_END)
        fileobj.seek(position)

    @classmethod
    def open(cls, path: "os.PathLike[str] | str") -> "FileInputStream":
        """Open a file on disk; the caller owns closing ``stream.file``."""
        return cls(open(path, "rb"))

    @property
    def file(self) -> BinaryIO:
        return self._file

    def length(self) -> int:
        return self._length

    def read_exact(self, offset: int, count: int) -> bytes:
        self._file.seek(offset)
        parts = []
        remaining = count
        while remaining > 0:
            chunk = self._file.read(remaining)
            if not chunk:
                raise EOFError(f"Expected {count} bytes at offset {offset}, got {count - remaining}")
            parts.append(chunk)
            remaining -= len(chunk)
        return b"".join(parts)
