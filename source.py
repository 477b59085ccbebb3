"""Byte sources: a file or an in-memory buffer, optionally limited to a range.

All offsets handled here are absolute positions in the underlying medium.
A source opened with a range behaves as a *view*: reads outside the range
are refused, which is what keeps embedded archives from reaching past their
parent entry.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from .errors import ArchiveRangeError, MissingSourceError
from .models import ByteRange

__all__ = ["ByteSource", "RangeLike", "coerce_range"]

logger = logging.getLogger(__name__)

RangeLike = Union[ByteRange, Tuple[int, int], None]

_CHUNK_SIZE = 1024 * 1024


def coerce_range(value: RangeLike) -> Optional[ByteRange]:
    if value is None or isinstance(value, ByteRange):
        return value
    start, end = value
    return ByteRange(int(start), int(end))


class ByteSource:
    """Read-only view over a file or a bytes buffer.

    Use :meth:`from_file` or :meth:`from_buffer` rather than the constructor.
    ``is_fragment`` marks data that is only part of a larger archive (a
    truncated download or an embedded entry), which readers use to tolerate
    structures that run past the available bytes.  Views made with
    :meth:`view` share the handle of their parent and never close it.
    """

    def __init__(
        self,
        *,
        path: Optional[Path] = None,
        handle: Optional[BinaryIO] = None,
        data: Optional[bytes] = None,
        file_size: int = 0,
        byte_range: RangeLike = None,
        is_fragment: bool = False,
        owns_handle: bool = True,
    ) -> None:
        self.path = path
        self.handle = handle
        self.owns_handle = owns_handle
        self.data = data
        self.file_size = file_size
        self.is_fragment = is_fragment

        rng = coerce_range(byte_range)
        if rng is None:
            rng = ByteRange(0, file_size)
        if rng.start < 0 or rng.end < rng.start or rng.start > file_size:
            self.close()
            raise ArchiveRangeError(f"Invalid range {rng} for source of {file_size} bytes")
        if rng.end > file_size:
            # fragments may declare more data than is actually present
            rng = ByteRange(rng.start, file_size)
        self.range = rng

    # constructors

    @classmethod
    def from_file(
        cls, path: Path | str, *, is_fragment: bool = False, byte_range: RangeLike = None
    ) -> "ByteSource":
        path = Path(path).expanduser()
        handle = path.open("rb")
        handle.seek(0, 2)
        size = handle.tell()
        return cls(path=path, handle=handle, file_size=size, byte_range=byte_range, is_fragment=is_fragment)

    @classmethod
    def from_buffer(
        cls, data: bytes, *, is_fragment: bool = False, byte_range: RangeLike = None
    ) -> "ByteSource":
        data = bytes(data)
        return cls(data=data, file_size=len(data), byte_range=byte_range, is_fragment=is_fragment)

    # properties

    @property
    def start(self) -> int:
        return self.range.start

    @property
    def end(self) -> int:
        return self.range.end

    @property
    def data_size(self) -> int:
        return self.range.size

    @property
    def is_open(self) -> bool:
        return self.data is not None or (self.handle is not None and not self.handle.closed)

    # reading

    def read(self, offset: int, length: int) -> bytes:
        """Read up to *length* bytes at absolute *offset*, clipped to the view."""
        if not self.is_open:
            raise MissingSourceError("No data or file handle available")
        if offset < self.start or offset >= self.end or length <= 0:
            return b""
        length = min(length, self.end - offset)
        if self.data is not None:
            return self.data[offset : offset + length]
        self.handle.seek(offset)
        return self.handle.read(length)

    def read_range(self, rng: ByteRange) -> bytes:
        """Return exactly the bytes of *rng* or raise :class:`ArchiveRangeError`."""
        self._check_range(rng)
        data = self.read(rng.start, rng.size) if rng.size else b""
        if len(data) != rng.size:
            raise ArchiveRangeError(f"Short read for range {rng}: got {len(data)} bytes")
        return data

    def save_range(self, rng: ByteRange, destination: Path | str) -> int:
        """Copy the bytes of *rng* to *destination*, returning the count written."""
        self._check_range(rng)
        destination = Path(destination)
        written = 0
        with destination.open("wb") as out:
            pos = rng.start
            while pos < rng.end:
                chunk = self.read(pos, min(_CHUNK_SIZE, rng.end - pos))
                if not chunk:
                    break
                out.write(chunk)
                pos += len(chunk)
                written += len(chunk)
        if written != rng.size:
            raise ArchiveRangeError(f"Short write for range {rng}: wrote {written} bytes")
        logger.debug("saved %d bytes from %s to %s", written, rng, destination)
        return written

    def find(self, needle: bytes, offset: Optional[int] = None) -> Optional[int]:
        """Return the absolute position of *needle* at or after *offset*, or None."""
        pos = self.start if offset is None else max(offset, self.start)
        if self.data is not None:
            idx = self.data.find(needle, pos, self.end)
            return None if idx == -1 else idx
        overlap = len(needle) - 1
        while pos < self.end:
            chunk = self.read(pos, _CHUNK_SIZE + overlap)
            if len(chunk) < len(needle):
                return None
            idx = chunk.find(needle)
            if idx != -1:
                return pos + idx
            pos += _CHUNK_SIZE
        return None

    def close(self) -> None:
        if self.owns_handle and self.handle is not None and not self.handle.closed:
            self.handle.close()

    def view(self, rng: RangeLike, *, is_fragment: Optional[bool] = None) -> "ByteSource":
        """Return a source limited to *rng* over the same, already open, medium."""
        fragment = self.is_fragment if is_fragment is None else is_fragment
        if not self.is_open:
            raise MissingSourceError("No data or file handle available")
        return ByteSource(
            path=self.path,
            handle=self.handle,
            data=self.data,
            file_size=self.file_size,
            byte_range=rng,
            is_fragment=fragment,
            owns_handle=False,
        )

    def _check_range(self, rng: ByteRange) -> None:
        if rng.end < rng.start or not self.range.contains(rng):
            raise ArchiveRangeError(f"Range {rng} is outside of the source range {self.range}")

    def __repr__(self) -> str:  # pragma: no cover
        what = str(self.path) if self.path else f"<{self.file_size} bytes>"
        return f"<ByteSource {what} {self.range}>"
