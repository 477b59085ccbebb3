"""Common base for the per-format archive readers.

Each reader decodes the structure of one container format from a
:class:`~archinfo.source.ByteSource`: where its signature sits, which
entries it lists and where their data lives.  Nothing is decompressed and
no checksums are verified.

Readers never raise for malformed content while loading; the failure is
kept in :attr:`ArchiveReader.error` so that the format detector can simply
move on to the next candidate.
"""
from __future__ import annotations

import abc
import logging
import struct
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ArchiveFormatError, ArchiveRangeError, MissingSourceError
from .models import ByteRange, Entry
from .source import ByteSource, RangeLike, coerce_range

__all__ = ["ArchiveReader"]

logger = logging.getLogger(__name__)


class ArchiveReader(abc.ABC):
    """Abstract reader contract shared by every supported format."""

    #: sources larger than this are rejected outright (0 = no limit)
    max_size: int = 0

    def __init__(self) -> None:
        self.source: Optional[ByteSource] = None
        self.error = ""
        self.is_encrypted = False
        self.marker_position: Optional[int] = None
        self._entries: List[Entry] = []

    # loading

    def open_file(self, path: Path | str, is_fragment: bool = False, byte_range: RangeLike = None) -> bool:
        """Open *path* (optionally only *byte_range* of it) and analyze it."""
        self.reset()
        try:
            self.source = ByteSource.from_file(path, is_fragment=is_fragment, byte_range=byte_range)
        except OSError as exc:
            self.error = f"Could not open file: {exc}"
            return False
        except ArchiveRangeError as exc:
            self.error = str(exc)
            return False
        return self._load()

    def set_buffer(self, data: bytes, is_fragment: bool = False, byte_range: RangeLike = None) -> None:
        """Use in-memory *data* (optionally only *byte_range* of it) as the source."""
        self.reset()
        try:
            self.source = ByteSource.from_buffer(data, is_fragment=is_fragment, byte_range=byte_range)
        except ArchiveRangeError as exc:
            self.error = str(exc)
            return
        self._load()

    def open_source(self, source: ByteSource, is_fragment: bool = False, byte_range: RangeLike = None) -> bool:
        """Analyze *byte_range* of an already open *source*, sharing its handle."""
        self.reset()
        try:
            self.source = source.view(coerce_range(byte_range) or source.range, is_fragment=is_fragment)
        except (ArchiveRangeError, MissingSourceError) as exc:
            self.error = str(exc)
            return False
        return self._load()

    def reset(self) -> None:
        self.close()
        self.source = None
        self.error = ""
        self.is_encrypted = False
        self.marker_position = None
        self._entries = []

    def _load(self) -> bool:
        if self.max_size and self.data_size > self.max_size:
            self.error = f"File size ({self.data_size}) exceeds maximum ({self.max_size})"
            return False
        try:
            self.marker_position = self.find_marker()
            if self.marker_position is None:
                raise ArchiveFormatError("Could not find marker block, not a valid archive")
            self.analyze()
        except ArchiveFormatError as exc:
            self.error = str(exc)
            logger.debug("%s: %s", type(self).__name__, exc)
            return False
        except (struct.error, ValueError) as exc:
            # truncated or inconsistent fields the format checks did not catch
            self.error = f"Invalid archive structure: {exc}"
            logger.debug("%s: %s", type(self).__name__, exc)
            return False
        return True

    # format-specific hooks

    @abc.abstractmethod
    def find_marker(self) -> Optional[int]:
        """Return the signature offset relative to :attr:`start`, or None."""

    @abc.abstractmethod
    def analyze(self) -> None:
        """Parse the source from the marker on and populate the entry list."""

    @abc.abstractmethod
    def parsed_dump(self) -> List[Dict[str, Any]]:
        """Return the decoded structures in a human-readable form."""

    # public API

    def entries(self, include_ranges: bool = True) -> List[Entry]:
        if include_ranges:
            return list(self._entries)
        return [replace(e, range=None) for e in self._entries]

    def summary(self) -> Dict[str, Any]:
        return {
            "file_count": self.file_count,
            "is_encrypted": self.is_encrypted,
            "marker_position": self.marker_position,
        }

    def read_range(self, rng: ByteRange) -> bytes:
        return self._require_source().read_range(rng)

    def save_range(self, rng: ByteRange, destination: Path | str) -> int:
        return self._require_source().save_range(rng, destination)

    def close(self) -> None:
        if self.source is not None:
            self.source.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # source state

    @property
    def file_count(self) -> int:
        return sum(1 for e in self._entries if not e.is_dir)

    @property
    def file_size(self) -> int:
        return self.source.file_size if self.source else 0

    @property
    def data_size(self) -> int:
        return self.source.data_size if self.source else 0

    @property
    def start(self) -> int:
        return self.source.start if self.source else 0

    @property
    def end(self) -> int:
        return self.source.end if self.source else 0

    @property
    def is_fragment(self) -> bool:
        return bool(self.source and self.source.is_fragment)

    @property
    def has_data(self) -> bool:
        return bool(self.source and self.source.is_open)

    # helpers for subclasses

    def _require_source(self) -> ByteSource:
        if self.source is None or not self.source.is_open:
            raise MissingSourceError("No data or file handle available")
        return self.source

    def _read(self, offset: int, length: int) -> bytes:
        return self._require_source().read(offset, length)

    def _find(self, needle: bytes, offset: Optional[int] = None) -> Optional[int]:
        return self._require_source().find(needle, offset)

    def _relative(self, absolute: Optional[int]) -> Optional[int]:
        return None if absolute is None else absolute - self.start

    def _data_range(self, offset: int, size: int) -> ByteRange:
        return ByteRange(offset, offset + size)
