"""
Single entry point for every supported archive type.

:class:`ArchiveInfo` detects the type of a file or buffer, keeps the
matching reader and exposes one API on top of it, whatever the format.  It
can also descend into archives stored (uncompressed) inside other archives,
either one level at a time::

    archive.child_archive("CD1.rar").child_archive("sample.zip").entries()

or all at once as a flat listing where each record carries its source
path (see :mod:`archinfo.archive_resolver`).

Example::

    archive = ArchiveInfo()
    if not archive.open_file("release.rar"):
        print("Error:", archive.error)

    for row in archive.flat_entries():
        if row.error:
            print(f"Error: {row.error} (in: {row.source})")
        elif not row.entry.compressed and not row.entry.encrypted and not row.is_dir:
            archive.extract_to_destination(row.name, f"./out/{row.name}", row.source)
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .archive_resolver import (
    MAIN_SOURCE,
    flat_entries,
    is_archive_name,
    join_source,
    resolve_range,
)
from .detector import DEFAULT_READERS, UNSUPPORTED_MESSAGE, ReaderBinding, detect_reader
from .errors import (
    ArchiveError,
    ArchiveRangeError,
    CompressedArchiveError,
    EncryptedArchiveError,
    MissingSourceError,
    UnsupportedArchiveError,
)
from .models import ArchiveType, ByteRange, Entry, FlatEntry
from .reader import ArchiveReader
from .source import ByteSource, RangeLike, coerce_range

__all__ = ["ArchiveInfo"]

logger = logging.getLogger(__name__)

RECURSIVE_TYPES = (ArchiveType.RAR, ArchiveType.ZIP)


class ArchiveInfo:
    """Facade over the reader chosen for a file or buffer.

    Parameters
    ----------
    readers: mapping ArchiveType -> reader factory, optional
        Readers to try, in order.  Defaults to
        :data:`archinfo.detector.DEFAULT_READERS`.
    inherit_readers: bool, default ``False``
        Use the same readers for all embedded archives, not only this one.
    label: str
        Source path of this archive, ``main`` for the outermost one.
    """

    MAIN_SOURCE = MAIN_SOURCE

    def __init__(
        self,
        readers: Optional[ReaderBinding] = None,
        *,
        inherit_readers: bool = False,
        label: str = MAIN_SOURCE,
    ) -> None:
        self._readers: Dict[ArchiveType, Any] = dict(DEFAULT_READERS if readers is None else readers)
        self.inherit_readers = inherit_readers
        self.label = label
        self._lock = threading.RLock()
        self._reset()

    def _reset(self) -> None:
        self.type = ArchiveType.NONE
        self.file: Optional[Path] = None
        self._data: Optional[bytes] = None
        self._parent: Optional[ByteSource] = None
        self._is_fragment = False
        self._range: Optional[ByteRange] = None
        self._reader: Optional[ArchiveReader] = None
        self._fault: Optional[ArchiveError] = None
        self._last_error = ""
        self._archives: Dict[str, ArchiveInfo] = {}
        self._others: Dict[str, ArchiveInfo] = {}
        self._archives_loaded = False

    # loading

    def open_file(self, path: Path | str, is_fragment: bool = False, byte_range: RangeLike = None) -> bool:
        """Analyze the file at *path*; returns False if it is not supported."""
        path = Path(path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(path)
        self.close()
        self._reset()
        self._locate(path=path, is_fragment=is_fragment, byte_range=byte_range)
        return self._analyze()

    def set_buffer(self, data: bytes, is_fragment: bool = False, byte_range: RangeLike = None) -> bool:
        """Analyze in-memory *data*; returns False if it is not supported."""
        self.close()
        self._reset()
        self._locate(data=bytes(data), is_fragment=is_fragment, byte_range=byte_range)
        return self._analyze()

    def _locate(self, *, path=None, data=None, source=None, is_fragment=False, byte_range: RangeLike = None) -> None:
        self.file = path
        self._data = data
        self._parent = source
        self._is_fragment = is_fragment
        self._range = coerce_range(byte_range)

    def _analyze(self) -> bool:
        if self._parent is not None:
            # embedded archives read through the open source of their parent
            where = {"source": self._parent}
        elif self.file is not None:
            where = {"path": self.file}
        else:
            where = {"data": self._data}
        try:
            self.type, self._reader = detect_reader(
                self._readers,
                **where,
                is_fragment=self._is_fragment,
                byte_range=self._range,
            )
        except UnsupportedArchiveError as exc:
            self._fail(exc)
            return False
        if self._reader.is_encrypted:
            logger.info("%s: archive is password protected", self.label)
        return True

    def _fail(self, exc: ArchiveError) -> None:
        self._fault = exc
        logger.debug("%s: %s", self.label, exc)

    def configure_readers(self, readers: ReaderBinding, inherit: bool = False) -> "ArchiveInfo":
        """Return a new facade using *readers*, re-analyzing the current source if any."""
        other = ArchiveInfo(readers, inherit_readers=inherit, label=self.label)
        if self._parent is not None or self.file is not None or self._data is not None:
            other._locate(
                path=self.file,
                data=self._data,
                source=self._parent,
                is_fragment=self._is_fragment,
                byte_range=self._range,
            )
            other._analyze()
        return other

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
        for child in list(self._archives.values()) + list(self._others.values()):
            child.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # state

    @property
    def error(self) -> str:
        """Message of the sticky analysis failure, or of the last failed extraction."""
        if self._fault is not None:
            return str(self._fault)
        return self._last_error

    @property
    def reader(self) -> Optional[ArchiveReader]:
        return self._reader

    @property
    def file_size(self) -> int:
        if self._reader is not None:
            return self._reader.file_size
        if self._parent is not None:
            return self._parent.file_size
        if self._data is not None:
            return len(self._data)
        if self.file is not None and self.file.exists():
            return self.file.stat().st_size
        return 0

    @property
    def start(self) -> int:
        if self._reader is not None:
            return self._reader.start
        return self._range.start if self._range else 0

    @property
    def end(self) -> int:
        if self._reader is not None:
            return self._reader.end
        return self._range.end if self._range else self.file_size

    @property
    def data_size(self) -> int:
        return self.end - self.start

    @property
    def is_fragment(self) -> bool:
        return self._is_fragment

    @property
    def is_encrypted(self) -> bool:
        return bool(self._reader and self._reader.is_encrypted)

    @property
    def file_count(self) -> int:
        return self._reader.file_count if self._reader else 0

    @property
    def marker_position(self) -> Optional[int]:
        return self._reader.marker_position if self._reader else None

    def _require_reader(self) -> ArchiveReader:
        if self._fault is not None:
            raise type(self._fault)(str(self._fault))
        if self._reader is None:
            raise UnsupportedArchiveError(UNSUPPORTED_MESSAGE)
        return self._reader

    # delegated API

    def summary(self, full: bool = False) -> Dict[str, Any]:
        """Return a summary dict; with *full* include all embedded archives."""
        summary: Dict[str, Any] = {
            "main_info": type(self._reader).__name__ if self._reader else "Unknown",
            "main_type": self.type.name,
            "file_name": str(self.file) if self.file else None,
            "source": self.label,
            "file_size": self.file_size,
            "data_size": self.data_size,
            "use_range": f"{self.start}-{self.end}",
        }
        if self.error:
            summary["error"] = self.error
        if self._reader is not None:
            summary.update(self._reader.summary())
        if full and self.contains_archive():
            summary["archives"] = self.archive_list(summary=True)
        return summary

    def entries(self, include_ranges: bool = True) -> List[Entry]:
        return self._require_reader().entries(include_ranges)

    def parsed_dump(self) -> List[Dict[str, Any]]:
        """Blocks (RAR/SRR), records (ZIP), packets (PAR2) or checksums (SFV)."""
        return self._require_reader().parsed_dump()

    def find_marker(self) -> Optional[int]:
        return self._require_reader().marker_position

    # embedded archives

    def allows_recursion(self) -> bool:
        return self.type in RECURSIVE_TYPES

    def contains_archive(self) -> bool:
        return bool(self.archive_list())

    def archive_list(self, summary: bool = False) -> Dict[str, Union["ArchiveInfo", Dict[str, Any]]]:
        """Return the embedded archives keyed by name, as objects or summaries.

        An archive is listed as soon as an entry looks like one, even if it
        turns out to be unreadable; check each object's :attr:`error`.
        """
        if not self._can_recurse():
            return {}
        with self._lock:
            if not self._archives_loaded:
                # children opened early through child_archive() keep their object
                ordered: Dict[str, ArchiveInfo] = {}
                for entry in self._reader.entries():
                    if entry.is_dir or entry.name in ordered or not is_archive_name(entry.name):
                        continue
                    child = self._archives.get(entry.name) or self._create_child(entry)
                    if child is not None:
                        ordered[entry.name] = child
                self._archives = ordered
                self._archives_loaded = True
        if summary:
            return {name: a.summary(full=True) for name, a in self._archives.items()}
        return dict(self._archives)

    def child_archive(self, name: str) -> Optional["ArchiveInfo"]:
        """Return the embedded archive *name*, or None if it can't be addressed."""
        if not self._can_recurse():
            return None
        with self._lock:
            cached = self._archives.get(name) or self._others.get(name)
            if cached is not None:
                return cached
            for entry in self._reader.entries():
                if entry.name != name or entry.is_dir:
                    continue
                child = self._create_child(entry)
                if child is not None:
                    cache = self._archives if is_archive_name(name) else self._others
                    cache[name] = child
                return child
        return None

    def _can_recurse(self) -> bool:
        return self._fault is None and self._reader is not None and self.allows_recursion()

    def _create_child(self, entry: Entry) -> Optional["ArchiveInfo"]:
        if entry.range is None:
            return None
        child = ArchiveInfo(
            self._readers if self.inherit_readers else None,
            inherit_readers=self.inherit_readers,
            label=join_source(self.label, entry.name),
        )
        child._locate(
            path=self.file,
            data=self._data,
            source=self._reader.source,
            is_fragment=self._is_fragment,
            byte_range=entry.range,
        )

        parent = ByteRange(self.start, self.end)
        if not parent.contains(entry.range) or entry.range.size >= parent.size:
            child._fail(ArchiveRangeError(f"The archive range ({entry.range}) lies outside its parent ({parent})"))
        elif entry.encrypted:
            child._fail(EncryptedArchiveError("The archive is encrypted and cannot be read"))
        elif entry.compressed:
            child._fail(CompressedArchiveError("The archive is compressed and cannot be read"))
        elif child._analyze() and child.is_encrypted:
            child._fail(EncryptedArchiveError("The archive is encrypted and cannot be read"))
        return child

    # flat listing and extraction

    def flat_entries(self, recurse: bool = True, include_all: bool = False, source: Optional[str] = None) -> List[FlatEntry]:
        return flat_entries(self, recurse, include_all, source)

    def file_range(self, name: str, source: Optional[str] = MAIN_SOURCE) -> ByteRange:
        return resolve_range(self, name, source)

    def extract(self, name: str, source: Optional[str] = MAIN_SOURCE) -> bytes:
        """Return the raw data of file *name* at *source* (e.g. ``main > child.rar``)."""
        reader = self._require_data()
        try:
            data = reader.read_range(self.file_range(name, source))
        except ArchiveError as exc:
            self._last_error = str(exc)
            raise
        self._last_error = ""
        return data

    def extract_to_destination(self, name: str, destination: Path | str, source: Optional[str] = MAIN_SOURCE) -> int:
        """Save the raw data of file *name* at *source* to *destination*; returns bytes written."""
        reader = self._require_data()
        try:
            written = reader.save_range(self.file_range(name, source), destination)
        except ArchiveError as exc:
            self._last_error = str(exc)
            raise
        self._last_error = ""
        return written

    def _require_data(self) -> ArchiveReader:
        reader = self._require_reader()
        if not reader.has_data:
            self._last_error = "No data or file handle available"
            raise MissingSourceError(self._last_error)
        return reader

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ArchiveInfo {self.label} type={self.type.name} range={self.start}-{self.end}>"
