"""Plain data models shared by readers, the facade and the outer surfaces."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class ArchiveType(enum.IntEnum):
    NONE = 0x0000
    RAR = 0x0002
    ZIP = 0x0004
    SRR = 0x0008
    SFV = 0x0010
    PAR2 = 0x0020


@dataclass(frozen=True, order=True)
class ByteRange:
    """Absolute, half-open byte range ``[start, end)`` in the underlying source."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    def contains(self, other: "ByteRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass
class Entry:
    """A single record in a reader's listing.

    ``range`` is only known for entries whose data is stored in the source
    (RAR/ZIP members, SRR stored files); checksum and recovery listings
    leave it unset.  ``files`` holds a nested listing where the format has
    one, e.g. the files recorded for each RAR volume inside an SRR.
    """

    name: str
    is_dir: bool = False
    range: Optional[ByteRange] = None
    compressed: bool = False
    encrypted: bool = False
    size: Optional[int] = None
    packed_size: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    files: List["Entry"] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {"name": self.name}
        if self.is_dir:
            row["is_dir"] = True
        if self.size is not None:
            row["size"] = self.size
        if self.packed_size is not None:
            row["packed_size"] = self.packed_size
        if self.range is not None:
            row["range"] = str(self.range)
        row["compressed"] = self.compressed
        row["encrypted"] = self.encrypted
        row.update(self.extra)
        if self.files:
            row["files"] = [f.as_dict() for f in self.files]
        return row


@dataclass
class FlatEntry:
    """An entry (or a failed branch) tagged with its archive source path."""

    source: str
    entry: Optional[Entry] = None
    error: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        return self.entry.name if self.entry else None

    @property
    def range(self) -> Optional[ByteRange]:
        return self.entry.range if self.entry else None

    @property
    def is_dir(self) -> bool:
        return bool(self.entry and self.entry.is_dir)

    def as_dict(self) -> Dict[str, Any]:
        if self.entry is None:
            return {"error": self.error, "source": self.source}
        row = self.entry.as_dict()
        row.pop("files", None)
        row["source"] = self.source
        return row
