"""Exception hierarchy shared by the readers and the archive facade."""
from __future__ import annotations

__all__ = [
    "ArchiveError",
    "ArchiveFormatError",
    "UnsupportedArchiveError",
    "MissingSourceError",
    "CompressedArchiveError",
    "EncryptedArchiveError",
    "EntryNotFoundError",
    "ArchiveRangeError",
]


class ArchiveError(RuntimeError):
    pass


class ArchiveFormatError(ArchiveError):
    """Raised by a reader when the source structure cannot be decoded."""


class UnsupportedArchiveError(ArchiveError):
    pass


class MissingSourceError(ArchiveError):
    pass


class CompressedArchiveError(ArchiveError):
    pass


class EncryptedArchiveError(ArchiveError):
    pass


class EntryNotFoundError(ArchiveError):
    pass


class ArchiveRangeError(ArchiveError):
    pass
