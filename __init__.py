"""archinfo package - inspect release archives and the archives inside them.

This package provides:
    • ArchiveInfo – detect RAR/ZIP/SRR/PAR2/SFV sources and list, extract and
      recurse into their contents through one API.
    • Per-format readers (archinfo.rar_reader, archinfo.zip_reader, ...) that
      decode structure only, never decompressing anything.
    • CLI utilities under archinfo.cli (Click).
    • Flask inspection service in archinfo.web.

The readers and the facade do no IO beyond the byte source they are given,
which keeps them easy to test with in-memory buffers.
"""

__all__ = [
    "ArchiveInfo",
    "ArchiveType",
    "Entry",
    "FlatEntry",
    "ArchiveError",
]

from .archive_info import ArchiveInfo  # noqa: E402
from .errors import ArchiveError  # noqa: E402
from .models import ArchiveType, Entry, FlatEntry  # noqa: E402
