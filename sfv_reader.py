"""Reader for SFV checksum listings.

An SFV file is plain text, one ``<file name> <crc32>`` pair per line, with
``;`` starting a comment line.  The marker position is the offset of the
first valid checksum line, so an SFV pasted at the end of some other text
still yields the offset where its listing starts.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from .errors import ArchiveFormatError
from .models import Entry
from .reader import ArchiveReader

__all__ = ["SfvReader"]

_LINE_RE = re.compile(r"^\s*(?P<name>\S.*?)\s+(?P<crc>[0-9A-Fa-f]{8})\s*$")
# anything but tabs and line breaks below 0x20 means binary data
_BINARY_RE = re.compile(rb"[\x00-\x08\x0b\x0c\x0e-\x1f]")


class SfvReader(ArchiveReader):
    """Lists the file names and checksums of an SFV file."""

    max_size = 4 * 1024 * 1024

    def __init__(self) -> None:
        super().__init__()
        self._text = ""
        self.comments: List[str] = []

    def reset(self) -> None:
        super().reset()
        self._text = ""
        self.comments = []

    def find_marker(self) -> Optional[int]:
        data = self._read(self.start, self.data_size)
        if not data or _BINARY_RE.search(data):
            return None
        self._text = data.decode("latin-1")
        offset = 0
        for line in self._text.splitlines(keepends=True):
            if not line.lstrip().startswith(";") and _LINE_RE.match(line):
                return offset
            offset += len(line)
        return None

    def analyze(self) -> None:
        for line in self._text.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.startswith(";"):
                self.comments.append(stripped[1:].strip())
                continue
            m = _LINE_RE.match(line)
            if m is None:
                continue
            self._entries.append(Entry(name=m.group("name"), extra={"checksum": m.group("crc").lower()}))
        if not self._entries:
            raise ArchiveFormatError("No valid SFV lines found")

    def parsed_dump(self) -> List[Dict[str, Any]]:
        return [{"name": e.name, "checksum": e.extra["checksum"]} for e in self._entries]

    def summary(self) -> Dict[str, Any]:
        summary = super().summary()
        summary["comments"] = list(self.comments)
        return summary
