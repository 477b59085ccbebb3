"""Reader for ReScene (SRR) metadata files.

An SRR file is a sequence of RAR-style blocks: its own header (0x69),
stored files such as NFOs and SFVs (0x6a, data kept verbatim), OSO hashes
(0x6b), padding (0x6c), and for every RAR volume a marker block (0x71)
followed by that volume's headers with the packed data stripped.
"""
from __future__ import annotations

import struct
from typing import Any, Callable, Dict, Optional

from .errors import ArchiveFormatError
from .models import ByteRange, Entry
from .rar_reader import BLOCK_NAMES, BLOCK_OLD_RECOVERY, RarReader

__all__ = ["SrrReader"]

BLOCK_SRR_HEADER = 0x69
BLOCK_SRR_STORED = 0x6A
BLOCK_SRR_OSO_HASH = 0x6B
BLOCK_SRR_PADDING = 0x6C
BLOCK_SRR_RAR_FILE = 0x71

SRR_BLOCK_NAMES = {
    BLOCK_SRR_HEADER: "SRR Volume Header",
    BLOCK_SRR_STORED: "SRR Stored File",
    BLOCK_SRR_OSO_HASH: "SRR OSO Hash",
    BLOCK_SRR_PADDING: "SRR RAR Padding",
    BLOCK_SRR_RAR_FILE: "SRR RAR File",
}

SRR_APP_NAME = 0x0001

_U16 = struct.Struct("<H")


class SrrReader(RarReader):
    """Lists the stored files of an SRR and the RAR volumes it describes."""

    MARKER = b"\x69\x69\x69"

    def __init__(self) -> None:
        super().__init__()
        self.app_name: Optional[str] = None
        self._volume: Optional[Entry] = None

    def reset(self) -> None:
        super().reset()
        self.app_name = None
        self._volume = None

    def find_marker(self) -> Optional[int]:
        return self._relative(self._find(self.MARKER))

    def analyze(self) -> None:
        pos = self.start + self.marker_position
        head = self._read(pos, 7)
        if len(head) < 7 or struct.unpack("<HBHH", head)[3] < 7:
            raise ArchiveFormatError("Invalid SRR header block")
        self._walk_blocks(pos)

    def summary(self) -> Dict[str, Any]:
        summary = super().summary()
        summary["app_name"] = self.app_name
        summary["rar_files"] = [e.name for e in self._entries if e.extra.get("rar_volume")]
        return summary

    @property
    def file_count(self) -> int:
        return sum(1 for e in self._entries if e.range is not None)

    def _block_name(self, head_type: int) -> str:
        return SRR_BLOCK_NAMES.get(head_type) or BLOCK_NAMES.get(head_type, f"Unknown ({head_type:#04x})")

    def _handlers(self) -> Dict[int, Callable[[Dict[str, Any], bytes], None]]:
        handlers = super()._handlers()
        handlers.update({
            BLOCK_SRR_HEADER: self._parse_srr_header,
            BLOCK_SRR_STORED: self._parse_stored_file,
            BLOCK_SRR_OSO_HASH: self._parse_oso_hash,
            BLOCK_SRR_RAR_FILE: self._parse_rar_file,
            BLOCK_OLD_RECOVERY: self._strip_data,
        })
        return handlers

    def _walk_blocks(self, pos: int) -> None:
        super()._walk_blocks(pos)
        self._volume = None

    def _is_last_block(self, block: Dict[str, Any]) -> bool:
        # one end block per stored volume, keep going to the end of the data
        return False

    # SRR blocks

    def _parse_srr_header(self, block: Dict[str, Any], raw: bytes) -> None:
        if block["head_flags"] & SRR_APP_NAME and len(raw) >= 9:
            size = _U16.unpack_from(raw, 7)[0]
            self.app_name = raw[9 : 9 + size].decode("utf-8", errors="replace")
            block["app_name"] = self.app_name

    def _parse_stored_file(self, block: Dict[str, Any], raw: bytes) -> None:
        # ADD_SIZE holds the stored file size, the name follows it
        name = self._read_name(block, raw, 11)
        data_offset = block["offset"] + block["head_size"]
        block.update(file_name=name, file_size=block["add_size"], data_offset=data_offset)
        self._entries.append(
            Entry(
                name=name,
                range=ByteRange(data_offset, data_offset + block["add_size"]),
                size=block["add_size"],
                packed_size=block["add_size"],
                extra={"stored": True},
            )
        )

    def _parse_oso_hash(self, block: Dict[str, Any], raw: bytes) -> None:
        if len(raw) < 25:
            raise ArchiveFormatError(f"Invalid OSO hash block at offset {block['offset']}")
        file_size, oso_hash = struct.unpack_from("<QQ", raw, 7)
        block.update(file_size=file_size, oso_hash=f"{oso_hash:016x}", file_name=self._read_name(block, raw, 23))

    def _parse_rar_file(self, block: Dict[str, Any], raw: bytes) -> None:
        name = self._read_name(block, raw, 7)
        block["file_name"] = name
        self._volume = Entry(name=name, extra={"rar_volume": True})
        self._entries.append(self._volume)

    # stripped RAR blocks

    def _parse_file(self, block: Dict[str, Any], raw: bytes) -> None:
        self._decode_file_header(block, raw)
        # packed data is never stored in an SRR
        block["next_offset"] = block["offset"] + block["head_size"]
        self._add_file(self._file_entry(block, stored_data=False))

    def _parse_sub(self, block: Dict[str, Any], raw: bytes) -> None:
        self._decode_file_header(block, raw)
        if block.get("file_name") == "RR":
            block["next_offset"] = block["offset"] + block["head_size"]

    def _strip_data(self, block: Dict[str, Any], raw: bytes) -> None:
        block["next_offset"] = block["offset"] + block["head_size"]

    def _add_file(self, entry: Entry) -> None:
        if self._volume is None:
            raise ArchiveFormatError(f"RAR file header for '{entry.name}' outside of a RAR volume")
        self._volume.files.append(entry)

    def _read_name(self, block: Dict[str, Any], raw: bytes, offset: int) -> str:
        if len(raw) < offset + _U16.size:
            raise ArchiveFormatError(f"Invalid {block['type']} block at offset {block['offset']}")
        size = _U16.unpack_from(raw, offset)[0]
        return raw[offset + 2 : offset + 2 + size].decode("utf-8", errors="replace")
