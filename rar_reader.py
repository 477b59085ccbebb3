"""Reader for RAR archives (format versions 1.5 - 4.x).

Block layout::

    HEAD_CRC   u16
    HEAD_TYPE  u8     0x72 marker, 0x73 main, 0x74 file, 0x7a sub, 0x7b end
    HEAD_FLAGS u16    0x8000 -> ADD_SIZE (u32) follows the base header
    HEAD_SIZE  u16    size of the whole header, data (if any) follows it

File headers carry the packed data size in the ADD_SIZE position, so the
data range of a stored member is simply ``[header end, header end + packed)``.
RAR 5.0 archives are recognised by their signature but not decoded.
"""
from __future__ import annotations

import logging
import struct
from typing import Any, Callable, Dict, List, Optional

from .errors import ArchiveFormatError
from .models import ByteRange, Entry
from .reader import ArchiveReader

__all__ = ["RarReader"]

logger = logging.getLogger(__name__)

BLOCK_MARK = 0x72
BLOCK_MAIN = 0x73
BLOCK_FILE = 0x74
BLOCK_OLD_COMMENT = 0x75
BLOCK_OLD_AV = 0x76
BLOCK_OLD_SUB = 0x77
BLOCK_OLD_RECOVERY = 0x78
BLOCK_OLD_AUTH = 0x79
BLOCK_SUB = 0x7A
BLOCK_ENDARC = 0x7B

BLOCK_NAMES = {
    BLOCK_MARK: "Marker",
    BLOCK_MAIN: "Archive Header",
    BLOCK_FILE: "File",
    BLOCK_OLD_COMMENT: "Old Comment",
    BLOCK_OLD_AV: "Old Authenticity",
    BLOCK_OLD_SUB: "Old Subblock",
    BLOCK_OLD_RECOVERY: "Old Recovery Record",
    BLOCK_OLD_AUTH: "Old Authenticity",
    BLOCK_SUB: "Subblock",
    BLOCK_ENDARC: "Archive End",
}

LONG_BLOCK = 0x8000

MAIN_VOLUME = 0x0001
MAIN_COMMENT = 0x0002
MAIN_SOLID = 0x0008
MAIN_RECOVERY = 0x0040
MAIN_PASSWORD = 0x0080
MAIN_FIRSTVOLUME = 0x0100

FILE_SPLIT_BEFORE = 0x0001
FILE_SPLIT_AFTER = 0x0002
FILE_PASSWORD = 0x0004
FILE_DIRECTORY = 0x00E0
FILE_LARGE = 0x0100
FILE_UNICODE = 0x0200

METHOD_STORE = 0x30

_BASE_HEAD = struct.Struct("<HBHH")
# pack_size, unp_size, host_os, file_crc, ftime, unp_ver, method, name_size, attr
_FILE_HEAD = struct.Struct("<IIBIIBBHI")
_U32 = struct.Struct("<I")


class RarReader(ArchiveReader):
    """Lists the members of a RAR 1.5-4.x archive and their data ranges."""

    MARKER = b"Rar!\x1a\x07\x00"
    RAR5_MARKER = b"Rar!\x1a\x07\x01\x00"

    def __init__(self) -> None:
        super().__init__()
        self._blocks: List[Dict[str, Any]] = []
        self._is_rar5 = False
        self.is_volume = False
        self.is_first_volume = False
        self.is_solid = False
        self.has_recovery = False

    def reset(self) -> None:
        super().reset()
        self._blocks = []
        self._is_rar5 = False
        self.is_volume = False
        self.is_first_volume = False
        self.is_solid = False
        self.has_recovery = False

    def find_marker(self) -> Optional[int]:
        pos = self._find(self.MARKER)
        pos5 = self._find(self.RAR5_MARKER)
        if pos5 is not None and (pos is None or pos5 < pos):
            self._is_rar5 = True
            pos = pos5
        return self._relative(pos)

    def analyze(self) -> None:
        if self._is_rar5:
            raise ArchiveFormatError("RAR 5.0 format is not supported")
        self._walk_blocks(self.start + self.marker_position)

    def parsed_dump(self) -> List[Dict[str, Any]]:
        return [dict(b) for b in self._blocks]

    def summary(self) -> Dict[str, Any]:
        summary = super().summary()
        summary.update(
            is_volume=self.is_volume,
            is_first_volume=self.is_first_volume,
            is_solid=self.is_solid,
            has_recovery=self.has_recovery,
        )
        return summary

    # block walking

    def _handlers(self) -> Dict[int, Callable[[Dict[str, Any], bytes], None]]:
        return {
            BLOCK_MAIN: self._parse_main,
            BLOCK_FILE: self._parse_file,
            BLOCK_SUB: self._parse_sub,
        }

    def _walk_blocks(self, pos: int) -> None:
        handlers = self._handlers()
        while pos + _BASE_HEAD.size <= self.end:
            block, raw = self._read_block(pos)
            if block is None:
                break
            handler = handlers.get(block["head_type"])
            if handler is not None:
                handler(block, raw)
            self._blocks.append(block)
            if self._is_last_block(block):
                break
            pos = block["next_offset"]

    def _is_last_block(self, block: Dict[str, Any]) -> bool:
        return block["head_type"] == BLOCK_ENDARC or self.is_encrypted

    def _read_block(self, pos: int):
        """Decode the block header at *pos*; returns ``(None, b"")`` on clean truncation."""
        head = self._read(pos, _BASE_HEAD.size)
        head_crc, head_type, head_flags, head_size = _BASE_HEAD.unpack(head)
        if head_size < _BASE_HEAD.size:
            raise ArchiveFormatError(f"Invalid block size ({head_size}) at offset {pos}")
        raw = self._read(pos, head_size)
        if len(raw) < head_size:
            if self.is_fragment:
                return None, b""
            raise ArchiveFormatError(f"Unexpected end of data in block header at offset {pos}")

        add_size = 0
        if head_flags & LONG_BLOCK and head_size >= _BASE_HEAD.size + _U32.size:
            add_size = _U32.unpack_from(raw, _BASE_HEAD.size)[0]
        block: Dict[str, Any] = {
            "type": self._block_name(head_type),
            "head_type": head_type,
            "head_crc": head_crc,
            "head_flags": head_flags,
            "head_size": head_size,
            "offset": pos,
            "add_size": add_size,
            "next_offset": pos + head_size + add_size,
        }
        return block, raw

    def _block_name(self, head_type: int) -> str:
        return BLOCK_NAMES.get(head_type, f"Unknown ({head_type:#04x})")

    # block handlers

    def _parse_main(self, block: Dict[str, Any], raw: bytes) -> None:
        flags = block["head_flags"]
        self.is_volume = bool(flags & MAIN_VOLUME)
        self.is_first_volume = bool(flags & MAIN_FIRSTVOLUME)
        self.is_solid = bool(flags & MAIN_SOLID)
        self.has_recovery = bool(flags & MAIN_RECOVERY)
        if flags & MAIN_PASSWORD:
            # everything after the main header is encrypted
            self.is_encrypted = True
            logger.debug("archive headers are encrypted at offset %d", block["offset"])

    def _parse_file(self, block: Dict[str, Any], raw: bytes) -> None:
        self._decode_file_header(block, raw)
        self._add_file(self._file_entry(block, stored_data=True))

    def _parse_sub(self, block: Dict[str, Any], raw: bytes) -> None:
        self._decode_file_header(block, raw)

    def _decode_file_header(self, block: Dict[str, Any], raw: bytes) -> None:
        offset = _BASE_HEAD.size
        if len(raw) < offset + _FILE_HEAD.size:
            raise ArchiveFormatError(f"Invalid file header at offset {block['offset']}")
        (pack_size, unp_size, host_os, file_crc, ftime, unp_ver, method,
         name_size, attr) = _FILE_HEAD.unpack_from(raw, offset)
        offset += _FILE_HEAD.size
        flags = block["head_flags"]
        if flags & FILE_LARGE:
            if len(raw) < offset + 8:
                raise ArchiveFormatError(f"Invalid file header at offset {block['offset']}")
            high_pack, high_unp = struct.unpack_from("<II", raw, offset)
            pack_size += high_pack << 32
            unp_size += high_unp << 32
            offset += 8
        name = raw[offset : offset + name_size]
        if flags & FILE_UNICODE and b"\x00" in name:
            # the unicode-encoded copy follows the plain name after a NUL
            name = name.split(b"\x00", 1)[0]
        block.update(
            pack_size=pack_size,
            unp_size=unp_size,
            host_os=host_os,
            file_crc=f"{file_crc:08x}",
            ftime=ftime,
            unp_ver=unp_ver,
            method=method,
            attr=attr,
            file_name=name.decode("utf-8", errors="replace").replace("\\", "/"),
            data_offset=block["offset"] + block["head_size"],
        )
        block["next_offset"] = block["data_offset"] + pack_size

    def _file_entry(self, block: Dict[str, Any], *, stored_data: bool) -> Entry:
        flags = block["head_flags"]
        is_dir = (flags & FILE_DIRECTORY) == FILE_DIRECTORY
        rng = None
        if stored_data and not is_dir:
            rng = ByteRange(block["data_offset"], block["data_offset"] + block["pack_size"])
        extra: Dict[str, Any] = {"method": block["method"], "crc32": block["file_crc"]}
        if flags & (FILE_SPLIT_BEFORE | FILE_SPLIT_AFTER):
            extra["split"] = True
            extra["split_before"] = bool(flags & FILE_SPLIT_BEFORE)
            extra["split_after"] = bool(flags & FILE_SPLIT_AFTER)
        return Entry(
            name=block["file_name"],
            is_dir=is_dir,
            range=rng,
            compressed=block["method"] != METHOD_STORE,
            encrypted=bool(flags & FILE_PASSWORD),
            size=block["unp_size"],
            packed_size=block["pack_size"],
            extra=extra,
        )

    def _add_file(self, entry: Entry) -> None:
        self._entries.append(entry)
