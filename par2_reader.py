"""Reader for PAR2 recovery sets.

Every PAR2 packet starts with a 64-byte header::

    magic        8 bytes   "PAR2\\0PKT"
    length       u64       whole packet incl. header, multiple of 4
    packet_md5   16 bytes
    set_id       16 bytes
    type         16 bytes  e.g. "PAR 2.0\\0FileDesc"

Only file description packets contribute entries (recovery sets protect
files, they never contain them, so no entry has a data range).
"""
from __future__ import annotations

import struct
from typing import Any, Dict, List, Optional

from .errors import ArchiveFormatError
from .models import Entry
from .reader import ArchiveReader

__all__ = ["Par2Reader"]

PACKET_MAGIC = b"PAR2\x00PKT"

PACKET_MAIN = b"PAR 2.0\x00Main\x00\x00\x00\x00"
PACKET_FILE_DESC = b"PAR 2.0\x00FileDesc"
PACKET_IFSC = b"PAR 2.0\x00IFSC\x00\x00\x00\x00"
PACKET_RECOVERY = b"PAR 2.0\x00RecvSlic"
PACKET_CREATOR = b"PAR 2.0\x00Creator\x00"

PACKET_NAMES = {
    PACKET_MAIN: "Main",
    PACKET_FILE_DESC: "File Description",
    PACKET_IFSC: "Input File Slice Checksum",
    PACKET_RECOVERY: "Recovery Slice",
    PACKET_CREATOR: "Creator",
}

_HEADER = struct.Struct("<8sQ16s16s16s")
# file_id, md5 of the whole file, md5 of the first 16k, length
_FILE_DESC = struct.Struct("<16s16s16sQ")


class Par2Reader(ArchiveReader):
    """Lists the files described by a PAR2 recovery set."""

    def __init__(self) -> None:
        super().__init__()
        self._packets: List[Dict[str, Any]] = []
        self.set_id: Optional[str] = None
        self.block_size: Optional[int] = None
        self.recovery_blocks = 0
        self.creator: Optional[str] = None

    def reset(self) -> None:
        super().reset()
        self._packets = []
        self.set_id = None
        self.block_size = None
        self.recovery_blocks = 0
        self.creator = None

    def find_marker(self) -> Optional[int]:
        return self._relative(self._find(PACKET_MAGIC))

    def analyze(self) -> None:
        seen: Dict[str, Entry] = {}
        pos = self.start + self.marker_position
        while pos + _HEADER.size <= self.end:
            raw = self._read(pos, _HEADER.size)
            magic, length, md5, set_id, ptype = _HEADER.unpack(raw)
            if magic != PACKET_MAGIC:
                # skip any damage until the next packet
                nxt = self._find(PACKET_MAGIC, pos + 1)
                if nxt is None:
                    break
                pos = nxt
                continue
            if length < _HEADER.size or length % 4:
                raise ArchiveFormatError(f"Invalid packet length ({length}) at offset {pos}")
            packet = {
                "type": PACKET_NAMES.get(ptype, ptype.rstrip(b"\x00").decode("latin-1")),
                "offset": pos,
                "length": length,
                "set_id": set_id.hex(),
                "md5": md5.hex(),
            }
            self.set_id = self.set_id or set_id.hex()
            body = self._read(pos + _HEADER.size, length - _HEADER.size)
            if len(body) < length - _HEADER.size and not self.is_fragment:
                raise ArchiveFormatError(f"Unexpected end of data in packet at offset {pos}")
            self._parse_packet(ptype, body, packet, seen)
            self._packets.append(packet)
            pos += length

        self._entries = list(seen.values())

    def _parse_packet(self, ptype: bytes, body: bytes, packet: Dict[str, Any], seen: Dict[str, Entry]) -> None:
        if ptype == PACKET_FILE_DESC and len(body) >= _FILE_DESC.size:
            file_id, md5_full, md5_16k, size = _FILE_DESC.unpack_from(body)
            name = body[_FILE_DESC.size :].rstrip(b"\x00").decode("utf-8", errors="replace")
            packet.update(file_id=file_id.hex(), file_name=name, file_size=size)
            # descriptions are repeated across volumes
            if file_id.hex() not in seen:
                seen[file_id.hex()] = Entry(
                    name=name,
                    size=size,
                    extra={"file_id": file_id.hex(), "hash": md5_full.hex(), "hash_16k": md5_16k.hex()},
                )
        elif ptype == PACKET_MAIN and len(body) >= 12:
            self.block_size, file_count = struct.unpack_from("<QI", body)
            packet.update(block_size=self.block_size, file_count=file_count)
        elif ptype == PACKET_RECOVERY:
            self.recovery_blocks += 1
        elif ptype == PACKET_CREATOR:
            self.creator = body.rstrip(b"\x00").decode("utf-8", errors="replace")
            packet["client"] = self.creator

    def parsed_dump(self) -> List[Dict[str, Any]]:
        return [dict(p) for p in self._packets]

    def summary(self) -> Dict[str, Any]:
        summary = super().summary()
        summary.update(
            set_id=self.set_id,
            block_size=self.block_size,
            recovery_blocks=self.recovery_blocks,
            client=self.creator,
        )
        return summary
