"""Reader for ZIP archives.

The central directory is the authoritative member list, so it is used
whenever the *End of Central Directory* (EOCD) record can be found::

    struct EOCD {
        uint32 signature = 0x06054b50;
        uint16 this_disk;
        uint16 cd_start_disk;
        uint16 records_on_this_disk;
        uint16 total_records;
        uint32 cd_size;
        uint32 cd_offset;
        uint16 comment_len;
    }

Fragments and truncated files often lack the EOCD (and the directory in
front of it).  In that case we fall back to walking the local file headers
from the first signature on, which works as long as sizes are recorded in
the local headers (no data descriptors).

ZIP64 extensions are not decoded.
"""
from __future__ import annotations

import logging
import struct
from typing import Any, Dict, List, Optional

from .errors import ArchiveFormatError
from .models import ByteRange, Entry
from .reader import ArchiveReader

__all__ = ["ZipReader"]

logger = logging.getLogger(__name__)

LOCAL_SIG = b"PK\x03\x04"
CENTRAL_SIG = b"PK\x01\x02"
EOCD_SIG = b"PK\x05\x06"

FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800

METHOD_STORED = 0

# signature, version, flags, method, time, date, crc, csize, usize, name_len, extra_len
_LOCAL = struct.Struct("<4sHHHHHIIIHH")
# signature, made_by, version, flags, method, time, date, crc, csize, usize,
# name_len, extra_len, comment_len, disk, int_attr, ext_attr, local_offset
_CENTRAL = struct.Struct("<4sHHHHHHIIIHHHHHII")
_EOCD = struct.Struct("<4sHHHHIIH")

_MAX_COMMENT = 0xFFFF


class ZipReader(ArchiveReader):
    """Lists ZIP members and the ranges of their (possibly compressed) data."""

    def __init__(self) -> None:
        super().__init__()
        self._records: List[Dict[str, Any]] = []

    def reset(self) -> None:
        super().reset()
        self._records = []

    def find_marker(self) -> Optional[int]:
        found = [p for p in (self._find(LOCAL_SIG), self._find(EOCD_SIG)) if p is not None]
        return self._relative(min(found)) if found else None

    def analyze(self) -> None:
        eocd = self._find_eocd()
        if eocd is not None:
            self._read_central_directory(eocd)
        else:
            logger.debug("no EOCD record found, scanning local headers")
            self._scan_local_headers(self.start + self.marker_position)
        files = [e for e in self._entries if not e.is_dir]
        # encryption is per member, the archive only counts as encrypted if all are
        self.is_encrypted = bool(files) and all(e.encrypted for e in files)

    def parsed_dump(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._records]

    # central directory

    def _find_eocd(self) -> Optional[int]:
        first = self.start + self.marker_position
        tail_start = max(first, self.end - _EOCD.size - _MAX_COMMENT)
        tail = self._read(tail_start, self.end - tail_start)
        idx = tail.rfind(EOCD_SIG)
        while idx != -1:
            if idx + _EOCD.size <= len(tail):
                comment_len = _EOCD.unpack_from(tail, idx)[7]
                if idx + _EOCD.size + comment_len <= len(tail):
                    return tail_start + idx
            idx = tail.rfind(EOCD_SIG, 0, idx)
        return None

    def _read_central_directory(self, eocd_pos: int) -> None:
        (_, this_disk, cd_disk, on_disk, total, cd_size, cd_offset,
         comment_len) = _EOCD.unpack(self._read(eocd_pos, _EOCD.size))
        self._records.append({
            "type": "End of Central Directory",
            "offset": eocd_pos,
            "total_records": total,
            "cd_size": cd_size,
            "cd_offset": cd_offset,
            "comment_len": comment_len,
        })
        cd_pos = eocd_pos - cd_size
        # offsets are relative to the archive start, which may follow other data
        base = cd_pos - cd_offset
        if cd_pos < self.start or base < self.start:
            raise ArchiveFormatError(f"Invalid central directory offset ({cd_offset})")

        pos = cd_pos
        for _ in range(total):
            raw = self._read(pos, _CENTRAL.size)
            if len(raw) < _CENTRAL.size or raw[:4] != CENTRAL_SIG:
                raise ArchiveFormatError(f"Invalid central directory record at offset {pos}")
            (_, made_by, version, flags, method, mtime, mdate, crc, csize, usize,
             name_len, extra_len, cmt_len, disk, int_attr, ext_attr,
             local_offset) = _CENTRAL.unpack(raw)
            name = self._decode_name(self._read(pos + _CENTRAL.size, name_len), flags)
            record = {
                "type": "Central Directory",
                "offset": pos,
                "file_name": name,
                "flags": flags,
                "method": method,
                "crc32": f"{crc:08x}",
                "compressed_size": csize,
                "uncompressed_size": usize,
                "local_offset": local_offset,
            }
            self._records.append(record)
            data_start = self._local_data_start(base + local_offset)
            self._entries.append(self._make_entry(name, flags, method, crc, csize, usize, data_start))
            pos += _CENTRAL.size + name_len + extra_len + cmt_len

    def _local_data_start(self, header_pos: int) -> Optional[int]:
        raw = self._read(header_pos, _LOCAL.size)
        if len(raw) < _LOCAL.size or raw[:4] != LOCAL_SIG:
            logger.debug("missing local header at offset %d", header_pos)
            return None
        name_len, extra_len = _LOCAL.unpack(raw)[9:11]
        return header_pos + _LOCAL.size + name_len + extra_len

    # local header fallback

    def _scan_local_headers(self, pos: int) -> None:
        while pos + _LOCAL.size <= self.end:
            raw = self._read(pos, _LOCAL.size)
            if raw[:4] != LOCAL_SIG:
                break
            (_, version, flags, method, mtime, mdate, crc, csize, usize,
             name_len, extra_len) = _LOCAL.unpack(raw)
            name = self._decode_name(self._read(pos + _LOCAL.size, name_len), flags)
            data_start = pos + _LOCAL.size + name_len + extra_len
            self._records.append({
                "type": "Local File Header",
                "offset": pos,
                "file_name": name,
                "flags": flags,
                "method": method,
                "crc32": f"{crc:08x}",
                "compressed_size": csize,
                "uncompressed_size": usize,
            })
            sizes_known = not (flags & FLAG_DATA_DESCRIPTOR and csize == 0)
            self._entries.append(
                self._make_entry(name, flags, method, crc, csize, usize, data_start if sizes_known else None)
            )
            if not sizes_known:
                logger.debug("sizes for '%s' are in a data descriptor, stopping scan", name)
                break
            pos = data_start + csize

        if not self._entries and not self._records:
            raise ArchiveFormatError("No valid ZIP records found")

    # helpers

    @staticmethod
    def _decode_name(raw: bytes, flags: int) -> str:
        if flags & FLAG_UTF8:
            return raw.decode("utf-8", errors="replace")
        return raw.decode("cp437")

    @staticmethod
    def _make_entry(name, flags, method, crc, csize, usize, data_start: Optional[int]) -> Entry:
        is_dir = name.endswith("/")
        rng = None
        if data_start is not None and not is_dir:
            rng = ByteRange(data_start, data_start + csize)
        return Entry(
            name=name,
            is_dir=is_dir,
            range=rng,
            compressed=method != METHOD_STORED,
            encrypted=bool(flags & FLAG_ENCRYPTED),
            size=usize,
            packed_size=csize,
            extra={"method": method, "crc32": f"{crc:08x}"},
        )
