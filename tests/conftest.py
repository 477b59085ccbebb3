"""Pytest configuration and synthetic archive builders for archinfo tests."""
from __future__ import annotations

import hashlib
import io
import struct
import zipfile
import zlib
from typing import Iterable, List, Optional, Sequence, Tuple

import pytest

from archinfo.models import ByteRange, Entry
from archinfo.reader import ArchiveReader

RAR_MARKER = b"Rar!\x1a\x07\x00"
STORED = 0x30
BEST = 0x35


# RAR 1.5-4.x

def _rar_main(flags: int = 0) -> bytes:
    return struct.pack("<HBHH", 0x90CF, 0x73, flags, 13) + b"\x00" * 6


def _rar_file_header(name: str, packed: int, unpacked: int, method: int, flags: int) -> bytes:
    raw_name = name.encode()
    head_size = 7 + 25 + len(raw_name)
    body = struct.pack("<IIBIIBBHI", packed, unpacked, 2, 0, 0, 29, method, len(raw_name), 0x20)
    return struct.pack("<HBHH", 0, 0x74, flags | 0x8000, head_size) + body + raw_name


def _rar_end() -> bytes:
    return struct.pack("<HBHH", 0x3DC4, 0x7B, 0x4000, 7)


def build_rar(
    files: Sequence[Tuple] = (),
    *,
    main_flags: int = 0,
    end: bool = True,
) -> bytes:
    """Build a RAR 4 archive from ``(name, data[, method[, flags]])`` tuples.

    No compression happens: *method* only sets the header field, the data is
    written as given.  Directories are ``(name, None, STORED, 0xE0)``.
    """
    out = bytearray(RAR_MARKER + _rar_main(main_flags))
    for item in files:
        name, data = item[0], item[1]
        method = item[2] if len(item) > 2 else STORED
        flags = item[3] if len(item) > 3 else 0
        data = data or b""
        unpacked = len(data) if method == STORED else len(data) * 3
        out += _rar_file_header(name, len(data), unpacked, method, flags)
        out += data
    if end:
        out += _rar_end()
    return bytes(out)


# ZIP (via the standard library)

def build_zip(files: Iterable[Tuple[str, bytes]], compression: int = zipfile.ZIP_STORED) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=compression) as zf:
        for name, data in files:
            zf.writestr(name, data)
    return buf.getvalue()


def mark_zip_encrypted(data: bytes) -> bytes:
    """Set the encryption bit on every local and central directory header."""
    out = bytearray(data)
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        pos = out.find(signature)
        while pos != -1:
            out[pos + flag_offset] |= 0x01
            pos = out.find(signature, pos + 4)
    return bytes(out)


# SFV

def build_sfv(files: Iterable[Tuple[str, bytes]], comment: str = "generated by tests") -> bytes:
    lines = [f"; {comment}"]
    for name, data in files:
        lines.append(f"{name} {zlib.crc32(data):08X}")
    return ("\r\n".join(lines) + "\r\n").encode()


# PAR2

SET_ID = b"S" * 16


def _par2_packet(ptype: bytes, body: bytes) -> bytes:
    length = 64 + len(body)
    md5 = hashlib.md5(SET_ID + ptype + body).digest()
    return b"PAR2\x00PKT" + struct.pack("<Q", length) + md5 + SET_ID + ptype + body


def build_par2(files: Iterable[Tuple[str, bytes]], *, repeat: int = 1, creator: str = "par2tests") -> bytes:
    files = list(files)
    ids = [hashlib.md5(name.encode()).digest() for name, _ in files]
    main = _par2_packet(b"PAR 2.0\x00Main\x00\x00\x00\x00", struct.pack("<QI", 384000, len(files)) + b"".join(ids))
    descs = b""
    for file_id, (name, data) in zip(ids, files):
        raw_name = name.encode()
        raw_name += b"\x00" * (-len(raw_name) % 4)
        body = file_id + hashlib.md5(data).digest() + hashlib.md5(data[:16384]).digest()
        descs += _par2_packet(b"PAR 2.0\x00FileDesc", body + struct.pack("<Q", len(data)) + raw_name)
    raw_creator = creator.encode()
    raw_creator += b"\x00" * (-len(raw_creator) % 4)
    return (main + descs) * repeat + _par2_packet(b"PAR 2.0\x00Creator\x00", raw_creator)


# SRR

def build_srr(
    stored: Iterable[Tuple[str, bytes]],
    volumes: Iterable[Tuple[str, Sequence[str]]],
    app_name: str = "pyReScene",
) -> bytes:
    raw_app = app_name.encode()
    out = bytearray(struct.pack("<HBHH", 0x6969, 0x69, 0x0001, 7 + 2 + len(raw_app)))
    out += struct.pack("<H", len(raw_app)) + raw_app
    for name, data in stored:
        raw_name = name.encode()
        out += struct.pack("<HBHH", 0x6A6A, 0x6A, 0x8000, 7 + 4 + 2 + len(raw_name))
        out += struct.pack("<IH", len(data), len(raw_name)) + raw_name + data
    for volume, names in volumes:
        raw_name = volume.encode()
        out += struct.pack("<HBHH", 0x7171, 0x71, 0, 7 + 2 + len(raw_name))
        out += struct.pack("<H", len(raw_name)) + raw_name
        out += RAR_MARKER + _rar_main()
        for name in names:
            # packed data is stripped from the copy in the SRR
            out += _rar_file_header(name, 1000, 1000, STORED, 0)
        out += _rar_end()
    return bytes(out)


# fake readers

class MarkerReader(ArchiveReader):
    """Reader that only looks for ``MARKER`` and lists ``ENTRIES``."""

    MARKER = b"MARK"
    ENTRIES: List[Entry] = []

    def find_marker(self) -> Optional[int]:
        return self._relative(self._find(self.MARKER))

    def analyze(self) -> None:
        self._entries = list(self.ENTRIES)

    def parsed_dump(self):
        return []


def marker_reader(marker: bytes, entries: Sequence[Entry] = (), name: str = "MarkerReader"):
    return type(name, (MarkerReader,), {"MARKER": marker, "ENTRIES": list(entries)})


# fixtures

SFV_FILES = [("movie.mkv", b"matroska"), ("sample.mkv", b"sample")]


@pytest.fixture()
def sfv_data() -> bytes:
    return build_sfv(SFV_FILES)


@pytest.fixture()
def inner_zip(sfv_data: bytes) -> bytes:
    return build_zip([("inner.sfv", sfv_data), ("notes.txt", b"just some notes")])


@pytest.fixture()
def nested_rar(inner_zip: bytes) -> bytes:
    """RAR > stored ZIP > stored SFV, plus a plain text file at the top."""
    return build_rar([("readme.txt", b"hello there"), ("inner.zip", inner_zip)])


@pytest.fixture()
def range_of():
    def _range_of(haystack: bytes, needle: bytes) -> ByteRange:
        start = haystack.index(needle)
        return ByteRange(start, start + len(needle))

    return _range_of
