"""Tests for the per-format readers."""
import struct
import zipfile

from conftest import BEST, STORED, MarkerReader, build_par2, build_rar, build_sfv, build_srr, build_zip

from archinfo.par2_reader import Par2Reader
from archinfo.rar_reader import RarReader
from archinfo.sfv_reader import SfvReader
from archinfo.srr_reader import SrrReader
from archinfo.zip_reader import ZipReader


# RAR

def test_rar_lists_members_with_ranges():
    data = build_rar([("a.txt", b"alpha"), ("dir", None, STORED, 0xE0), ("b.bin", b"xyz" * 10, BEST)])
    reader = RarReader()
    reader.set_buffer(data)
    assert reader.error == ""
    assert reader.marker_position == 0

    a, d, b = reader.entries()
    assert a.name == "a.txt" and not a.compressed and a.size == 5
    assert data[a.range.start : a.range.end] == b"alpha"
    assert d.is_dir and d.range is None
    assert b.compressed and b.packed_size == 30 and b.size == 90
    assert reader.file_count == 2
    assert reader.read_range(a.range) == b"alpha"


def test_rar_entries_without_ranges():
    reader = RarReader()
    reader.set_buffer(build_rar([("a.txt", b"alpha")]))
    assert reader.entries(include_ranges=False)[0].range is None
    assert reader.entries()[0].range is not None


def test_rar_marker_after_prefix():
    data = b"MZ" + b"\x00" * 98 + build_rar([("a.txt", b"alpha")])
    reader = RarReader()
    reader.set_buffer(data)
    assert reader.marker_position == 100
    assert reader.read_range(reader.entries()[0].range) == b"alpha"


def test_rar_split_and_password_flags():
    reader = RarReader()
    reader.set_buffer(build_rar([("part.mkv", b"x" * 8, STORED, 0x02), ("secret.txt", b"s", STORED, 0x04)]))
    part, secret = reader.entries()
    assert part.extra["split_after"] is True and part.extra["split"] is True
    assert secret.encrypted


def test_rar_encrypted_headers():
    reader = RarReader()
    reader.set_buffer(build_rar([("a.txt", b"alpha")], main_flags=0x0080))
    assert reader.error == ""
    assert reader.is_encrypted
    assert reader.entries() == []


def test_rar5_is_reported_unsupported():
    reader = RarReader()
    reader.set_buffer(b"Rar!\x1a\x07\x01\x00" + b"\x00" * 32)
    assert reader.error == "RAR 5.0 format is not supported"


def test_rar_truncated_header_fragment():
    full = build_rar([("a.txt", b"alpha"), ("b.txt", b"bravo")])
    cut = full.index(b"b.txt") - 10
    reader = RarReader()
    reader.set_buffer(full[:cut], is_fragment=True)
    assert reader.error == ""
    assert [e.name for e in reader.entries()] == ["a.txt"]

    reader.set_buffer(full[:cut])
    assert "Unexpected end of data" in reader.error


def test_rar_large_file_header_too_short():
    # LARGE is set but the header has no room for the high size fields
    data = build_rar([("a.txt", b"x", STORED, 0x0100)])
    reader = RarReader()
    reader.set_buffer(data)
    assert reader.error == "Invalid file header at offset 20"
    assert reader.entries() == []


def test_malformed_fields_become_reader_errors():
    class BrokenReader(MarkerReader):
        def analyze(self):
            struct.unpack_from("<I", b"\x00")

    reader = BrokenReader()
    reader.set_buffer(b"MARK")
    assert reader.error.startswith("Invalid archive structure:")
    assert reader.marker_position == 0


def test_rar_parsed_dump_blocks():
    reader = RarReader()
    reader.set_buffer(build_rar([("a.txt", b"alpha")]))
    types = [b["type"] for b in reader.parsed_dump()]
    assert types == ["Marker", "Archive Header", "File", "Archive End"]


def test_rar_open_file_with_range(tmp_path):
    data = b"JUNK" + build_rar([("a.txt", b"alpha")]) + b"TRAILER"
    path = tmp_path / "x.bin"
    path.write_bytes(data)
    with RarReader() as reader:
        assert reader.open_file(path, byte_range=(4, len(data) - 7))
        assert reader.marker_position == 0
        assert reader.start == 4 and reader.file_size == len(data)
        assert reader.read_range(reader.entries()[0].range) == b"alpha"


# ZIP

def test_zip_central_directory():
    data = build_zip([("folder/", b""), ("folder/a.txt", b"alpha"), ("b.txt", b"bravo" * 100)])
    reader = ZipReader()
    reader.set_buffer(data)
    assert reader.error == ""
    folder, a, b = reader.entries()
    assert folder.is_dir and folder.range is None
    assert reader.read_range(a.range) == b"alpha"
    assert not b.compressed
    assert [r["type"] for r in reader.parsed_dump()][0] == "End of Central Directory"


def test_zip_compressed_member_flag():
    data = build_zip([("b.txt", b"bravo" * 100)], compression=zipfile.ZIP_DEFLATED)
    reader = ZipReader()
    reader.set_buffer(data)
    (b,) = reader.entries()
    assert b.compressed and b.size == 500 and b.packed_size < 500


def test_zip_with_prepended_data():
    data = b"JUNK" * 4 + build_zip([("a.txt", b"alpha")])
    reader = ZipReader()
    reader.set_buffer(data)
    assert reader.marker_position == 16
    assert reader.read_range(reader.entries()[0].range) == b"alpha"


def test_zip_local_header_fallback_for_fragments():
    data = build_zip([("a.txt", b"alpha"), ("b.txt", b"bravo")])
    cut = data.index(b"PK\x01\x02")
    reader = ZipReader()
    reader.set_buffer(data[:cut], is_fragment=True)
    assert reader.error == ""
    assert [e.name for e in reader.entries()] == ["a.txt", "b.txt"]
    assert reader.read_range(reader.entries()[1].range) == b"bravo"
    assert {r["type"] for r in reader.parsed_dump()} == {"Local File Header"}


def test_zip_empty_archive():
    reader = ZipReader()
    reader.set_buffer(build_zip([]))
    assert reader.error == ""
    assert reader.entries() == []


# SFV

def test_sfv_entries_and_comments():
    reader = SfvReader()
    reader.set_buffer(build_sfv([("a.rar", b"a"), ("a.r00", b"b")], comment="made by hand"))
    assert reader.error == ""
    assert [e.name for e in reader.entries()] == ["a.rar", "a.r00"]
    assert all(e.range is None for e in reader.entries())
    assert reader.summary()["comments"] == ["made by hand"]
    assert reader.parsed_dump()[0]["checksum"] == reader.entries()[0].extra["checksum"]


def test_sfv_marker_is_first_valid_line():
    text = b"Some readme text\nfile name.rar 0badc0de\n"
    reader = SfvReader()
    reader.set_buffer(text)
    assert reader.marker_position == len(b"Some readme text\n")
    assert reader.entries()[0].name == "file name.rar"


def test_sfv_rejects_binary():
    reader = SfvReader()
    reader.set_buffer(b"a.rar 0badc0de\n\x00\x01\x02")
    assert reader.error


# PAR2

def test_par2_file_descriptions_are_deduplicated():
    reader = Par2Reader()
    reader.set_buffer(build_par2([("a.rar", b"aaaa"), ("a.r00", b"bbbbbb")], repeat=3))
    assert reader.error == ""
    assert [e.name for e in reader.entries()] == ["a.rar", "a.r00"]
    assert reader.entries()[1].size == 6
    summary = reader.summary()
    assert summary["block_size"] == 384000
    assert summary["client"] == "par2tests"
    assert len(reader.parsed_dump()) == 3 * 3 + 1


# SRR

def test_srr_stored_files_and_volumes():
    data = build_srr(
        stored=[("release.nfo", b"NFO TEXT"), ("release.sfv", b"a.rar 00000000\n")],
        volumes=[("release.rar", ["movie.mkv"]), ("release.r00", ["movie.mkv"])],
    )
    reader = SrrReader()
    reader.set_buffer(data)
    assert reader.error == ""
    nfo, sfv, rar, r00 = reader.entries()
    assert reader.read_range(nfo.range) == b"NFO TEXT"
    assert rar.range is None and rar.extra["rar_volume"]
    assert [f.name for f in rar.files] == ["movie.mkv"]
    assert all(f.range is None for f in r00.files)
    summary = reader.summary()
    assert summary["app_name"] == "pyReScene"
    assert summary["rar_files"] == ["release.rar", "release.r00"]
    assert summary["file_count"] == 2
