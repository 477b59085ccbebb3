import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import BEST, build_rar

from archinfo.cli import cli


@pytest.fixture()
def release(tmp_path: Path, nested_rar: bytes) -> Path:
    path = tmp_path / "release.rar"
    path.write_bytes(nested_rar)
    return path


def test_summary(release: Path):
    result = CliRunner().invoke(cli, ["summary", str(release)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["main_type"] == "RAR"
    assert "archives" not in data

    result = CliRunner().invoke(cli, ["summary", "--full", str(release)])
    assert json.loads(result.stdout)["archives"]["inner.zip"]["main_type"] == "ZIP"


def test_list(release: Path):
    result = CliRunner().invoke(cli, ["list", str(release)])
    assert result.exit_code == 0, result.output
    lines = result.stdout.splitlines()
    assert len(lines) == 4
    assert lines[0].startswith("[main] ---") and lines[0].endswith(" readme.txt")
    assert lines[-1].endswith(" notes.txt") and lines[-1].startswith("[main > inner.zip]")

    result = CliRunner().invoke(cli, ["list", "--no-recurse", "--json", str(release)])
    rows = json.loads(result.stdout)
    assert [r["name"] for r in rows] == ["readme.txt", "inner.zip"]


def test_options_from_environment(tmp_path: Path, release: Path, sfv_data: bytes):
    out = tmp_path / "env.sfv"
    result = CliRunner().invoke(
        cli,
        ["extract", str(release), "inner.sfv", "-o", str(out)],
        env={"ARCHINFO_EXTRACT_SOURCE": "main > inner.zip"},
    )
    assert result.exit_code == 0, result.output
    assert out.read_bytes() == sfv_data


def test_list_shows_failed_branches(tmp_path: Path, inner_zip: bytes):
    path = tmp_path / "packed.rar"
    path.write_bytes(build_rar([("packed.zip", inner_zip, BEST)]))
    result = CliRunner().invoke(cli, ["list", str(path)])
    assert result.exit_code == 0, result.output
    assert "[main] -c-" in result.stdout
    assert "[main > packed.zip] ERROR: The archive is compressed and cannot be read" in result.stdout


def test_extract(tmp_path: Path, release: Path, sfv_data: bytes):
    out = tmp_path / "out.sfv"
    result = CliRunner().invoke(cli, ["extract", str(release), "inner.sfv", "--source", "main > inner.zip", "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert f"Saved {len(sfv_data)} bytes to {out}" in result.stdout
    assert out.read_bytes() == sfv_data


def test_extract_missing_entry(tmp_path: Path, release: Path):
    result = CliRunner().invoke(cli, ["extract", str(release), "nope.txt", "-o", str(tmp_path / "x")])
    assert result.exit_code == 1
    assert "Could not find file info for: (nope.txt) in: (main)" in result.output


def test_unsupported_file(tmp_path: Path):
    path = tmp_path / "junk.bin"
    path.write_bytes(b"\x00\x01 nothing")
    result = CliRunner().invoke(cli, ["summary", str(path)])
    assert result.exit_code == 1
    assert "not a supported archive type" in result.output


def test_extract_all(tmp_path: Path, release: Path):
    dest = tmp_path / "out"
    result = CliRunner().invoke(cli, ["extract-all", str(release), str(dest)])
    assert result.exit_code == 0, result.output
    assert "Extracted 4 files, skipped 0." in result.stdout
    assert (dest / "inner.zip.contents" / "notes.txt").read_bytes() == b"just some notes"


def test_dump(release: Path):
    result = CliRunner().invoke(cli, ["dump", str(release)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["type"] == "RAR"
    assert data["parsed"][0]["type"] == "Marker"
