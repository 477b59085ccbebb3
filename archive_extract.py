"""
extracting stored files from archives, at any nesting depth.

Only the raw bytes of an entry are copied: this works for files that are
stored uncompressed and unencrypted (the usual case for media inside
release archives).  Compressed entries are skipped by :func:`extract_all`.
"""
from __future__ import annotations

import contextlib
import io
import logging
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, List, Tuple

from .archive_info import ArchiveInfo
from .archive_resolver import MAIN_SOURCE, SOURCE_SEPARATOR, normalize_source
from .errors import ArchiveError, UnsupportedArchiveError

__all__ = ["open_archive", "open_member", "extract_all", "safe_member_path"]

logger = logging.getLogger(__name__)

CONTENTS_SUFFIX = ".contents"


def open_archive(source: Path | str | bytes, *, is_fragment: bool = False) -> ArchiveInfo:
    """Return an analyzed :class:`ArchiveInfo` or raise if the type is unsupported."""
    archive = ArchiveInfo()
    if isinstance(source, (bytes, bytearray, memoryview)):
        where = "<buffer>"
        ok = archive.set_buffer(bytes(source), is_fragment)
    else:
        where = str(source)
        ok = archive.open_file(source, is_fragment)
    if not ok:
        raise UnsupportedArchiveError(f"{archive.error}: {where}")
    return archive


@contextlib.contextmanager
def open_member(archive_path: Path | str, member: str, source: str = MAIN_SOURCE) -> Iterator[BinaryIO]:  # noqa: D401 (simple context manager)
    """Yield a readable binary object with the data of *member* at *source*."""
    with open_archive(archive_path) as archive:
        data = archive.extract(member, source)
    yield io.BytesIO(data)


def safe_member_path(source: str, name: str) -> PurePosixPath:
    """Relative output path for *name* at *source*, without any traversal."""
    parts: List[str] = []
    for branch in normalize_source(source).split(SOURCE_SEPARATOR)[1:]:
        parts.append(_clean(branch).name + CONTENTS_SUFFIX)
    parts.extend(_clean(name).parts)
    return PurePosixPath(*parts)


def _clean(name: str) -> PurePosixPath:
    parts = [p for p in PurePosixPath(name.replace("\\", "/")).parts if p not in ("", ".", "..", "/")]
    if not parts:
        raise ValueError(f"Unusable member name: {name!r}")
    return PurePosixPath(*parts)


def extract_all(
    archive: ArchiveInfo,
    destination: Path | str,
    *,
    recurse: bool = True,
) -> Tuple[List[Path], List[Tuple[str, str]]]:
    """Save every readable file of *archive* (and embedded archives) below *destination*.

    Files of an embedded archive ``a.rar`` go to ``a.rar.contents/``.
    Returns the written paths and a list of ``(source, reason)`` pairs for
    everything that was skipped.
    """
    destination = Path(destination)
    written: List[Path] = []
    skipped: List[Tuple[str, str]] = []

    for row in archive.flat_entries(recurse=recurse):
        if row.error:
            skipped.append((row.source, row.error))
            continue
        entry = row.entry
        label = f"{row.source}{SOURCE_SEPARATOR}{entry.name}"
        if entry.is_dir:
            continue
        if entry.compressed or entry.encrypted or entry.range is None:
            reason = "encrypted" if entry.encrypted else "compressed" if entry.compressed else "no data range"
            skipped.append((label, reason))
            continue
        try:
            target = destination / safe_member_path(row.source, entry.name)
        except ValueError as exc:
            skipped.append((label, str(exc)))
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            archive.extract_to_destination(entry.name, target, row.source)
        except ArchiveError as exc:
            logger.warning("could not extract %s: %s", label, exc)
            skipped.append((label, str(exc)))
            continue
        written.append(target)

    return written, skipped
