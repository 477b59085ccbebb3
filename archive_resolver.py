"""
Walks the tree of archives embedded in other archives.

Every entry is addressed by its *source path*: the label of the outermost
archive (``main``) followed by the names of the embedded archives leading
to it, joined with ``" > "``, e.g.::

    main
    main > CD1.rar
    main > CD1.rar > sample.zip

The flattened listing tags every entry with that path, and the same path
is what :func:`resolve_range` needs to find an entry again, which keeps
same-named files at different depths apart.

Embedded archives are recognised by file extension only (``.rar``,
``.r00``.., ``.zip``, ``.srr``, ``.par2``, ``.sfv``).  The whole extension
has to match: ``notes.rarx`` or ``library.txt`` are never candidates.
"""
from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, List, Optional, Sequence

from .errors import EntryNotFoundError
from .models import ByteRange, Entry, FlatEntry

if TYPE_CHECKING:  # pragma: no cover
    from .archive_info import ArchiveInfo

__all__ = [
    "MAIN_SOURCE",
    "SOURCE_SEPARATOR",
    "is_archive_name",
    "join_source",
    "normalize_source",
    "flatten_entries",
    "flat_entries",
    "resolve_range",
]

logger = logging.getLogger(__name__)

MAIN_SOURCE = "main"
SOURCE_SEPARATOR = " > "

# rar, old-style volumes (r00, r01, ...), zip and the release metadata formats
_ARCHIVE_EXT_RE = re.compile(r"^(?:rar|r\d+|zip|srr|par2|sfv)$", re.IGNORECASE)


def is_archive_name(name: str) -> bool:
    """Return True if *name* has the extension of a supported archive type."""
    suffix = PurePosixPath(name.replace("\\", "/")).suffix
    return bool(suffix) and _ARCHIVE_EXT_RE.match(suffix[1:]) is not None


def join_source(source: str, name: str) -> str:
    return f"{source}{SOURCE_SEPARATOR}{name}"


def normalize_source(source: Optional[str]) -> str:
    """Prefix *source* with the main label unless it already starts with it."""
    if not source:
        return MAIN_SOURCE
    if source == MAIN_SOURCE or source.startswith(MAIN_SOURCE + SOURCE_SEPARATOR):
        return source
    return join_source(MAIN_SOURCE, source)


def flatten_entries(entries: Sequence[Entry], source: str, include_all: bool = False) -> List[FlatEntry]:
    """Tag *entries* with *source*; with *include_all* also add nested listings."""
    rows = [FlatEntry(source=source, entry=e) for e in entries]
    if include_all:
        for entry in entries:
            branch = join_source(source, entry.name)
            rows.extend(FlatEntry(source=branch, entry=child) for child in entry.files)
    return rows


def flat_entries(
    archive: "ArchiveInfo",
    recurse: bool = True,
    include_all: bool = False,
    source: Optional[str] = None,
) -> List[FlatEntry]:
    """Return the entries of *archive* and (optionally) all embedded archives.

    Only embedded archives that allow recursion (RAR, ZIP) are merged in
    unless *include_all* is set.  A branch that cannot be read never stops
    the walk; it shows up as a single error record at its position.

    *source* is the path of *archive* itself and is only passed when
    recursing, in which case the archive's own entries were already listed
    by the caller.
    """
    rows: List[FlatEntry] = []
    if source is None:
        source = MAIN_SOURCE
        rows.extend(flatten_entries(archive.entries(), source, include_all))

    if not recurse or not archive.contains_archive():
        return rows

    for name, child in archive.archive_list().items():
        if not child.error and not include_all and not child.allows_recursion():
            continue
        branch = join_source(source, name)

        if child.error:
            logger.debug("skipping branch %s: %s", branch, child.error)
            rows.append(FlatEntry(source=branch, error=child.error))
            continue
        files = child.entries()
        if not files:
            rows.append(FlatEntry(source=branch, error="No files found"))
            continue

        rows.extend(flatten_entries(files, branch, include_all))
        if child.contains_archive():
            rows.extend(flat_entries(child, True, include_all, branch))

    return rows


def resolve_range(archive: "ArchiveInfo", name: str, source: Optional[str] = MAIN_SOURCE) -> ByteRange:
    """Return the absolute data range of file *name* at *source*.

    Branches of recursable formats are searched first; the listings of the
    other formats (e.g. files stored in an SRR inside a RAR) only when that
    finds nothing.  Raises :class:`EntryNotFoundError` if no readable
    (non-directory, ranged) entry matches both the name and the source path
    exactly.
    """
    source = normalize_source(source)
    for include_all in (False, True):
        for row in flat_entries(archive, recurse=True, include_all=include_all):
            if row.entry is None or row.is_dir or row.range is None:
                continue
            if row.name == name and row.source == source:
                return row.range
    raise EntryNotFoundError(f"Could not find file info for: ({name}) in: ({source})")
