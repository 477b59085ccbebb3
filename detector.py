"""Pick the reader for a byte source by the position of its signature.

Several signatures may occur in the same data: an SFV listing inside a
README inside a RAR is still a RAR.  The outermost container is whichever
format's header comes first, so the reader reporting the smallest marker
position wins, and on equal positions the reader registered first wins.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Tuple

from .errors import UnsupportedArchiveError
from .models import ArchiveType
from .par2_reader import Par2Reader
from .rar_reader import RarReader
from .reader import ArchiveReader
from .sfv_reader import SfvReader
from .source import ByteSource, RangeLike
from .srr_reader import SrrReader
from .zip_reader import ZipReader

__all__ = ["ReaderFactory", "ReaderBinding", "DEFAULT_READERS", "detect_reader"]

logger = logging.getLogger(__name__)

ReaderFactory = Callable[[], ArchiveReader]
ReaderBinding = Mapping[ArchiveType, ReaderFactory]

DEFAULT_READERS: Dict[ArchiveType, ReaderFactory] = {
    ArchiveType.RAR: RarReader,
    ArchiveType.SRR: SrrReader,
    ArchiveType.PAR2: Par2Reader,
    ArchiveType.ZIP: ZipReader,
    ArchiveType.SFV: SfvReader,
}

UNSUPPORTED_MESSAGE = "Source is not a supported archive type"


def detect_reader(
    readers: ReaderBinding,
    *,
    path: Path | str | None = None,
    data: bytes | None = None,
    source: ByteSource | None = None,
    is_fragment: bool = False,
    byte_range: RangeLike = None,
) -> Tuple[ArchiveType, ArchiveReader]:
    """Return the type and reader with the earliest marker in the source.

    Exactly one of *path*, *data* or an open *source* must be given; readers
    built over *source* share its handle.  Every candidate reader that loses
    is closed, also when a reader raises.  Raises
    :class:`UnsupportedArchiveError` when no reader finds its marker.
    """
    if sum(x is not None for x in (path, data, source)) != 1:
        raise ValueError("exactly one of path, data or source is required")

    best: Optional[Tuple[ArchiveType, ArchiveReader]] = None
    best_pos: Optional[int] = None
    reader: Optional[ArchiveReader] = None

    try:
        for archive_type, factory in readers.items():
            reader = factory()
            if source is not None:
                reader.open_source(source, is_fragment, byte_range)
            elif path is not None:
                reader.open_file(path, is_fragment, byte_range)
            else:
                reader.set_buffer(data, is_fragment, byte_range)

            if reader.error:
                logger.debug("%s rejected source: %s", type(reader).__name__, reader.error)
                reader.close()
            elif reader.marker_position is None:
                reader.close()
            elif best_pos is None or reader.marker_position < best_pos:
                if best is not None:
                    best[1].close()
                best, best_pos = (ArchiveType(archive_type), reader), reader.marker_position
            else:
                reader.close()
            reader = None
            if best_pos == 0:
                # nothing can come before the first byte
                break
    except Exception:
        if reader is not None:
            reader.close()
        if best is not None:
            best[1].close()
        raise

    if best is None:
        raise UnsupportedArchiveError(UNSUPPORTED_MESSAGE)
    logger.debug("detected %s at marker position %d", best[0].name, best_pos)
    return best
