"""Ingest utilities shared by CLI commands and the API facade.

Bank exports arrive as UTF-8 (often with a BOM) or, from older online banking
portals, as Windows-1252. :func:`read_csv_file` accepts both.
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path

from ..logging_setup import get_logger

logger = get_logger(__name__)

_ENCODINGS = ("utf-8-sig", "cp1252")


def read_csv_file(csv_path: str | PathLike[str]) -> str:
    """Return the text of ``csv_path`` decoded with the first encoding that fits."""

    data = Path(csv_path).read_bytes()
    for encoding in _ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            logger.debug("%s is not %s", csv_path, encoding)
    raise ValueError(f"Cannot decode {csv_path} as any of: {', '.join(_ENCODINGS)}")


__all__ = ["read_csv_file"]
