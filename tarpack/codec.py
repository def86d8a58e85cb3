from __future__ import annotations

import gzip
import os
import zlib
from typing import BinaryIO, Optional

from .constants import CODEC_GZIP, CODEC_NONE, DEFAULT_GZIP_LEVEL, GZIP_SUFFIX, TAR_SUFFIX


class Codec:
    """Whole-archive byte transform wrapped around the tar stream."""

    def __init__(self, codec_id: int, level: Optional[int] = None):
        self.codec_id = codec_id
        self.level = level

    @classmethod
    def for_path(cls, path: str) -> "Codec":
        return cls(CODEC_GZIP if is_compressed_name(path) else CODEC_NONE)

    def compress(self, data: bytes) -> bytes:
        if self.codec_id == CODEC_NONE:
            return data
        if self.codec_id == CODEC_GZIP:
            level = self.level if self.level is not None else DEFAULT_GZIP_LEVEL
            if not 0 <= level <= 9:
                raise ValueError(f"gzip level must be 0-9, got {level}")
            return gzip.compress(data, compresslevel=level)
        # Unknown/unsupported codec: fail fast
        raise RuntimeError(f"unsupported codec id: {self.codec_id}")

    def open_reader(self, path: str) -> BinaryIO:
        """Open ``path`` as a forward-only stream of archive bytes."""
        if self.codec_id == CODEC_NONE:
            return open(path, "rb")
        if self.codec_id == CODEC_GZIP:
            return gzip.open(path, "rb")  # type: ignore[return-value]
        raise RuntimeError(f"unsupported codec id: {self.codec_id}")


def is_compressed_name(path: str) -> bool:
    return path.lower().endswith(GZIP_SUFFIX)


def is_supported_archive(path: str) -> bool:
    p = path.lower()
    return p.endswith(TAR_SUFFIX) or p.endswith(TAR_SUFFIX + GZIP_SUFFIX)


def archive_filename(name: str, compress: bool) -> str:
    """``name`` plus ``.tar`` or ``.tar.gz``; the name is given without extension."""
    return name + TAR_SUFFIX + (GZIP_SUFFIX if compress else "")


def open_archive_stream(path: str) -> BinaryIO:
    return Codec.for_path(path).open_reader(path)


def write_archive_bytes(path: str, data: bytes, compress: bool, level: Optional[int] = None) -> None:
    """Write ``data`` (gzip-wrapped when ``compress``) via ``<path>.partial`` and an atomic rename.

    The partial file is removed if anything fails before the rename.
    """
    codec = Codec(CODEC_GZIP if compress else CODEC_NONE, level)
    tmp = path + ".partial"
    try:
        with open(tmp, "wb") as f:
            f.write(codec.compress(data))
        os.replace(tmp, path)
    except (OSError, ValueError, RuntimeError, zlib.error):
        if os.path.lexists(tmp):
            os.unlink(tmp)
        raise
