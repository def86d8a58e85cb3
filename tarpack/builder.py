from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .accounts import NameResolver, SystemAccountResolver
from .codec import archive_filename, write_archive_bytes
from .constants import DEFAULT_ARCHIVE_NAME, TYPE_REGULAR
from .header import InodeMap, encode_header
from .pathutil import arcname_for
from .records import END_MARKER, padding_for


class ArchiveBuilder:
    """Assembles a USTAR archive in memory from one or more filesystem subtrees.

    Entries are named relative to the parent of each added root, so the root's
    basename becomes the first path component. Hard links are detected through
    an inode map that lives as long as the builder.
    """

    def __init__(self, resolver: Optional[NameResolver] = None, sort_entries: bool = False):
        self.resolver = resolver or SystemAccountResolver()
        self.sort_entries = sort_entries
        self.buf = bytearray()
        self.inode_map: InodeMap = {}
        self.counts: Dict[str, int] = {}
        self._finalized = False

    def add(self, root_path: str) -> None:
        """Walk ``root_path`` depth-first, appending a record for every entry."""
        if self._finalized:
            raise RuntimeError("Archive already finalized")
        root = os.path.normpath(os.fspath(root_path))
        base = os.path.dirname(os.path.abspath(root))
        self._add_entry(root, base)

    def finalize(self) -> bytes:
        """Append the end-of-archive marker and return the complete byte sequence."""
        if self._finalized:
            raise RuntimeError("Archive already finalized")
        self.buf += END_MARKER
        self._finalized = True
        self.inode_map.clear()
        return bytes(self.buf)

    # internals
    def _add_entry(self, path: str, base: str) -> None:
        st = os.lstat(path)
        arcname = arcname_for(os.path.abspath(path), base)
        hdr = encode_header(path, arcname, st, self.inode_map, self.resolver)
        self.buf += hdr.pack()
        self.counts[hdr.kind] = self.counts.get(hdr.kind, 0) + 1

        if hdr.typeflag == TYPE_REGULAR:
            self.inode_map[(st.st_dev, st.st_ino)] = arcname
            self._append_content(path, hdr.size)
        elif stat.S_ISDIR(st.st_mode):
            for child in self._children(path):
                self._add_entry(child, base)

    def _append_content(self, path: str, size: int) -> None:
        with open(path, "rb") as f:
            data = f.read()
        if len(data) != size:
            raise OSError(f"File changed size while archiving: {path} ({size} -> {len(data)} bytes)")
        self.buf += data
        self.buf += b"\x00" * padding_for(size)

    def _children(self, path: str) -> List[str]:
        with os.scandir(path) as it:
            names = [entry.name for entry in it]
        if self.sort_entries:
            names.sort()
        return [os.path.join(path, name) for name in names]


def build_archive(root_path: str, *, resolver: Optional[NameResolver] = None, sort_entries: bool = False) -> bytes:
    """Build the complete archive for ``root_path`` (headers, padded content, end marker)."""
    builder = ArchiveBuilder(resolver=resolver, sort_entries=sort_entries)
    builder.add(root_path)
    return builder.finalize()


def write_archive(
    root_path: str,
    archive_name: str = DEFAULT_ARCHIVE_NAME,
    compress: bool = False,
    *,
    outdir: str = ".",
    resolver: Optional[NameResolver] = None,
    sort_entries: bool = False,
    level: Optional[int] = None,
) -> Tuple[Path, Dict[str, int]]:
    """Build ``root_path`` and write it as ``<archive_name>.tar`` (or ``.tar.gz``).

    ``level`` is the gzip compression level (default 6); it is ignored without ``compress``.
    Returns the written path and per-kind entry counts.
    """
    builder = ArchiveBuilder(resolver=resolver, sort_entries=sort_entries)
    builder.add(root_path)
    data = builder.finalize()
    out = Path(outdir) / archive_filename(archive_name, compress)
    write_archive_bytes(str(out), data, compress, level)
    return out, dict(builder.counts)
