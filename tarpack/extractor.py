from __future__ import annotations

import errno
import os
import shutil
import stat
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple, Union

from .codec import open_archive_stream
from .constants import (
    DEVMAJOR_SHIFT,
    MODE_MASK,
    TYPE_BLOCKDEV,
    TYPE_CHARDEV,
    TYPE_DIRECTORY,
    TYPE_FIFO,
    TYPE_HARDLINK,
    TYPE_REGULAR,
    TYPE_SYMLINK,
    KNOWN_TYPES,
)
from .errors import (
    DirectoryExistsError,
    MetadataError,
    PrivilegeError,
    TarError,
    TruncatedArchiveError,
    UnknownTypeFlag,
    UnsafePathError,
)
from .header import TarHeader
from .pathutil import member_dest
from .records import is_zero_block, padding_for, read_block, read_exact, skip_exact


class ExistsPolicy(Enum):
    """What to do when a directory entry names a path that already exists."""

    OVERWRITE = "overwrite"  # remove the existing tree and recreate it empty
    SKIP = "skip"  # keep the existing directory; entries merge into it
    FAIL = "fail"  # abort extraction with DirectoryExistsError


ExistsDecision = Union[ExistsPolicy, Callable[[str], ExistsPolicy]]


@dataclass
class ExtractReport:
    files: int = 0
    hardlinks: int = 0
    symlinks: int = 0
    devices: int = 0
    dirs: int = 0
    fifos: int = 0
    skipped_dirs: int = 0
    overwritten_dirs: int = 0
    bytes_written: int = 0
    implicit_end: bool = False
    warnings: List[TarError] = field(default_factory=list)

    @property
    def entries(self) -> int:
        return self.files + self.hardlinks + self.symlinks + self.devices + self.dirs + self.fifos


def _skip_payload(stream: BinaryIO, size: int) -> None:
    skip_exact(stream, size + padding_for(size))


def iter_headers(stream: BinaryIO) -> Iterator[TarHeader]:
    """Yield each header in order, skipping regular-file payloads.

    Stops at the first zero block or when the stream runs out.
    """
    while True:
        block = read_block(stream)
        if block is None or is_zero_block(block):
            return
        hdr = TarHeader.unpack(block)
        yield hdr
        if hdr.has_payload or hdr.typeflag not in KNOWN_TYPES:
            _skip_payload(stream, hdr.size)


class ArchiveExtractor:
    """Recreates filesystem entries from a forward-only archive byte stream.

    Failures that leave the stream aligned (device or FIFO creation denied,
    unknown type flags, metadata that cannot be applied) are printed as
    warnings and collected on the report; everything else propagates.
    """

    def __init__(self, dest: str = ".", exists: ExistsDecision = ExistsPolicy.SKIP, *, verbose: bool = False):
        self.dest = dest
        self.exists = exists
        self.verbose = verbose
        self._deferred_dirs: List[Tuple[str, int, int]] = []

    def extract(self, stream: BinaryIO) -> ExtractReport:
        report = ExtractReport()
        self._deferred_dirs = []
        while True:
            block = read_block(stream)
            if block is None:
                # Stream ran out before an end marker; keep what was extracted.
                report.implicit_end = True
                break
            if is_zero_block(block):
                break
            hdr = TarHeader.unpack(block)
            for exc in hdr.malformed:
                self._warn(report, exc, hdr.file_name)
            self._dispatch(stream, hdr, report)
        # Children are in place; now directories may become read-only.
        for path, mode, mtime in reversed(self._deferred_dirs):
            self._safe_chmod(report, path, mode)
            self._safe_utime(report, path, mtime)
        self._deferred_dirs = []
        return report

    # internals
    def _dispatch(self, stream: BinaryIO, hdr: TarHeader, report: ExtractReport) -> None:
        flag = hdr.typeflag
        if flag not in KNOWN_TYPES:
            self._warn(report, UnknownTypeFlag(hdr.file_name, flag))
            _skip_payload(stream, hdr.size)
            return
        path = member_dest(self.dest, hdr.file_name)
        if flag == TYPE_REGULAR:
            self._extract_file(stream, hdr, path, report)
        elif flag == TYPE_HARDLINK:
            self._extract_hardlink(hdr, path, report)
        elif flag == TYPE_SYMLINK:
            self._extract_symlink(hdr, path, report)
        elif flag in (TYPE_CHARDEV, TYPE_BLOCKDEV):
            self._extract_device(hdr, path, report)
        elif flag == TYPE_DIRECTORY:
            self._extract_dir(hdr, path, report)
        elif flag == TYPE_FIFO:
            self._extract_fifo(hdr, path, report)

    def _extract_file(self, stream: BinaryIO, hdr: TarHeader, path: str, report: ExtractReport) -> None:
        size = hdr.file_size
        data = read_exact(stream, size)
        if len(data) != size:
            raise TruncatedArchiveError(hdr.file_name, size, len(data))
        self._prepare(path, hdr.file_name)
        if os.path.islink(path):
            os.unlink(path)
        with open(path, "wb") as f:
            f.write(data)
        skip_exact(stream, padding_for(size))
        if self.verbose:
            print(f" extracting: {hdr.file_name}")
        self._safe_chmod(report, path, hdr.mode)
        self._safe_utime(report, path, hdr.mtime)
        report.files += 1
        report.bytes_written += size

    def _extract_hardlink(self, hdr: TarHeader, path: str, report: ExtractReport) -> None:
        target = member_dest(self.dest, hdr.linkname)
        self._confine(target, hdr.linkname)
        self._prepare(path, hdr.file_name)
        self._clear(path)
        os.link(target, path)
        if self.verbose:
            print(f"    linking: {hdr.file_name} => {hdr.linkname}")
        report.hardlinks += 1

    def _extract_symlink(self, hdr: TarHeader, path: str, report: ExtractReport) -> None:
        self._prepare(path, hdr.file_name)
        self._clear(path)
        os.symlink(hdr.linkname, path)
        if self.verbose:
            print(f" symlinking: {hdr.file_name} -> {hdr.linkname}")
        report.symlinks += 1

    def _extract_device(self, hdr: TarHeader, path: str, report: ExtractReport) -> None:
        kind = stat.S_IFCHR if hdr.typeflag == TYPE_CHARDEV else stat.S_IFBLK
        mode = hdr.mode & MODE_MASK
        device = (hdr.devmajor << DEVMAJOR_SHIFT) | hdr.devminor
        self._prepare(path, hdr.file_name)
        mknod = getattr(os, "mknod", None)
        try:
            if mknod is None:
                raise OSError(errno.ENOSYS, "device nodes are not supported on this platform")
            self._clear(path)
            mknod(path, kind | mode, device)
        except OSError as exc:
            self._warn(report, PrivilegeError(hdr.file_name, exc))
            return
        if self.verbose:
            print(f"   mknod:    {hdr.file_name} ({hdr.devmajor},{hdr.devminor})")
        self._safe_chmod(report, path, mode)
        report.devices += 1

    def _extract_dir(self, hdr: TarHeader, path: str, report: ExtractReport) -> None:
        self._confine(path, hdr.file_name)
        if os.path.isdir(path) and not os.path.islink(path):
            decision = self._decide(path)
            if decision == ExistsPolicy.FAIL:
                raise DirectoryExistsError(path)
            if decision == ExistsPolicy.SKIP:
                if self.verbose:
                    print(f"   skipping: {hdr.file_name} (exists)")
                report.skipped_dirs += 1
                return
            shutil.rmtree(path)
            os.mkdir(path)
            report.overwritten_dirs += 1
            if self.verbose:
                print(f"overwriting: {hdr.file_name}")
        else:
            os.makedirs(path)
            if self.verbose:
                print(f"   creating: {hdr.file_name}")
        self._deferred_dirs.append((path, hdr.mode, hdr.mtime))
        report.dirs += 1

    def _extract_fifo(self, hdr: TarHeader, path: str, report: ExtractReport) -> None:
        mode = hdr.mode & MODE_MASK
        self._prepare(path, hdr.file_name)
        self._clear(path)
        try:
            os.mkfifo(path, mode)
        except PermissionError as exc:
            self._warn(report, PrivilegeError(hdr.file_name, exc))
            return
        if self.verbose:
            print(f"   mkfifo:   {hdr.file_name}")
        self._safe_chmod(report, path, mode)
        report.fifos += 1

    def _decide(self, path: str) -> ExistsPolicy:
        if isinstance(self.exists, ExistsPolicy):
            return self.exists
        return ExistsPolicy(self.exists(path))

    def _confine(self, path: str, member: str) -> None:
        """Raise UnsafePathError when ``path``'s parent resolves outside ``dest``.

        Member names are already lexically safe; this catches symlinks extracted
        earlier that would redirect later entries.
        """
        root = os.path.realpath(self.dest)
        parent = os.path.realpath(os.path.dirname(path) or ".")
        if os.path.commonpath([root, parent]) != root:
            raise UnsafePathError(f"Member path escapes the destination through a symlink: {member}")

    def _prepare(self, path: str, member: str) -> None:
        self._confine(path, member)
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)

    @staticmethod
    def _clear(path: str) -> None:
        """Remove a non-directory left at ``path`` so a link or node can take its place."""
        if os.path.lexists(path) and not (os.path.isdir(path) and not os.path.islink(path)):
            os.unlink(path)

    def _warn(self, report: ExtractReport, exc: TarError, context: Optional[str] = None) -> None:
        report.warnings.append(exc)
        prefix = f"{context}: " if context else ""
        print(f"Warning: {prefix}{exc}", file=sys.stderr)

    def _safe_chmod(self, report: ExtractReport, path: str, mode: int) -> None:
        try:
            os.chmod(path, mode & MODE_MASK)
        except OSError as exc:
            self._warn(report, MetadataError(path, "mode", exc))

    def _safe_utime(self, report: ExtractReport, path: str, mtime: int) -> None:
        try:
            os.utime(path, (mtime, mtime))
        except OSError as exc:
            self._warn(report, MetadataError(path, "timestamps", exc))


def extract(stream: BinaryIO, dest: str = ".", exists: ExistsDecision = ExistsPolicy.SKIP, *, verbose: bool = False) -> ExtractReport:
    return ArchiveExtractor(dest, exists, verbose=verbose).extract(stream)


def extract_archive(
    archive_path: str,
    dest: str = ".",
    exists: ExistsDecision = ExistsPolicy.SKIP,
    *,
    verbose: bool = False,
) -> ExtractReport:
    """Extract a ``.tar`` or ``.tar.gz`` file; compression is inferred from the suffix."""
    with open_archive_stream(archive_path) as f:
        return extract(f, dest, exists, verbose=verbose)
