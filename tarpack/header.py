from __future__ import annotations

import os
import stat
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .accounts import NameResolver, SystemAccountResolver
from .constants import (
    BLOCK_SIZE,
    CHECKSUM_OFFSET,
    CHECKSUM_SIZE,
    DEVMAJOR_SHIFT,
    DEVMINOR_MASK,
    GNAME_SIZE,
    LINKNAME_SIZE,
    MODE_MASK,
    NAME_SIZE,
    PREFIX_SIZE,
    TYPE_BLOCKDEV,
    TYPE_CHARDEV,
    TYPE_DIRECTORY,
    TYPE_FIFO,
    TYPE_HARDLINK,
    TYPE_NAMES,
    TYPE_REGULAR,
    TYPE_SYMLINK,
    UNAME_SIZE,
    USTAR_MAGIC,
    USTAR_VERSION,
)
from .errors import HeaderFieldOverflow, MalformedHeader, NameTooLongError, UnsupportedFileType


# USTAR header (fixed 512 bytes), all fields are raw byte strings:
#   offset size field
#        0  100 name
#      100    8 mode
#      108    8 uid
#      116    8 gid
#      124   12 size
#      136   12 mtime
#      148    8 checksum
#      156    1 typeflag
#      157  100 linkname
#      257    6 magic ("ustar\0")
#      263    2 version ("00")
#      265   32 uname
#      297   32 gname
#      329    8 devmajor
#      337    8 devminor
#      345  155 prefix
#      500   12 padding
_HEADER_STRUCT = struct.Struct("100s8s8s8s12s12s8s1s100s6s2s32s32s8s8s155s12s")
assert _HEADER_STRUCT.size == BLOCK_SIZE

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"

InodeMap = Dict[Tuple[int, int], str]


def _encode_str(s: str) -> bytes:
    return s.encode(_ENCODING, _ERRORS)


def _decode_str(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode(_ENCODING, _ERRORS)


def _fixed(data: bytes, width: int, name: str) -> bytes:
    if len(data) > width:
        raise HeaderFieldOverflow(name, data, width)
    return data.ljust(width, b"\x00")


def _octal(value: int, digits: int, width: int, name: str) -> bytes:
    """Zero-padded octal text followed by NUL, e.g. 0o644 -> b"0000644\\0"."""
    if value < 0:
        raise HeaderFieldOverflow(name, value, width)
    raw = f"{value:0{digits}o}".encode("ascii") + b"\x00"
    return _fixed(raw, width, name)


def _parse_octal(raw: bytes, name: str) -> int:
    text = raw.split(b"\x00", 1)[0].strip(b" ")
    if not text:
        return 0
    try:
        return int(text, 8)
    except ValueError:
        raise MalformedHeader(name, raw) from None


def header_checksum(block: bytes) -> int:
    """Sum of all 512 unsigned bytes with the checksum field counted as spaces."""
    if len(block) != BLOCK_SIZE:
        raise ValueError(f"Header block must be {BLOCK_SIZE} bytes, got {len(block)}")
    return (
        sum(block[:CHECKSUM_OFFSET])
        + ord(" ") * CHECKSUM_SIZE
        + sum(block[CHECKSUM_OFFSET + CHECKSUM_SIZE:])
    )


def split_name(path: bytes) -> Tuple[bytes, bytes]:
    """Split an encoded path into (prefix, name) for the two name fields.

    The name keeps the longest tail that fits 100 bytes, cut at a '/' so the
    decoder's ``prefix + "/" + name`` reproduces the path exactly.
    """
    if len(path) <= NAME_SIZE:
        return b"", path
    # A separator at index i leaves len(path) - i - 1 bytes for the name.
    start = max(1, len(path) - NAME_SIZE - 1)
    # The trailing '/' of a directory name is not a split point.
    i = path.find(b"/", start, len(path) - 1)
    if i == -1 or i > PREFIX_SIZE:
        raise NameTooLongError(path.decode(_ENCODING, _ERRORS))
    return path[:i], path[i + 1:]


@dataclass
class TarHeader:
    name: str
    mode: int = 0
    uid: int = 0
    gid: int = 0
    size: int = 0
    mtime: int = 0
    typeflag: bytes = TYPE_REGULAR
    linkname: str = ""
    uname: str = ""
    gname: str = ""
    devmajor: int = 0
    devminor: int = 0
    prefix: str = ""
    checksum: int = 0
    magic: bytes = USTAR_MAGIC
    version: bytes = USTAR_VERSION
    malformed: List[MalformedHeader] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        if self.prefix:
            return f"{self.prefix}/{self.name}"
        return self.name

    @property
    def file_size(self) -> int:
        return self.size

    @property
    def kind(self) -> str:
        return TYPE_NAMES.get(self.typeflag, f"unknown({self.typeflag!r})")

    @property
    def is_device(self) -> bool:
        return self.typeflag in (TYPE_CHARDEV, TYPE_BLOCKDEV)

    @property
    def has_payload(self) -> bool:
        return self.typeflag == TYPE_REGULAR

    def pack(self) -> bytes:
        """Serialize to exactly 512 bytes; the checksum is computed last and stored on self."""
        if self.is_device:
            devmajor = _octal(self.devmajor, 7, 8, "devmajor")
            devminor = _octal(self.devminor, 7, 8, "devminor")
        else:
            devmajor = devminor = b"\x00" * 8
        fields = [
            _fixed(_encode_str(self.name), NAME_SIZE, "name"),
            _octal(self.mode, 7, 8, "mode"),
            _octal(self.uid, 7, 8, "uid"),
            _octal(self.gid, 7, 8, "gid"),
            _octal(self.size, 11, 12, "size"),
            _octal(self.mtime, 1, 12, "mtime"),
            b" " * CHECKSUM_SIZE,
            _fixed(self.typeflag, 1, "typeflag"),
            _fixed(_encode_str(self.linkname), LINKNAME_SIZE, "linkname"),
            _fixed(self.magic, 6, "magic"),
            _fixed(self.version, 2, "version"),
            _fixed(_encode_str(self.uname)[:UNAME_SIZE], UNAME_SIZE, "uname"),
            _fixed(_encode_str(self.gname)[:GNAME_SIZE], GNAME_SIZE, "gname"),
            devmajor,
            devminor,
            _fixed(_encode_str(self.prefix), PREFIX_SIZE, "prefix"),
            b"\x00" * 12,
        ]
        block = _HEADER_STRUCT.pack(*fields)
        self.checksum = header_checksum(block)
        chk = f"{self.checksum:06o}".encode("ascii") + b"\x00 "
        return block[:CHECKSUM_OFFSET] + chk + block[CHECKSUM_OFFSET + CHECKSUM_SIZE:]

    @classmethod
    def unpack(cls, block: bytes) -> "TarHeader":
        """Decode a 512-byte record. Unparsable numbers become 0 and are listed in ``malformed``."""
        if len(block) != BLOCK_SIZE:
            raise ValueError(f"Header block must be {BLOCK_SIZE} bytes, got {len(block)}")
        (
            name,
            mode,
            uid,
            gid,
            size,
            mtime,
            checksum,
            typeflag,
            linkname,
            magic,
            version,
            uname,
            gname,
            devmajor,
            devminor,
            prefix,
            _padding,
        ) = _HEADER_STRUCT.unpack(block)
        malformed: List[MalformedHeader] = []

        def num(raw: bytes, label: str) -> int:
            try:
                return _parse_octal(raw, label)
            except MalformedHeader as exc:
                malformed.append(exc)
                return 0

        return cls(
            name=_decode_str(name),
            mode=num(mode, "mode"),
            uid=num(uid, "uid"),
            gid=num(gid, "gid"),
            size=num(size, "size"),
            mtime=num(mtime, "mtime"),
            checksum=num(checksum, "checksum"),
            typeflag=typeflag,
            linkname=_decode_str(linkname),
            magic=magic,
            version=version,
            uname=_decode_str(uname),
            gname=_decode_str(gname),
            devmajor=num(devmajor, "devmajor"),
            devminor=num(devminor, "devminor"),
            prefix=_decode_str(prefix),
            malformed=malformed,
        )


def encode_header(
    entry_path: str,
    arcname: str,
    st: os.stat_result,
    inode_map: InodeMap,
    resolver: Optional[NameResolver] = None,
) -> TarHeader:
    """Describe one filesystem entry (``st`` from lstat) as a USTAR header.

    ``inode_map`` is only read here; the builder records first sightings.
    """
    fmt = st.st_mode
    linkname = ""
    devmajor = devminor = 0
    first_seen = inode_map.get((st.st_dev, st.st_ino))
    if first_seen is not None:
        typeflag = TYPE_HARDLINK
        linkname = first_seen
    elif stat.S_ISREG(fmt):
        typeflag = TYPE_REGULAR
    elif stat.S_ISLNK(fmt):
        typeflag = TYPE_SYMLINK
        linkname = os.readlink(entry_path)
    elif stat.S_ISCHR(fmt) or stat.S_ISBLK(fmt):
        typeflag = TYPE_CHARDEV if stat.S_ISCHR(fmt) else TYPE_BLOCKDEV
        devmajor = st.st_rdev >> DEVMAJOR_SHIFT
        devminor = st.st_rdev & DEVMINOR_MASK
    elif stat.S_ISDIR(fmt):
        typeflag = TYPE_DIRECTORY
    elif stat.S_ISFIFO(fmt):
        typeflag = TYPE_FIFO
    else:
        raise UnsupportedFileType(entry_path, fmt)

    if typeflag == TYPE_DIRECTORY:
        arcname = arcname.rstrip("/") + "/"
    prefix, name = split_name(_encode_str(arcname))

    if len(_encode_str(linkname)) > LINKNAME_SIZE:
        raise HeaderFieldOverflow("linkname", linkname, LINKNAME_SIZE)

    if typeflag in (TYPE_REGULAR, TYPE_DIRECTORY):
        size = st.st_size
    else:
        size = 0

    resolver = resolver or SystemAccountResolver()
    uname, gname = resolver.resolve(st.st_uid, st.st_gid)

    return TarHeader(
        name=name.decode(_ENCODING, _ERRORS),
        prefix=prefix.decode(_ENCODING, _ERRORS),
        mode=st.st_mode & MODE_MASK,
        uid=st.st_uid,
        gid=st.st_gid,
        size=size,
        mtime=max(0, int(st.st_mtime)),
        typeflag=typeflag,
        linkname=linkname,
        uname=uname,
        gname=gname,
        devmajor=devmajor,
        devminor=devminor,
    )
