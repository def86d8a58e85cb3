"""
tarpack: a USTAR tape-archive codec with a small pack/unpack CLI.

Features:

- 512-byte USTAR headers with octal-text fields, checksums, and prefix/name
  splitting for paths longer than 100 bytes.
- Builder that walks a subtree depth-first and detects hard links by inode.
- Extractor that recreates regular files, hard and symbolic links, device
  nodes, directories, and FIFOs from a forward-only byte stream.
- Optional gzip wrapping of the whole archive (.tar.gz).

Checksums are written but not verified on read, and the archive is assembled
in memory before it is written.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "header",
    "builder",
    "extractor",
    "codec",
    "accounts",
]

# Programmatic API: tarpack.builder.build_archive/write_archive and
# tarpack.extractor.extract/extract_archive; the CLI wraps them in cmd_pack/cmd_unpack.
