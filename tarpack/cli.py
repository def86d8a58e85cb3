from __future__ import annotations

import argparse
import os
import stat
import sys
import time
from typing import List, Optional

from tarpack.builder import write_archive
from tarpack.codec import is_supported_archive, open_archive_stream
from tarpack.constants import DEFAULT_ARCHIVE_NAME, TYPE_HARDLINK, TYPE_SYMLINK
from tarpack.errors import TarError, UnsupportedArchiveError
from tarpack.extractor import ExistsPolicy, extract_archive, iter_headers


def _prompt_overwrite(path: str) -> ExistsPolicy:
    """Interactive overwrite decision for an existing directory."""
    print(f"Directory '{path}' already exists.")
    try:
        answer = input("Do you want to overwrite it? (y/n): ")
    except EOFError:
        answer = ""
    if answer.strip().lower() == "y":
        print(f"Overwriting directory: {path}")
        return ExistsPolicy.OVERWRITE
    return ExistsPolicy.SKIP


def _mode_string(mode: int, kind: str) -> str:
    type_char = {
        "dir": "d",
        "symlink": "l",
        "hardlink": "h",
        "chardev": "c",
        "blockdev": "b",
        "fifo": "p",
    }.get(kind, "-")
    return type_char + stat.filemode(mode & 0o777)[1:]


def cmd_pack(
    path: str,
    *,
    archive_name: str = DEFAULT_ARCHIVE_NAME,
    compress: bool = False,
    outdir: str = ".",
    sort_entries: bool = False,
    level: Optional[int] = None,
) -> bool:
    """Pack a file or directory tree into ``<archive_name>.tar`` or ``.tar.gz``.

    Args:
        path: File or directory to archive; its basename is the top-level entry.
        archive_name: Output name without extension.
        compress: Wrap the archive in gzip.
        outdir: Directory the archive is written to.
        sort_entries: Visit directory children in sorted order for reproducible output.
        level: gzip compression level 0-9 (default 6).
    """
    if not os.path.lexists(path):
        raise FileNotFoundError(f"No such file or directory: {path}")
    t0 = time.time()
    out, counts = write_archive(path, archive_name, compress, outdir=outdir, sort_entries=sort_entries, level=level)
    dt = max(0.000001, time.time() - t0)
    summary = ", ".join(f"{n} {k}" for k, n in sorted(counts.items()))
    print(f"Successfully created {out} ({summary}; {dt:.1f}s)")
    return True


def cmd_unpack(archive: str, *, outdir: str = ".", exists: str = "ask", quiet: bool = False) -> bool:
    """Unpack a ``.tar`` or ``.tar.gz`` archive into ``outdir``.

    Args:
        archive: Archive path; gzip is inferred from the ``.gz`` suffix.
        outdir: Destination directory.
        exists: Existing-directory policy: ask, overwrite, skip, or fail.
        quiet: Limit output to the summary line.
    """
    if not is_supported_archive(archive):
        raise UnsupportedArchiveError(f"Unsupported file type: {archive} (expected .tar or .tar.gz)")
    policy = _prompt_overwrite if exists == "ask" else ExistsPolicy(exists)
    os.makedirs(outdir, exist_ok=True)
    report = extract_archive(archive, outdir, policy, verbose=not quiet)
    if report.implicit_end:
        print(f"Warning: {archive} ended without an end-of-archive marker", file=sys.stderr)
    print(
        f"Successfully unpacked {archive}: entries={report.entries} ({report.bytes_written} bytes) "
        f"files={report.files} dirs={report.dirs} symlinks={report.symlinks} hardlinks={report.hardlinks} "
        f"devices={report.devices} fifos={report.fifos}; skipped={report.skipped_dirs} "
        f"warnings={len(report.warnings)}"
    )
    return True


def cmd_list(archive: str) -> bool:
    """List archive entries.

    Args:
        archive: Path to a ``.tar`` or ``.tar.gz`` file.
    """
    if not is_supported_archive(archive):
        raise UnsupportedArchiveError(f"Unsupported file type: {archive} (expected .tar or .tar.gz)")
    with open_archive_stream(archive) as f:
        for hdr in iter_headers(f):
            line = f"{_mode_string(hdr.mode, hdr.kind)}\t{hdr.size}\t{hdr.file_name}"
            if hdr.typeflag == TYPE_SYMLINK:
                line += f" -> {hdr.linkname}"
            elif hdr.typeflag == TYPE_HARDLINK:
                line += f" => {hdr.linkname}"
            print(line)
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="tarpack",
        description="Pack and unpack USTAR .tar and .tar.gz archives",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    # pack
    ap_pack = sub.add_parser("pack", help="Pack a directory or file")
    ap_pack.add_argument("path", help="Directory or file to pack")
    ap_pack.add_argument("-c", "--compress", action="store_true", help="Compress with gzip (.tar.gz)")
    ap_pack.add_argument(
        "name",
        nargs="?",
        default=DEFAULT_ARCHIVE_NAME,
        help=f"Archive name without extension (default: {DEFAULT_ARCHIVE_NAME})",
    )
    ap_pack.add_argument("--outdir", default=".", help="Directory to write the archive to")
    ap_pack.add_argument("--sort", action="store_true", help="Store directory entries in sorted order")
    ap_pack.add_argument("--level", type=int, choices=range(0, 10), metavar="0-9", help="gzip compression level (default 6)")

    # unpack
    ap_unpack = sub.add_parser("unpack", help="Unpack an archive")
    ap_unpack.add_argument("archive", help="Archive path (.tar or .tar.gz)")
    ap_unpack.add_argument("--outdir", default=".", help="Output directory")
    ap_unpack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    ap_unpack.add_argument(
        "--exists",
        choices=["ask", "overwrite", "skip", "fail"],
        default="ask",
        help=(
            "What to do if a directory already exists: ask (prompt), overwrite (remove and recreate), "
            "skip (keep it and merge entries), or fail (abort). Default: ask"
        ),
    )

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    args, extra = ap.parse_known_args(argv)
    # `pack <path> -c <name>`: argparse fills the optional name from the
    # positional run before the flag, leaving the real name unmatched.
    if args.cmd == "pack" and len(extra) == 1 and not extra[0].startswith("-") and args.name == DEFAULT_ARCHIVE_NAME:
        args.name = extra.pop()
    if extra:
        ap.error(f"unrecognized arguments: {' '.join(extra)}")
    try:
        if args.cmd == "pack":
            cmd_pack(
                args.path,
                archive_name=args.name,
                compress=args.compress,
                outdir=args.outdir,
                sort_entries=args.sort,
                level=args.level,
            )
        elif args.cmd == "unpack":
            cmd_unpack(args.archive, outdir=args.outdir, exists=args.exists, quiet=args.quiet)
        elif args.cmd == "list":
            cmd_list(args.archive)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (TarError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
