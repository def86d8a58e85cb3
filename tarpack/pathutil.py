from __future__ import annotations

import os

from .errors import UnsafePathError


def norm_path(p: str) -> str:
    """Normalize archive member paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Reject absolute paths
    - Strip trailing slashes (directory names carry one on the wire)
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/")
    if p.startswith("/"):
        raise UnsafePathError(f"Absolute member path not allowed: {p}")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise UnsafePathError(f"Member path may not contain '..': {p}")
    if not parts:
        raise UnsafePathError(f"Empty member path: {p!r}")
    return "/".join(parts)


def member_dest(dest: str, member: str) -> str:
    """Filesystem path of an archive member extracted under ``dest``."""
    return os.path.join(dest, *norm_path(member).split("/"))


def arcname_for(path: str, base: str) -> str:
    """Archive-relative name of ``path``, using forward slashes."""
    rel = os.path.relpath(path, start=base)
    return rel.replace(os.sep, "/")
