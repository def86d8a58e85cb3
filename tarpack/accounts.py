from __future__ import annotations

from typing import Dict, Optional, Protocol, Tuple

try:  # pragma: no cover - availability depends on platform
    import pwd as _pwd
    import grp as _grp
except ImportError:  # pragma: no cover - non-POSIX platforms have no account database
    _pwd = None  # type: ignore
    _grp = None  # type: ignore


class NameResolver(Protocol):
    def resolve(self, uid: int, gid: int) -> Tuple[str, str]:
        """Return (user name, group name); empty strings when unknown."""
        ...


class SystemAccountResolver:
    """Resolve owner/group names from the system account database (passwd/group)."""

    def __init__(self):
        self._users: Dict[int, str] = {}
        self._groups: Dict[int, str] = {}

    def resolve(self, uid: int, gid: int) -> Tuple[str, str]:
        return self._user(uid), self._group(gid)

    def _user(self, uid: int) -> str:
        if uid not in self._users:
            name = ""
            if _pwd is not None:
                try:
                    name = _pwd.getpwuid(uid).pw_name
                except KeyError:
                    name = ""
            self._users[uid] = name
        return self._users[uid]

    def _group(self, gid: int) -> str:
        if gid not in self._groups:
            name = ""
            if _grp is not None:
                try:
                    name = _grp.getgrgid(gid).gr_name
                except KeyError:
                    name = ""
            self._groups[gid] = name
        return self._groups[gid]


class StaticResolver:
    """Fixed uid/gid tables; handy for reproducible archives and tests."""

    def __init__(self, users: Optional[Dict[int, str]] = None, groups: Optional[Dict[int, str]] = None):
        self.users = dict(users or {})
        self.groups = dict(groups or {})

    def resolve(self, uid: int, gid: int) -> Tuple[str, str]:
        return self.users.get(uid, ""), self.groups.get(gid, "")
