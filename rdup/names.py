"""Cached lookups between user and group names and numeric ids."""

from __future__ import annotations

import grp
import pwd


class NameCache:
    """Remembers name and id lookups made against the local system."""

    def __init__(self) -> None:
        self._users: dict[int, str] = {}
        self._groups: dict[int, str] = {}
        self._uids: dict[str, int] = {}
        self._gids: dict[str, int] = {}

    def user_name(self, uid: int) -> str | None:
        """Return the name of ``uid``, or None if it has none."""
        if uid in self._users:
            return self._users[uid]
        try:
            name = pwd.getpwuid(uid).pw_name
        except KeyError:
            return None
        self._users[uid] = name
        return name

    def group_name(self, gid: int) -> str | None:
        """Return the name of ``gid``, or None if it has none."""
        if gid in self._groups:
            return self._groups[gid]
        try:
            name = grp.getgrgid(gid).gr_name
        except KeyError:
            return None
        self._groups[gid] = name
        return name

    def uid_for(self, user: str | None, uid: int) -> int:
        """Return the local uid of ``user``, or ``uid`` if it is unknown here.

        A given uid of 0 is always kept.
        """
        if uid == 0:
            return 0
        if user is None:
            return uid
        if user in self._uids:
            return self._uids[user]
        try:
            local = pwd.getpwnam(user).pw_uid
        except KeyError:
            return uid
        self._uids[user] = local
        return local

    def gid_for(self, group: str | None, gid: int) -> int:
        """Return the local gid of ``group``, or ``gid`` if it is unknown here."""
        if gid == 0:
            return 0
        if group is None:
            return gid
        if group in self._gids:
            return self._gids[group]
        try:
            local = grp.getgrnam(group).gr_gid
        except KeyError:
            return gid
        self._gids[group] = local
        return local