"""Helper files that record ownership when chown is not possible."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

USRGRPINFO = "._rdup_."

_LINE = re.compile(r"([^:]{1,16}):\s*([+-]?\d+)/([^:]{1,16}):\s*([+-]?\d+)")


@dataclass(frozen=True)
class Ownership:
    """User and group, by name and by id."""

    user: str
    uid: int
    group: str
    gid: int


def _helper_path(directory: str, base: str | None) -> str:
    if base is None:
        return f"{directory}/{USRGRPINFO}"
    return f"{directory}/{USRGRPINFO}{base}"


def write_ownership(directory: str, base: str | None, ownership: Ownership) -> bool:
    """Write the helper file for ``base`` in ``directory``.

    With ``base`` None the file describes the directory itself. Returns
    False when the file cannot be written.
    """
    try:
        with open(_helper_path(directory, base), "w") as handle:
            handle.write(
                f"{ownership.user}:{ownership.uid}/"
                f"{ownership.group}:{ownership.gid}\n"
            )
    except OSError:
        return False
    return True


def read_ownership(directory: str, base: str | None) -> Ownership | None:
    """Read a helper file; None if it is missing or malformed."""
    try:
        with open(_helper_path(directory, base)) as handle:
            content = handle.read()
    except OSError:
        return None
    match = _LINE.match(content)
    if not match:
        return None
    user, uid, group, gid = match.groups()
    return Ownership(user, int(uid), group, int(gid))