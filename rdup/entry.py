"""File entries as they travel between the rdup tools."""

from __future__ import annotations

import dataclasses
import enum
import stat
from dataclasses import dataclass

BUFSIZE = 8192
LIST_MINSIZE = 6
LIST_SPACEPOS = 5


class OutputFormat(enum.IntEnum):
    """Archive formats that rdup-tr can produce."""

    NONE = 0
    TAR = 1
    CPIO = 2
    PAX = 3
    RDUP = 4


class InputFormat(enum.IntEnum):
    """Kinds of input that rdup-tr and rdup-up accept."""

    NONE = 0
    LIST = 1
    RDUP = 2


_TYPE_CHARS = (
    (stat.S_ISDIR, "d"),
    (stat.S_ISCHR, "c"),
    (stat.S_ISBLK, "b"),
    (stat.S_ISFIFO, "p"),
    (stat.S_ISSOCK, "s"),
    (stat.S_ISLNK, "l"),
)


@dataclass
class Entry:
    """Nearly everything ``stat`` knows about a path, plus its names.

    For symbolic and hard links ``target`` holds the link target and
    ``size`` is the length of the link's own name.
    """

    name: str | None = None
    target: str | None = None
    plus: bool = True
    hardlink: bool = False
    name_size: int = 0
    uid: int = 0
    user: str | None = None
    gid: int = 0
    group: str | None = None
    mode: int = 0
    ctime: int = 0
    mtime: int = 0
    atime: int = 0
    size: int = 0
    dev: int = 0
    rdev: int = 0
    ino: int = 0

    def copy(self) -> Entry:
        """Return an independent copy of this entry."""
        return dataclasses.replace(self)

    def type_char(self) -> str:
        """Return the one-letter type: d, c, b, p, s, l, h or -."""
        for test, char in _TYPE_CHARS:
            if test(self.mode):
                return char
        return "h" if self.hardlink else "-"

    def is_symlink(self) -> bool:
        """True when the entry is a symbolic link."""
        return stat.S_ISLNK(self.mode)

    def is_link(self) -> bool:
        """True for symbolic links and hard links alike."""
        return self.is_symlink() or self.hardlink