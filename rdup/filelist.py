"""Reading and writing the list of backed-up entries, and selecting output."""

from __future__ import annotations

import os
import re
import stat
from typing import BinaryIO, Iterator

from .entry import LIST_MINSIZE, Entry
from .messages import msg
from .protocol import read_line
from .tree import EntryTree

HEADER = "# mode dev inode linktype uid gid pathlen filesize path\n"

_SPACEPOS = 5
_LEADING_INT = re.compile(rb"\s*([+-]?\d+)")


class _Corrupt(Exception):
    """A line of the file list that cannot be used."""


def _atoi(text: bytes) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _next_field(raw: bytes, pos: int, what: str) -> tuple[bytes, int]:
    end = raw.find(b" ", pos)
    if end == -1:
        raise _Corrupt(what)
    return raw[pos:end], end + 1


def _parse(raw: bytes, lineno: int) -> Entry:
    no_space = f"Corrupt entry at line: {lineno}, no space found"
    if len(raw) < LIST_MINSIZE:
        raise _Corrupt(f"Corrupt entry at line: {lineno}, line to short")
    if raw[_SPACEPOS:_SPACEPOS + 1] != b" ":
        raise _Corrupt(no_space)
    mode = _atoi(raw[:_SPACEPOS])
    if mode == 0:
        raise _Corrupt(f"Corrupt entry at line: {lineno}, mode should be numerical")

    field, pos = _next_field(raw, _SPACEPOS + 1, no_space)
    dev = _atoi(field)
    if dev == 0:
        raise _Corrupt(f"Corrupt entry at line: {lineno}, zero device")

    field, pos = _next_field(raw, pos, no_space)
    ino = _atoi(field)
    if ino == 0:
        raise _Corrupt(f"Corrupt entry at line: {lineno}, zero inode")

    field, pos = _next_field(
        raw, pos, f"Corrupt entry at line: {lineno}, no link information found"
    )
    linktype = field[:1].decode("latin-1") or " "
    if linktype not in ("-", "h", "l"):
        raise _Corrupt(f"Illegal link type at line: {lineno}")

    # uid and gid are present but not used
    _, pos = _next_field(raw, pos, no_space)
    _, pos = _next_field(raw, pos, no_space)

    field, pos = _next_field(raw, pos, no_space)
    name_size = _atoi(field)
    if name_size == 0:
        raise _Corrupt(f"Pathname lenght can not be zero at line: {lineno}")

    field, pos = _next_field(raw, pos, no_space)
    size = _atoi(field)

    rest = raw[pos:]
    if len(rest) == 1:
        raise _Corrupt(f"Actual pathname length can not be zero at line: {lineno}")
    # the last character is the line delimiter
    full = rest[:-1]
    if len(full) != name_size:
        raise _Corrupt(
            f"Corrupt entry at line: {lineno}, length `{len(full)}' "
            f"does not match `{name_size}'"
        )

    entry = Entry(mode=mode, dev=dev, ino=ino, uid=0, gid=0,
                  ctime=0, mtime=0, atime=0, user=None, group=None)
    if linktype in ("h", "l"):
        name = full[:size]
        entry.name_size = len(full)
        entry.name = os.fsdecode(name)
        entry.size = len(name)
        entry.target = os.fsdecode(full[size + 4:])
    else:
        entry.name = os.fsdecode(full)
        entry.name_size = name_size
        entry.size = size
        entry.target = None
    entry.hardlink = linktype == "h"
    return entry


def read_filelist(stream: BinaryIO | None) -> EntryTree:
    """Read a file list written by ``write_filelist`` into a tree.

    Comment lines are skipped; corrupt lines are reported and skipped.
    """
    tree = EntryTree()
    if stream is None:
        return tree
    lineno = 1
    while (raw := read_line(stream)) is not None:
        if raw.startswith(b"#"):
            continue
        try:
            entry = _parse(raw, lineno)
        except _Corrupt as exc:
            msg(str(exc))
            lineno += 1
            continue
        tree.insert(entry)
        lineno += 1
    return tree


def _list_line(entry: Entry) -> str:
    linktype = "-"
    if entry.hardlink:
        linktype = "h"
    if entry.is_symlink():
        linktype = "l"
    name = f"{entry.name} -> {entry.target}" if entry.is_link() else str(entry.name)
    size = 0 if stat.S_ISDIR(entry.mode) else entry.size
    return (
        f"{entry.mode:5d} {entry.dev} {entry.ino} {linktype} {entry.uid} "
        f"{entry.gid} {entry.name_size} {size} {name}\n"
    )


def write_filelist(out: BinaryIO, tree: EntryTree) -> None:
    """Write the visible entries of ``tree`` as a file list, header first."""
    out.write(HEADER.encode("ascii"))
    for entry in tree.visible():
        out.write(os.fsencode(_list_line(entry)))


def _too_large(entry: Entry, max_size: int) -> bool:
    return max_size != 0 and stat.S_ISREG(entry.mode) and entry.size > max_size


def select_changed(tree: EntryTree, timestamp: int = 0,
                   max_size: int = 0) -> Iterator[Entry]:
    """Yield the entries of ``tree`` that are to be backed up.

    Directories always qualify. Other entries are dropped when they are
    regular files above ``max_size`` (0: no limit) or, with a non-zero
    ``timestamp``, when their ctime is older than it.
    """
    for entry in tree.visible():
        if stat.S_ISDIR(entry.mode):
            yield entry
            continue
        if _too_large(entry, max_size):
            continue
        if timestamp == 0 or entry.ctime >= timestamp:
            yield entry


def select_new(tree: EntryTree, max_size: int = 0) -> Iterator[Entry]:
    """Yield the visible entries, leaving out regular files above ``max_size``."""
    for entry in tree.visible():
        if not _too_large(entry, max_size):
            yield entry