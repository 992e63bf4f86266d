"""Reading and writing rdup entry headers and table-of-contents lines.

An entry header looks like::

    +- 0775 1260367200 1000 miekg 1000 miekg 18 2947
    /home/miekg/bin/tt

followed, for regular files, by the file contents in blocks.
"""

from __future__ import annotations

import os
import re
import stat
import time
from typing import BinaryIO, Iterator, TextIO

from .entry import LIST_MINSIZE, Entry, InputFormat, OutputFormat
from .messages import msg
from .protocol import read_line, write_block, write_block_header


class EntryError(ValueError):
    """Raised when an entry cannot be parsed or read."""


_TYPES = {
    "-": (stat.S_IFREG, False),
    "d": (stat.S_IFDIR, False),
    "l": (stat.S_IFLNK, False),
    "h": (stat.S_IFREG, True),
    "c": (stat.S_IFCHR, False),
    "b": (stat.S_IFBLK, False),
    "p": (stat.S_IFIFO, False),
    "s": (stat.S_IFSOCK, False),
}

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _field(line: str, pos: int, what: str, lineno: int) -> tuple[str, int]:
    end = line.find(" ", pos)
    if end == -1:
        raise EntryError(f"Malformed input for {what} at line: {lineno}")
    return line[pos:end], end + 1


def _from_list(path: str) -> Entry:
    try:
        st = os.lstat(path)
    except OSError as exc:
        raise EntryError(f"Could not stat path `{path}': {exc.strerror}") from exc
    entry = Entry(
        name=path,
        name_size=len(os.fsencode(path)),
        plus=True,
        mode=st.st_mode,
        uid=st.st_uid,
        gid=st.st_gid,
        size=st.st_size,
        dev=st.st_dev,
        ino=st.st_ino,
        rdev=st.st_rdev,
        ctime=int(st.st_ctime),
        mtime=int(st.st_mtime),
        atime=int(st.st_atime),
    )
    # hard link information is lost here: lstat cannot tell
    if entry.is_symlink():
        try:
            entry.target = os.readlink(path)
        except OSError as exc:
            msg(f"Error reading link `{path}': {exc.strerror}")
    return entry


def _from_rdup(line: str, lineno: int, output_format: OutputFormat) -> Entry:
    if len(line) < LIST_MINSIZE:
        raise EntryError(f"Corrupt entry `{line}' in input at line: {lineno}")
    if line[0] not in "+-":
        raise EntryError(
            f"First character should '-' or '+', `{line}' at line: {lineno}"
        )
    entry = Entry(plus=line[0] == "+")
    if output_format != OutputFormat.RDUP and not entry.plus:
        raise EntryError(
            "Removing files is not supported for any output except rdup"
        )
    try:
        entry.mode, entry.hardlink = _TYPES[line[1]]
    except KeyError:
        raise EntryError("Type must be one of d, l, h, -, c, b, p or s") from None

    digits = line[3:7].ljust(4, "\0")
    perm = sum((ord(c) - 48) * w for c, w in zip(digits, (512, 64, 8, 1)))
    if not 0 <= perm <= 0o7777:
        raise EntryError(f"Invalid permissions at line: {lineno}")
    entry.mode |= perm

    mtime, pos = _field(line, 8, "m_time", lineno)
    entry.mtime = _atoi(mtime)
    uid, pos = _field(line, pos, "uid", lineno)
    entry.uid = _atoi(uid)
    entry.user, pos = _field(line, pos, "user", lineno)
    gid, pos = _field(line, pos, "gid", lineno)
    entry.gid = _atoi(gid)
    entry.group, pos = _field(line, pos, "group", lineno)
    name_size, pos = _field(line, pos, "path length", lineno)
    entry.name_size = _atoi(name_size)

    rest = line[pos:]
    if stat.S_ISCHR(entry.mode) or stat.S_ISBLK(entry.mode):
        major, comma, minor = rest.partition(",")
        if not comma:
            raise EntryError(f"No major,minor found for device at line: {lineno}")
        entry.size = 0
        entry.rdev = os.makedev(_atoi(major), _atoi(minor))
    else:
        entry.size = _atoi(rest)
    return entry


def parse_entry(
    line: str,
    lineno: int,
    input_format: InputFormat = InputFormat.RDUP,
    output_format: OutputFormat = OutputFormat.RDUP,
) -> Entry:
    """Parse one header line (or, for list input, one path) into an Entry."""
    if input_format == InputFormat.LIST:
        return _from_list(line)
    return _from_rdup(line, lineno, output_format)


def _read_name(stream: BinaryIO, entry: Entry) -> None:
    raw = stream.read(entry.name_size)
    if len(raw) != entry.name_size:
        raise EntryError(
            f"Reported name size ({entry.name_size}) does not match "
            f"actual name size ({len(raw)})"
        )
    if not raw.startswith(b"/"):
        raise EntryError(f"Pathname does not start with /: `{os.fsdecode(raw)}'")
    if entry.is_link():
        # the size field tells where "name -> target" is to be cut
        entry.name = os.fsdecode(raw[:entry.size])
        entry.target = os.fsdecode(raw[entry.size + 4:])
    else:
        entry.name = os.fsdecode(raw)
        entry.target = None


def iter_entries(
    stream: BinaryIO,
    input_format: InputFormat = InputFormat.RDUP,
    output_format: OutputFormat = OutputFormat.RDUP,
) -> Iterator[Entry]:
    """Yield entries read from ``stream``.

    For rdup input the path following each header is read as well; the
    caller must consume any content blocks before asking for the next
    entry. ``name_size`` keeps the value from the header.
    """
    lineno = 0
    while (raw := read_line(stream)) is not None:
        lineno += 1
        if raw.endswith(b"\n"):
            raw = raw[:-1]
        entry = parse_entry(os.fsdecode(raw), lineno, input_format, output_format)
        if input_format == InputFormat.RDUP:
            _read_name(stream, entry)
        yield entry


def _owner(name: str | None) -> str:
    return name if name is not None else "-"


def format_header(entry: Entry) -> str:
    """Return the rdup header line and path for ``entry``."""
    kind = entry.type_char()
    prefix = (
        f"{'+' if entry.plus else '-'}{kind} {entry.mode & 0o7777:04o} "
        f"{entry.mtime} {entry.uid} {_owner(entry.user)} "
        f"{entry.gid} {_owner(entry.group)}"
    )
    if kind in "bc":
        return (
            f"{prefix} {entry.name_size} "
            f"{os.major(entry.rdev)},{os.minor(entry.rdev)}\n{entry.name}"
        )
    if kind in "lh":
        full = f"{entry.name} -> {entry.target}"
        return f"{prefix} {len(os.fsencode(full))} {entry.size}\n{full}"
    return f"{prefix} {entry.name_size} {entry.size}\n{entry.name}"


def write_header(out: BinaryIO, entry: Entry) -> None:
    """Write the header of ``entry`` to a binary stream."""
    out.write(os.fsencode(format_header(entry)))


def write_data(out: BinaryIO, data: bytes) -> None:
    """Write ``data`` as one block of file contents."""
    write_block_header(out, len(data))
    write_block(out, data)


def strmode(mode: int) -> str:
    """Return the nine-character symbolic permissions, as ``ls -l`` shows."""

    def execute(xbit: int, special: int, on: str, off: str) -> str:
        if mode & special:
            return on if mode & xbit else off
        return "x" if mode & xbit else "-"

    return "".join(
        (
            "r" if mode & stat.S_IRUSR else "-",
            "w" if mode & stat.S_IWUSR else "-",
            execute(stat.S_IXUSR, stat.S_ISUID, "s", "S"),
            "r" if mode & stat.S_IRGRP else "-",
            "w" if mode & stat.S_IWGRP else "-",
            execute(stat.S_IXGRP, stat.S_ISGID, "s", "S"),
            "r" if mode & stat.S_IROTH else "-",
            "w" if mode & stat.S_IWOTH else "-",
            execute(stat.S_IXOTH, stat.S_ISVTX, "t", "T"),
        )
    )


def format_table(entry: Entry) -> str:
    """Return a table-of-contents line in the style of ``tar -tv``."""
    parts = [
        "+" if entry.plus else "-",
        entry.type_char(),
        strmode(entry.mode),
        " ",
        f" {entry.user}/" if entry.user else f" {entry.uid}/",
        f"{entry.group} " if entry.group else f"{entry.gid} ",
    ]
    if entry.is_link():
        parts.append(f"{entry.name_size - entry.size - 4: 9d} ")
    elif stat.S_ISCHR(entry.mode) or stat.S_ISBLK(entry.mode):
        parts.append(f"{os.major(entry.rdev): 6d},{os.minor(entry.rdev)} ")
    else:
        parts.append(f"{entry.size: 9d} ")
    parts.append(time.strftime("%Y-%m-%d %H:%M", time.localtime(entry.mtime)))
    parts.append(" ")
    parts.append(str(entry.name))
    if entry.is_link():
        parts.append(f" -> {entry.target}")
    parts.append("\n")
    return "".join(parts)


def write_table(out: TextIO, entry: Entry) -> None:
    """Write the table-of-contents line of ``entry`` to a text stream."""
    out.write(format_table(entry))