"""Printing entries through a user-supplied format string."""

from __future__ import annotations

import errno
import os
import stat
import sys
from typing import BinaryIO, Iterable

from .entry import Entry
from .filters import filter_chunks, sha1_hex
from .messages import msg
from .protocol import write_block_header
from .record import write_data

DEFAULT_FORMAT = "%p%T %b %t %u %U %g %G %l %s\n%n%C"
NO_SHA = "0" * 40

_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "e": "\x1b",
    "f": "\f",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "0": "\0",
    "n": "\n",
}


def cat(out: BinaryIO, path: str, filters: Iterable[str] = ()) -> None:
    """Write the contents of ``path`` to ``out`` as protocol blocks.

    The contents pass through ``filters`` first; a final empty block
    ends the file. Raises OSError when the file cannot be read.
    """
    try:
        handle = open(path, "rb")
    except OSError as exc:
        msg(f"Could not open '{path}': {exc.strerror}")
        raise
    with handle:
        try:
            for chunk in filter_chunks(filters, handle):
                write_data(out, chunk)
        except OSError as exc:
            msg(f"Read failure `{path}': {exc.strerror}")
            raise
    write_block_header(out, 0)


class Printer:
    """Writes entries to a binary stream according to a format string."""

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        out: BinaryIO | None = None,
        filters: Iterable[str] = (),
        show_added: bool = True,
        show_removed: bool = True,
        verbose: int = 0,
    ) -> None:
        self.fmt = fmt
        self.out = out if out is not None else sys.stdout.buffer
        self.filters = list(filters)
        self.show_added = show_added
        self.show_removed = show_removed
        self.verbose = verbose

    def _write(self, text: str) -> None:
        self.out.write(os.fsencode(text))

    def emit(self, entry: Entry, plus: bool) -> None:
        """Print ``entry`` as added (``plus``) or removed."""
        if plus and not self.show_added:
            return
        if not plus and not self.show_removed:
            return

        if self.verbose >= 1:
            line = f"** {'+' if plus else '-'} {entry.name}"
            if entry.is_link():
                line += f" -> {entry.target}"
            sys.stderr.write(line + "\n")

        # an unreadable file is skipped without emitting anything
        if stat.S_ISREG(entry.mode) and plus and not entry.hardlink:
            if not os.access(entry.name, os.R_OK):
                code = errno.EACCES if os.path.lexists(entry.name) else errno.ENOENT
                msg(f"Unable to open file `{entry.name}': {os.strerror(code)}")
                return

        chars = iter(self.fmt)
        for char in chars:
            if char == "\\":
                code = next(chars, None)
                if code is None:
                    break
                self._write(_ESCAPES.get(code, code))
            elif char == "%":
                code = next(chars, None)
                if code is None:
                    break
                self._directive(code, entry, plus)
            else:
                self._write(char)

    def _directive(self, code: str, entry: Entry, plus: bool) -> None:
        if code == "%":
            self._write("%")
        elif code == "p":
            self._write("+" if plus else "-")
        elif code == "C":
            if plus and stat.S_ISREG(entry.mode) and not entry.hardlink:
                cat(self.out, entry.name, self.filters)
        else:
            self._write(self._field(code, entry))

    def _field(self, code: str, entry: Entry) -> str:
        mode = entry.mode
        if code == "n":
            if entry.is_link():
                return f"{entry.name} -> {entry.target or ''}"
            return str(entry.name)
        if code == "N":
            return str(entry.name)
        if code == "l":
            return str(entry.name_size)
        if code == "u":
            return str(entry.uid)
        if code == "U":
            return entry.user if entry.user else "-"
        if code == "g":
            return str(entry.gid)
        if code == "G":
            return entry.group if entry.group else "-"
        if code == "m":
            return str(mode)
        if code == "b":
            return f"{mode & 0o7777:04o}"
        if code == "t":
            return str(entry.mtime)
        if code == "s":
            if stat.S_ISDIR(mode):
                return "0"
            if stat.S_ISBLK(mode) or stat.S_ISCHR(mode):
                return f"{os.major(entry.rdev)},{os.minor(entry.rdev)}"
            return str(entry.size)
        if code == "H":
            if not stat.S_ISREG(mode):
                return NO_SHA
            try:
                return sha1_hex(entry.name)
            except OSError as exc:
                msg(f"Could not open '{entry.name}': {exc.strerror}")
                return ""
        if code == "T":
            return entry.type_char()
        return " "