"""rdup-up: update a directory tree with an rdup archive."""

from __future__ import annotations

import getopt
import os
import re
import signal
import sys
from typing import BinaryIO

from .entry import BUFSIZE
from .fsops import Updater
from .messages import Aborted, install_signal_handlers, msg, set_program
from .names import NameCache
from .paths import abspath, mkpath, strip_components, strip_prefix
from .protocol import ProtocolError
from .record import EntryError, iter_entries

PROGNAME = "rdup-up"
VERSION = "1.1.15"

_USAGE_BODY = (
    "Update a directory tree with an rdup archive.\n"
    "\n"
    "        DIRECTORY\twhere to unpack the archive\n"
    "\n"
    "\n"
    "    OPTIONS:\n"
    "\t-t\t\tcreate DIRECTORY if it does not exist\n"
    "\t-s NUM\t\tstrip NUM leading path components\n"
    "\t-r PATH\t\tstrip PATH from each pathname\n"
    "\t-n\t\tdry run, do not touch the filesystem\n"
    "\t-V\t\tprint version\n"
    "\t-T\t\tshow table of contents. DIRECTORY is optional\n"
    "        -u\t\tdo not create ._rdup_. with user/group information\n"
    "        -q\t\tsilence 'chown' failures even when 'root'\n"
    "\t-h\t\tthis help\n"
    "\t-v\t\tbe more verbose and print processed files to stdout\n"
)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def usage() -> str:
    """Return the help text."""
    return f"USAGE: {PROGNAME} [OPTION]... DIRECTORY\n{_USAGE_BODY}"


def update(
    stream: BinaryIO,
    path: str | None,
    updater: Updater,
    strip: int = 0,
    path_strip: str | None = None,
) -> bool:
    """Apply every entry in ``stream`` below ``path``.

    Returns False when any object could not be made. Malformed input
    raises EntryError or ProtocolError.
    """
    ok = True
    prefix = "" if path in (None, "", "/") else path
    extra = len(os.fsencode(prefix))
    for entry in iter_entries(stream):
        if strip:
            strip_components(entry, strip)
        if path_strip:
            strip_prefix(entry, path_strip)
        if entry.name is not None and prefix:
            entry.name = f"{prefix}{entry.name}"
            entry.name_size += extra
            if entry.is_link():
                entry.size += extra
        if not updater.make(stream, path, entry):
            ok = False
    if not updater.make_hardlinks():
        ok = False
    return ok


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _run(argv: list[str]) -> int:
    if os.getuid() != os.geteuid() or os.getgid() != os.getegid():
        msg("Will not run suid/sgid for safety reasons")
        return 1
    try:
        pwd = os.getcwd()
    except OSError:
        msg("Could not get current working directory")
        return 1
    if any(len(arg) > BUFSIZE for arg in argv):
        msg("Argument length overrun")
        return 1

    try:
        opts, args = getopt.gnu_getopt(argv, "thnVvus:r:Tq")
    except getopt.GetoptError as exc:
        msg(f"Unknown option seen `{exc.opt}'")
        return 1

    verbose = 0
    dry = table = top = quiet = False
    chown = True
    strip = 0
    path_strip: str | None = None

    for opt, value in opts:
        if opt == "-v":
            verbose = 1
        elif opt == "-h":
            sys.stdout.write(usage())
            return 0
        elif opt == "-n":
            dry = True
        elif opt == "-T":
            table = True
            dry = True
            verbose = 0
        elif opt == "-u":
            chown = False
        elif opt == "-s":
            strip = abs(_atoi(value))
        elif opt == "-r":
            full = value if value.startswith("/") else f"{pwd}/{value}"
            try:
                path_strip = abspath(full)
            except ValueError:
                msg(f"Failed to expand path `{value}'")
                return 1
            if not path_strip.endswith("/"):
                path_strip += "/"
        elif opt == "-q":
            quiet = True
        elif opt == "-t":
            top = True
        elif opt == "-V":
            sys.stdout.write(f"{PROGNAME} {VERSION}\n")
            return 0

    path: str | None
    if table:
        path = None
    else:
        if len(args) != 1:
            msg("Destination directory is required")
            return 1
        target = args[0] if args[0].startswith("/") else f"{pwd}/{args[0]}"
        try:
            path = abspath(target)
        except ValueError as exc:
            msg(str(exc))
            return 1

    if not dry:
        if top:
            if os.path.isfile(path):
                msg(f"Failed to create directory `{path}'")
                return 1
            try:
                mkpath(path, 0o777)
            except OSError as exc:
                msg(f"Failed to create directory `{path}': {exc.strerror}")
                return 1
        elif not os.path.isdir(path):
            msg(f"No such directory: `{path}'")
            return 1

    updater = Updater(dry, table, quiet, chown, verbose, NameCache(), sys.stdout)
    try:
        ok = update(sys.stdin.buffer, path, updater, strip, path_strip)
    except (EntryError, ProtocolError) as exc:
        msg(str(exc))
        return 1
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    """Run rdup-up; return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    set_program(PROGNAME)
    previous = install_signal_handlers()
    try:
        return _run(list(argv))
    except Aborted as exc:
        msg(str(exc))
        return 1
    finally:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)


if __name__ == "__main__":
    sys.exit(main())