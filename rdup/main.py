"""rdup: generate a full or incremental list of files to back up."""

from __future__ import annotations

import getopt
import os
import re
import signal
import sys
import time
from typing import BinaryIO

from .crawler import Crawler, ExcludeList
from .entry import BUFSIZE
from .filelist import read_filelist, select_changed, select_new, write_filelist
from .format import DEFAULT_FORMAT, Printer
from .messages import Aborted, install_signal_handlers, msg, set_program
from .names import NameCache
from .paths import abspath
from .tree import EntryTree

PROGNAME = "rdup"
VERSION = "1.1.15"

_USAGE_BODY = (
    "Generate a full or incremental file list. This list can be used to\n"
    "implement a (incremental) backup scheme.\n"
    "\n"
    "\tFILELIST\tfile to store filenames\n"
    "        DIR\t\tdirectory or directories to dump, defaults to .\n"
    "\n"
    "\n"
    "    OPTIONS:\n"
    "        -N FILE\t\tuse the (c_time) timestamp of FILE for incremental dumps\n"
    "        \t\tif FILE does not exist, a full dump is performed\n"
    "\t-M FILE\t\tas -N, but use the m_time\n"
    "        -F FORMAT\tuse specified format string\n"
    "        \t\tdefaults to: \"%p%T %b %u %g %l %s %n\\n\"\n"
    "\t-R\t\treverse the output (depth first, first the dirs then the files)\n"
    "\t-E FILE\t\tuse FILE as an exclude list\n"
    "\t-P CMD\n"
    "\t\t\tfilter file contents through CMD, will be called with 'sh -c CMD'\n"
    "\t\t\tmay be repeated, output will be filtered through all commands\n"
    "        -V\t\tprint version\n"
    "        -a\t\treset atime\n"
    "        -c\t\tforce output to tty\n"
    "        -m\t\tonly print new/modified files (unsets -r)\n"
    "        -n\t\tignore .nobackup files\n"
    "        -r\t\tonly print removed files (unsets -m)\n"
    "        -s SIZE\t\tonly output files smaller then SIZE bytes\n"
    "        -u\t\tdisable the special handling of ._rdup_. files\n"
    "        -x\t\tstay in local file system\n"
    "        -v\t\tbe more verbose\n"
    "        -h\t\tthis help\n"
    "\n"
    "    FORMAT:\n"
    "        The following escape sequences are recognized:\n"
    "        '%p': '+' if new, '-' if removed\n"
    "        '%b': permission bits\n"
    "        '%m': file mode bits\n"
    "        '%u': uid\n"
    "        '%g': gid\n"
    "        '%l': path length (for links: length of 'path -> target')\n"
    "        '%s': original file size\n"
    "        '%n': path (for links: 'path -> target')\n"
    "        '%N': path (for links: 'path')\n"
    "        '%t': time of modification (epoch)\n"
    "        '%H': the sha1 hash of the file's contents\n"
    "        '%T': 'type' (d, l, h, -, c, b, p or s: dir, symlink, hardlink, file, \n"
    "\t      character device, block device, named pipe or socket)\n"
    "        '%C': file contents\n"
)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def usage() -> str:
    """Return the help text."""
    return f"USAGE: {PROGNAME} [OPTION]... FILELIST  [ DIR | FILE ]...\n{_USAGE_BODY}"


def timestamp(path: str, use_ctime: bool = True) -> int:
    """Return the ctime (or mtime) of ``path``, or 0 when it cannot be examined."""
    try:
        st = os.lstat(path)
    except OSError:
        return 0
    return int(st.st_ctime if use_ctime else st.st_mtime)


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _run(argv: list[str], out: BinaryIO) -> int:
    started = int(time.time())
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
        opts, args = getopt.getopt(argv, "acrlmhVRnud:N:M:P:s:vqxF:E:")
    except getopt.GetoptError as exc:
        msg(f"Unknown option seen `{exc.opt}'")
        return 1

    fmt = DEFAULT_FORMAT
    excludes = ExcludeList()
    chown = True
    tty = False
    nobackup = True
    stamp_time = 0
    stamp: str | None = None
    reverse = False
    filters: list[str] = []
    verbose = 0
    removed = modified = True
    one_filesystem = False
    max_size = 0

    for opt, value in opts:
        if opt == "-F":
            fmt = value
        elif opt == "-E":
            try:
                excludes = ExcludeList.load(value)
            except OSError as exc:
                msg(f"Could not open '{value}': {exc.strerror}")
                return 1
            except ValueError as exc:
                msg(str(exc))
                return 1
        elif opt == "-u":
            chown = False
        elif opt == "-a":
            msg("The option `-a' is a noop")
        elif opt == "-c":
            tty = True
        elif opt == "-h":
            out.write(usage().encode())
            return 0
        elif opt == "-V":
            out.write(f"{PROGNAME} {VERSION}\n".encode())
            return 0
        elif opt == "-n":
            nobackup = False
        elif opt == "-N":
            stamp_time, stamp = timestamp(value, True), value
        elif opt == "-M":
            stamp_time, stamp = timestamp(value, False), value
        elif opt == "-R":
            reverse = True
        elif opt == "-P":
            filters.append(value)
        elif opt == "-v":
            verbose = min(verbose + 1, 2)
        elif opt == "-r":
            removed, modified = True, False
        elif opt == "-m":
            removed, modified = False, True
        elif opt == "-x":
            one_filesystem = True
        elif opt == "-s":
            max_size = _atoi(value)
            if max_size == 0:
                msg("-s requires a numerical value")
                return 1
        else:
            msg(f"Unknown option seen `{opt.lstrip('-')}'")
            return 1

    if not args:
        out.write(usage().encode())
        return 1
    if not tty and sys.stdout.isatty():
        msg("Will not write to a tty")
        return 1

    listfile, dirs = args[0], args[1:]
    if not dirs:
        msg("No directory given, dumping `.'")
        dirs = ["."]
    devnull = listfile == "/dev/null"

    try:
        with open(listfile, "rb") as handle:
            current = read_filelist(handle)
    except OSError:
        current = read_filelist(None)

    backup = EntryTree()
    crawler = Crawler(backup, NameCache(), excludes, one_filesystem,
                      nobackup, chown, verbose)
    for directory in dirs:
        full = directory if directory.startswith("/") else f"{pwd}/{directory}"
        try:
            path = abspath(full)
        except ValueError:
            msg(f"Skipping `{directory}'")
            continue
        if not crawler.prepend(path):
            continue
        crawler.crawl(path)

    remove = current.subtract(backup)
    new = backup.subtract(current)
    changed = backup.subtract(new).subtract(remove)

    printer = Printer(fmt, out, filters, modified, removed, verbose)
    removed_list = list(remove.visible())
    changed_list = list(select_changed(changed, stamp_time, max_size))
    new_list = list(select_new(new, max_size))
    if reverse:
        removed_list.reverse()
        changed_list.reverse()
        new_list.reverse()
    try:
        for entry in removed_list:
            printer.emit(entry, False)
        for entry in changed_list:
            printer.emit(entry, True)
        for entry in new_list:
            printer.emit(entry, True)
    except OSError:
        return 1
    finally:
        out.flush()

    if not devnull:
        try:
            with open(listfile, "wb") as handle:
                write_filelist(handle, backup)
        except OSError as exc:
            msg(f"Could not write filelist `{listfile}': {exc.strerror}")

    if stamp is not None:
        try:
            os.close(os.open(stamp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600))
        except OSError as exc:
            msg(f"Could not create timestamp file `{stamp}': {exc.strerror}")
            return 1
        try:
            os.utime(stamp, (started, started))
        except OSError as exc:
            msg(f"Failed to reset atime: '{stamp}': {exc.strerror}")
            return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run rdup; return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    set_program(PROGNAME)
    previous = install_signal_handlers()
    try:
        return _run(list(argv), sys.stdout.buffer)
    except Aborted as exc:
        msg(str(exc))
        return 1
    finally:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)


if __name__ == "__main__":
    sys.exit(main())