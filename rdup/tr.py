"""rdup-tr: translate rdup output into an archive or re-encode its paths."""

from __future__ import annotations

import getopt
import os
import shutil
import signal
import stat
import sys
import tarfile
import tempfile
from typing import BinaryIO, Iterator

from .crypt import PathCipher, read_key
from .entry import BUFSIZE, Entry, InputFormat, OutputFormat
from .messages import Aborted, install_signal_handlers, msg, set_program
from .protocol import ProtocolError, iter_blocks, write_block_header
from .record import EntryError, iter_entries, write_data, write_header

PROGNAME = "rdup-tr"
VERSION = "1.1.15"

_FORMATS = {
    "tar": OutputFormat.TAR,
    "cpio": OutputFormat.CPIO,
    "pax": OutputFormat.PAX,
    "rdup": OutputFormat.RDUP,
}

_USAGE_BODY = (
    "Translate rdup output into something else.\n"
    "\n"
    "\n"
    "    OPTIONS:\n"
    "        -c\t\tforce output to tty\n"
    "\t-X FILE\t\tencrypt all paths with AES and the key from FILE\n"
    "\t-Y FILE\t\tdecrypt all paths with AES and the key from FILE\n"
    "\t-h\t\tthis help\n"
    "\t-V\t\tprint version\n"
    "        -O FMT\t\toutput format: pax, cpio, tar or rdup* (* = default)\n"
    "\t\t\trdup uses format: \"%p%T %b %u %g %l %s\\n%n%C\"\n"
    "\t-L\t\tset input format to a list of pathnames\n"
    "\t-v\t\tbe more verbose and print processed files to stderr\n"
)


def usage() -> str:
    """Return the help text."""
    return f"USAGE: {PROGNAME} [OPTION]... \n{_USAGE_BODY}"


class _TarArchive:
    def __init__(self, out: BinaryIO, fmt: int) -> None:
        self._tar = tarfile.open(fileobj=out, mode="w|", format=fmt)

    def add(self, entry: Entry, data: BinaryIO | None = None, size: int = 0,
            hardlink: bool = False) -> None:
        info = tarfile.TarInfo(entry.name)
        info.mode = stat.S_IMODE(entry.mode)
        info.uid, info.gid = entry.uid, entry.gid
        info.uname = entry.user or ""
        info.gname = entry.group or ""
        info.mtime = entry.mtime
        mode = entry.mode
        if hardlink:
            info.type, info.linkname = tarfile.LNKTYPE, entry.target or ""
        elif stat.S_ISDIR(mode):
            info.type = tarfile.DIRTYPE
        elif stat.S_ISLNK(mode):
            info.type, info.linkname = tarfile.SYMTYPE, entry.target or ""
        elif stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
            info.type = tarfile.CHRTYPE if stat.S_ISCHR(mode) else tarfile.BLKTYPE
            info.devmajor, info.devminor = os.major(entry.rdev), os.minor(entry.rdev)
        elif stat.S_ISFIFO(mode):
            info.type = tarfile.FIFOTYPE
        elif stat.S_ISSOCK(mode):
            raise ValueError(f"tar format cannot archive socket `{entry.name}'")
        else:
            info.type, info.size = tarfile.REGTYPE, size
        self._tar.addfile(info, data if info.type == tarfile.REGTYPE else None)

    def close(self) -> None:
        self._tar.close()


def _odc_field(value: int, width: int) -> bytes:
    text = f"{value:0{width}o}"
    if value < 0 or len(text) > width:
        raise ValueError(f"Value {value} does not fit in a cpio header")
    return text.encode("ascii")


class _CpioArchive:
    BLOCK = 10240

    def __init__(self, out: BinaryIO) -> None:
        self._out = out
        self._written = 0

    def _write(self, data: bytes) -> None:
        self._out.write(data)
        self._written += len(data)

    @staticmethod
    def _header(name: bytes, mode: int = 0, uid: int = 0, gid: int = 0,
                nlink: int = 1, rdev: int = 0, mtime: int = 0, size: int = 0,
                dev: int = 0, ino: int = 0) -> bytes:
        fields = (
            (dev, 6), (ino, 6), (mode, 6), (uid, 6), (gid, 6), (nlink, 6),
            (rdev, 6), (mtime, 11), (len(name) + 1, 6), (size, 11),
        )
        return b"070707" + b"".join(_odc_field(v, w) for v, w in fields) + name + b"\0"

    def add(self, entry: Entry, data: BinaryIO | None = None, size: int = 0,
            hardlink: bool = False) -> None:
        mode = entry.mode
        body = b""
        if hardlink:
            mode, size = stat.S_IFREG | stat.S_IMODE(entry.mode), 0
        elif stat.S_ISLNK(mode):
            body = os.fsencode(entry.target or "")
            size = len(body)
        elif not stat.S_ISREG(mode):
            size = 0
        rdev = entry.rdev if stat.S_ISCHR(mode) or stat.S_ISBLK(mode) else 0
        header = self._header(
            os.fsencode(entry.name), mode, entry.uid, entry.gid, 1, rdev,
            entry.mtime, size, entry.dev & 0o777777, entry.ino & 0o777777,
        )
        self._write(header)
        if body:
            self._write(body)
        elif data is not None and size:
            while chunk := data.read(BUFSIZE):
                self._write(chunk)

    def close(self) -> None:
        self._write(self._header(b"TRAILER!!!"))
        self._write(b"\0" * (-self._written % self.BLOCK))


def _open_archive(out: BinaryIO, output_format: OutputFormat):
    if output_format == OutputFormat.TAR:
        return _TarArchive(out, tarfile.USTAR_FORMAT)
    if output_format == OutputFormat.PAX:
        return _TarArchive(out, tarfile.PAX_FORMAT)
    if output_format == OutputFormat.CPIO:
        return _CpioArchive(out)
    raise ValueError(f"Invalid output format: `{output_format}'")


def _add(archive, entry: Entry, *args, **kwargs) -> None:
    try:
        archive.add(entry, *args, **kwargs)
    except ValueError as exc:
        msg(str(exc))


def _contents(stream: BinaryIO, entry: Entry, input_format: InputFormat) -> Iterator[bytes]:
    if input_format == InputFormat.RDUP:
        yield from iter_blocks(stream)
        return
    with open(entry.name, "rb") as handle:
        while chunk := handle.read(BUFSIZE):
            yield chunk


def _apply_cipher(entry: Entry, cipher: PathCipher, encrypt: bool) -> None:
    transform = cipher.encrypt_path if encrypt else cipher.decrypt_path
    entry.name = transform(entry.name)
    entry.name_size = len(os.fsencode(entry.name))
    if entry.is_link() and entry.target is not None:
        entry.target = transform(entry.target)
        entry.size = entry.name_size


def translate(
    stream: BinaryIO,
    out: BinaryIO,
    output_format: OutputFormat = OutputFormat.RDUP,
    input_format: InputFormat = InputFormat.RDUP,
    cipher: PathCipher | None = None,
    encrypt: bool = True,
    verbose: int = 0,
) -> None:
    """Read entries from ``stream`` and write them to ``out``.

    The output is rdup again or a tar, pax or cpio archive. With a
    cipher every path is encrypted (or, with ``encrypt`` false,
    decrypted). Malformed input raises EntryError or ProtocolError.
    """
    archive = None if output_format == OutputFormat.RDUP else _open_archive(out, output_format)
    hardlinks: list[Entry] = []
    for entry in iter_entries(stream, input_format, output_format):
        if entry.is_link():
            # from here on the size field marks the end of the link's name
            entry.name_size = entry.size = len(os.fsencode(entry.name))
        if verbose > 0:
            if entry.is_link():
                sys.stderr.write(f"{entry.name} -> {entry.target}\n")
            else:
                sys.stderr.write(f"{entry.name}\n")
        if cipher is not None:
            _apply_cipher(entry, cipher, encrypt)

        if not entry.plus:
            if archive is None:
                write_header(out, entry)
            continue
        if archive is not None and entry.hardlink:
            # hard links must come last
            hardlinks.append(entry.copy())
            continue

        regular = stat.S_ISREG(entry.mode) and not entry.hardlink
        if archive is None:
            write_header(out, entry)
            if regular:
                for chunk in _contents(stream, entry, input_format):
                    write_data(out, chunk)
                write_block_header(out, 0)
        elif regular:
            with tempfile.TemporaryFile() as spool:
                total = 0
                for chunk in _contents(stream, entry, input_format):
                    spool.write(chunk)
                    total += len(chunk)
                spool.seek(0)
                _add(archive, entry, spool, total)
        else:
            _add(archive, entry)

    if archive is not None:
        for link in hardlinks:
            _add(archive, link, hardlink=True)
        archive.close()


def _load_cipher(path: str) -> PathCipher | None:
    try:
        return PathCipher(read_key(path))
    except OSError as exc:
        msg(f"Failed to open `{path}': {exc.strerror}")
    except ValueError as exc:
        msg(str(exc))
    return None


def _run(argv: list[str]) -> int:
    if os.getuid() != os.geteuid() or os.getgid() != os.getegid():
        msg("Will not run suid/sgid for safety reasons")
        return 1
    try:
        os.getcwd()
    except OSError:
        msg("Could not get current working directory")
        return 1
    if any(len(arg) > BUFSIZE for arg in argv):
        msg("Argument length overrun")
        return 1
    try:
        opts, _ = getopt.gnu_getopt(argv, "cP:O:t:LhVvX:Y:")
    except getopt.GetoptError as exc:
        msg(f"Unknown option seen `{exc.opt}'")
        return 1

    tty = False
    verbose = 0
    output_format = OutputFormat.RDUP
    input_format = InputFormat.RDUP
    cipher: PathCipher | None = None
    mode: str | None = None

    for opt, value in opts:
        if opt == "-c":
            tty = True
        elif opt == "-v":
            verbose += 1
        elif opt == "-L":
            input_format = InputFormat.LIST
        elif opt == "-P":
            msg("Functionality moved to rdup")
        elif opt == "-O":
            if value not in _FORMATS:
                msg(f"Invalid output format: `{value}'")
                return 1
            output_format = _FORMATS[value]
        elif opt == "-X":
            if mode == "decrypt":
                msg("Will not do both encryption and decryption")
                return 1
            cipher, mode = _load_cipher(value), "encrypt"
            if cipher is None:
                return 1
        elif opt == "-Y":
            if mode == "encrypt":
                msg("Can not do both encryption and decryption")
                return 1
            cipher, mode = _load_cipher(value), "decrypt"
            if cipher is None:
                return 1
        elif opt == "-h":
            sys.stdout.write(usage())
            return 0
        elif opt == "-V":
            sys.stdout.write(f"{PROGNAME} {VERSION}\n")
            return 0
        else:
            msg(f"Unknown option seen `{opt.lstrip('-')}'")
            return 1

    if not tty and sys.stdout.isatty():
        msg("Will not write to a tty")
        return 1

    out = sys.stdout.buffer
    try:
        translate(sys.stdin.buffer, out, output_format, input_format,
                  cipher, mode != "decrypt", verbose)
    except (EntryError, ProtocolError, OSError) as exc:
        msg(str(exc))
        return 1
    finally:
        out.flush()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run rdup-tr; return the exit status."""
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