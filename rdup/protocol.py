"""The block protocol used to carry file contents between the tools.

Each block starts with a header such as ``01BLOCK08192`` followed by a
newline and that many bytes of data. A block of length zero ends a file.
"""

from __future__ import annotations

from typing import BinaryIO, Iterator

from .entry import BUFSIZE

PROTO_VERSION = b"01"
PROTO_BLOCK = b"BLOCK"


class ProtocolError(ValueError):
    """Raised when the input does not follow the block protocol."""


def write_block_header(out: BinaryIO, size: int) -> None:
    """Write the header announcing a block of ``size`` bytes."""
    out.write(b"%s%s%05d\n" % (PROTO_VERSION, PROTO_BLOCK, size))


def write_block(out: BinaryIO, data: bytes) -> None:
    """Write the data of one block."""
    out.write(data)


def _show(raw: bytes) -> str:
    return raw.decode("latin-1")


def read_block_header(stream: BinaryIO) -> int:
    """Read a block header and return the number of bytes that follow."""
    version = stream.read(2)
    if version != PROTO_VERSION:
        raise ProtocolError(
            f"Wrong protocol version `{_show(version)}': "
            f"want `{_show(PROTO_VERSION)}'"
        )
    separator = stream.read(5)
    if separator != PROTO_BLOCK:
        raise ProtocolError(
            f"BLOCK protocol seperator not found: `{_show(separator)}'"
        )
    digits = stream.read(5)
    stream.read(1)
    if len(digits) != 5 or not digits.isdigit():
        raise ProtocolError("Illegal block size")
    size = int(digits)
    if size > BUFSIZE:
        raise ProtocolError("Block size larger then BUFSIZE")
    return size


def read_block(stream: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes of block data."""
    data = stream.read(size)
    if len(data) != size:
        raise ProtocolError(
            f"Short block: expected {size} bytes, got {len(data)}"
        )
    return data


def iter_blocks(stream: BinaryIO) -> Iterator[bytes]:
    """Yield the data of each block up to the terminating empty block."""
    while (size := read_block_header(stream)) > 0:
        yield read_block(stream, size)


def read_line(stream: BinaryIO, limit: int = BUFSIZE) -> bytes | None:
    """Read one newline-terminated line, delimiter included.

    Returns None at end of input. A line of more than ``limit`` bytes
    raises ProtocolError.
    """
    line = stream.readline(limit + 1)
    if not line:
        return None
    if len(line) > limit:
        raise ProtocolError(f"Line longer than {limit} characters")
    return line