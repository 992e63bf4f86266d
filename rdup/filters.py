"""Filtering file contents through shell commands, and hashing them."""

from __future__ import annotations

import hashlib
import os
import subprocess
from typing import BinaryIO, Iterable, Iterator

from .entry import BUFSIZE


def filter_chunks(
    commands: Iterable[str], file: BinaryIO, size: int = BUFSIZE
) -> Iterator[bytes]:
    """Yield the contents of ``file`` as passed through ``commands``.

    Each command runs as ``sh -c COMMAND``; the first reads ``file``
    and every later one reads the output of the one before. Chunks are
    at most ``size`` bytes. Without commands the file is read directly.
    """
    commands = list(commands)
    if not commands:
        while chunk := file.read(size):
            yield chunk
        return

    processes: list[subprocess.Popen] = []
    source = file
    try:
        for command in commands:
            process = subprocess.Popen(
                ["sh", "-c", command], stdin=source, stdout=subprocess.PIPE
            )
            if processes:
                # the child holds its own copy of this pipe end now
                processes[-1].stdout.close()
            processes.append(process)
            source = process.stdout
        reader = processes[-1].stdout
        while chunk := reader.read1(size):
            yield chunk
    finally:
        if processes:
            processes[-1].stdout.close()
        for process in processes:
            process.wait()


def sha1_hex(path: str | os.PathLike) -> str:
    """Return the SHA-1 digest of the file at ``path`` in hexadecimal."""
    digest = hashlib.sha1()
    with open(path, "rb") as handle:
        while chunk := handle.read(BUFSIZE):
            digest.update(chunk)
    return digest.hexdigest()