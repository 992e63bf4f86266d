"""Path helpers: normalising, parents, directory creation and stripping."""

from __future__ import annotations

import os
import stat
from contextlib import contextmanager
from typing import Iterator

from .entry import BUFSIZE, Entry
from .messages import msg


def abspath(path: str) -> str:
    """Remove ``.``, ``..`` and repeated slashes from an absolute path.

    Raises ValueError for relative or overlong paths.
    """
    if not path or not path.startswith("/"):
        raise ValueError(f"Not an absolute path: `{path}'")
    if len(path) > BUFSIZE:
        raise ValueError("Path length overrun")
    parts: list[str] = []
    for element in path.split("/"):
        if element in ("", "."):
            continue
        if element == "..":
            if parts:
                parts.pop()
        else:
            parts.append(element)
    return "/" + "/".join(parts)


def dir_parent(path: str | None) -> str | None:
    """Return the parent of ``path`` with a trailing slash.

    ``/`` is its own parent; a path without any slash has none.
    """
    if path is None:
        return None
    if path == "/":
        return path
    slash = path.rfind("/")
    if slash == -1:
        return None
    return path[:slash + 1]


@contextmanager
def make_writable(path: str | None) -> Iterator[None]:
    """Give the owner write permission on ``path`` for the block's duration."""
    saved = None
    if path is not None:
        try:
            saved = os.stat(path).st_mode
        except OSError:
            saved = None
        else:
            try:
                os.chmod(path, saved | stat.S_IWUSR)
            except OSError as exc:
                msg(f"Failed to make directory writeable `{path}': {exc.strerror}")
    try:
        yield
    finally:
        if saved is not None:
            try:
                os.chmod(path, stat.S_IMODE(saved))
            except OSError as exc:
                msg(f"Failed to restore permissions `{path}': {exc.strerror}")


def mkpath(path: str, mode: int = 0o777) -> None:
    """Create ``path`` and any missing parents, like ``mkdir -p``."""
    trimmed = path.rstrip("/") or "/"
    if trimmed in (".", "/"):
        return
    parent = os.path.dirname(trimmed) or "."
    mkpath(parent, mode)
    try:
        os.mkdir(trimmed, mode)
    except FileExistsError:
        pass
    except OSError as exc:
        msg(f"Failed to create directory '{trimmed}': {exc.strerror}")
        raise


def _drop_components(text: str, count: int) -> str | None:
    pos = -1
    for _ in range(count + 1):
        pos = text.find("/", pos + 1)
        if pos == -1:
            return None
    return text[pos:]


def strip_components(entry: Entry, count: int) -> None:
    """Strip ``count`` leading components from the entry's name, in place.

    The name becomes None when it has too few components. Hard link
    targets are stripped as well.
    """
    if entry.name is None:
        return
    stripped = _drop_components(entry.name, count)
    if stripped is None:
        entry.name = None
        entry.name_size = 0
        return
    entry.name = stripped
    entry.name_size = len(stripped)
    if entry.hardlink and entry.target is not None:
        entry.target = _drop_components(entry.target, count)
        entry.size = len(entry.target) if entry.target is not None else 0


def strip_prefix(entry: Entry, prefix: str) -> None:
    """Remove ``prefix`` (ending in ``/``) from the entry's name, in place.

    An entry whose name is itself a prefix of ``prefix`` loses its name.
    """
    if entry.name is None:
        return
    if prefix.startswith(entry.name):
        entry.name = None
        entry.name_size = 0
        return
    if not entry.name.startswith(prefix):
        return
    cut = len(prefix) - 1
    entry.name = entry.name[cut:]
    entry.name_size -= cut
    if entry.is_link():
        entry.size -= cut
    if entry.hardlink and entry.target is not None and entry.target.startswith(prefix):
        entry.target = entry.target[cut:]