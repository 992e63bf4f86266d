"""Creating and removing filesystem objects described by rdup entries."""

from __future__ import annotations

import errno
import functools
import os
import stat
import sys
from typing import BinaryIO, Callable, TextIO

from .chown import Ownership, write_ownership
from .entry import Entry
from .messages import msg
from .names import NameCache
from .paths import dir_parent, make_writable
from .protocol import ProtocolError, iter_blocks
from .record import format_table


class Updater:
    """Applies entries from an rdup archive to the filesystem.

    Hard links are collected while entries are made and created at the
    end by ``make_hardlinks``, once their targets exist.
    """

    def __init__(
        self,
        dry: bool = False,
        table: bool = False,
        quiet: bool = False,
        chown: bool = True,
        verbose: int = 0,
        names: NameCache | None = None,
        out: TextIO | None = None,
    ) -> None:
        self.dry = dry
        self.table = table
        self.quiet = quiet
        self.chown = chown
        self.verbose = verbose
        self.names = names if names is not None else NameCache()
        self.out = out if out is not None else sys.stdout
        self.hardlinks: list[Entry] = []

    # removal

    def remove(self, path: str | None) -> bool:
        """Remove ``path`` recursively; a missing path counts as success."""
        if self.dry or path is None:
            return True
        try:
            st = os.lstat(path)
        except OSError as exc:
            if self.verbose > 0 and exc.errno != errno.ENOENT:
                msg(f"Failed to remove `{path}': {exc.strerror}")
            return True
        if stat.S_ISDIR(st.st_mode):
            return self._remove_dir(path)
        return self._remove_file(path)

    def _remove_dir(self, path: str) -> bool:
        try:
            os.rmdir(path)
            return True
        except OSError as exc:
            error = exc
        if error.errno in (errno.ENOTEMPTY, errno.EEXIST):
            try:
                children = os.listdir(path)
            except OSError as exc:
                msg(f"Failed to open directory `{path}': {exc.strerror}")
                return False
            for child in children:
                self.remove(f"{path}/{child}")
            try:
                os.rmdir(path)
            except OSError as exc:
                msg(f"Failed to remove directory `{path}': {exc.strerror}")
            return True
        if error.errno == errno.EACCES:
            with make_writable(dir_parent(path)):
                try:
                    os.rmdir(path)
                except OSError as exc:
                    msg(f"Failed to remove `{path}': {exc.strerror}")
                    return False
            return True
        msg(f"Failed to remove directory `{path}': {error.strerror}")
        return False

    def _remove_file(self, path: str) -> bool:
        try:
            os.remove(path)
            return True
        except OSError as exc:
            error = exc
        if error.errno == errno.EACCES:
            with make_writable(os.path.dirname(path) or "."):
                try:
                    os.remove(path)
                except OSError as exc:
                    msg(f"Failed to remove `{path}': {exc.strerror}")
                    return False
            return True
        if error.errno == errno.EPERM:
            try:
                mode = os.stat(path).st_mode
                os.chmod(path, mode | stat.S_IWUSR)
            except OSError:
                mode = None
            try:
                os.remove(path)
            except OSError as exc:
                msg(f"Failed to remove `{path}': {exc.strerror}")
                if mode is not None:
                    try:
                        os.chmod(path, stat.S_IMODE(mode))
                    except OSError:
                        pass
                return False
            return True
        msg(f"Failed to remove `{path}': {error.strerror}")
        return False

    # creation helpers

    def _create(self, action: Callable[[], object], path: str, what: str) -> bool:
        """Run ``action``; on EACCES retry with a writable parent directory."""
        try:
            action()
            return True
        except OSError as exc:
            if exc.errno != errno.EACCES:
                msg(f"Failed to {what}: {exc.strerror}")
                return False
        with make_writable(dir_parent(path)):
            try:
                action()
            except OSError as exc:
                msg(f"Failed to {what}: {exc.strerror}")
                return False
        return True

    def _set_owner(self, entry: Entry) -> None:
        uid = self.names.uid_for(entry.user, entry.uid)
        gid = self.names.gid_for(entry.group, entry.gid)
        try:
            os.lchown(entry.name, uid, gid)
        except OSError as exc:
            if self.chown:
                ownership = Ownership(
                    entry.user if entry.user is not None else str(entry.uid),
                    entry.uid,
                    entry.group if entry.group is not None else str(entry.gid),
                    entry.gid,
                )
                if stat.S_ISDIR(entry.mode):
                    write_ownership(entry.name, None, ownership)
                else:
                    write_ownership(
                        os.path.dirname(entry.name),
                        os.path.basename(entry.name),
                        ownership,
                    )
            elif not self.quiet:
                msg(f"Failed to chown `{entry.name}': {exc.strerror}")

    def _set_time(self, entry: Entry) -> None:
        try:
            os.utime(entry.name, (entry.mtime, entry.mtime))
        except OSError as exc:
            msg(f"Failed to set mtime '{entry.name}': {exc.strerror}")

    def _set_meta(self, entry: Entry) -> None:
        try:
            os.chmod(entry.name, stat.S_IMODE(entry.mode))
        except OSError:
            pass
        self._set_owner(entry)
        self._set_time(entry)

    # object kinds

    def _make_file(self, stream: BinaryIO, entry: Entry) -> bool:
        # even in a dry run the contents must be read to stay in step
        dry = self.dry or entry.name is None
        handle = None
        ok = True
        if not dry:
            if not self.remove(entry.name):
                return False
            handles = []

            def opener() -> None:
                handles.append(open(entry.name, "wb"))

            ok = self._create(opener, entry.name, f"open file `{entry.name}'")
            handle = handles[0] if handles else None
        try:
            for chunk in iter_blocks(stream):
                if ok and handle is not None:
                    try:
                        handle.write(chunk)
                    except OSError as exc:
                        msg(f"Write failure `{entry.name}': {exc.strerror}")
                        return False
        except ProtocolError as exc:
            msg(str(exc))
            return False
        finally:
            if handle is not None:
                handle.close()
        if ok and not dry:
            self._set_meta(entry)
        return True

    def _make_dir(self, entry: Entry) -> bool:
        if self.dry:
            return True
        try:
            existing = os.lstat(entry.name)
        except OSError:
            existing = None
        if existing is not None and stat.S_ISDIR(existing.st_mode):
            self._set_meta(entry)
            return True
        action = functools.partial(os.mkdir, entry.name, stat.S_IMODE(entry.mode))
        if not self._create(action, entry.name, f"create directory `{entry.name}'"):
            return False
        self._set_meta(entry)
        return True

    def _make_device(self, entry: Entry) -> bool:
        if self.dry:
            return True
        if not self.remove(entry.name):
            return False
        action = functools.partial(os.mknod, entry.name, entry.mode, entry.rdev)
        if not self._create(action, entry.name, f"make device `{entry.name}'"):
            return False
        self._set_meta(entry)
        return True

    def _make_fifo(self, entry: Entry) -> bool:
        if self.dry:
            return True
        if not self.remove(entry.name):
            return False
        action = functools.partial(os.mkfifo, entry.name, stat.S_IMODE(entry.mode))
        if not self._create(action, entry.name, f"make socket `{entry.name}'"):
            return False
        self._set_meta(entry)
        return True

    def _make_link(self, entry: Entry, root: str | None) -> bool:
        if self.dry:
            return True
        if not self.remove(entry.name):
            return False
        if entry.is_symlink():
            action = functools.partial(os.symlink, entry.target, entry.name)
            what = f"make symlink `{entry.name} -> {entry.target}'"
            if not self._create(action, entry.name, what):
                return False
            self._set_owner(entry)
            return True
        # the target of a hard link lies inside the restored tree as well
        link = entry.copy()
        link.target = f"{root or ''}{entry.target}"
        self.hardlinks.append(link)
        return True

    def make(self, stream: BinaryIO, root: str | None, entry: Entry) -> bool:
        """Create, update or remove the object that ``entry`` describes.

        For regular files the content blocks are read from ``stream``.
        """
        if self.verbose >= 1 and entry.name:
            if entry.is_link():
                sys.stderr.write(f"{entry.name} -> {entry.target}\n")
            else:
                sys.stderr.write(f"{entry.name}\n")
        if self.table:
            self.out.write(format_table(entry))

        if not entry.plus:
            if self.dry or entry.name is None:
                return True
            return self.remove(entry.name)

        if stat.S_ISREG(entry.mode) and not entry.hardlink:
            return self._make_file(stream, entry)
        if entry.name is None:
            return True
        if stat.S_ISDIR(entry.mode):
            return self._make_dir(entry)
        if entry.is_link():
            return self._make_link(entry, root)
        if stat.S_ISBLK(entry.mode) or stat.S_ISCHR(entry.mode):
            return self._make_device(entry)
        if stat.S_ISSOCK(entry.mode):
            # a named socket cannot be restored
            return True
        if stat.S_ISFIFO(entry.mode):
            return self._make_fifo(entry)
        return True

    def make_hardlinks(self) -> bool:
        """Create the hard links collected so far."""
        if self.dry:
            return True
        while self.hardlinks:
            link = self.hardlinks[0]
            action = functools.partial(os.link, link.target, link.name)
            what = f"create hardlink `{link.name} -> {link.target}'"
            if not self._create(action, link.name, what):
                return False
            self.hardlinks.pop(0)
        return True