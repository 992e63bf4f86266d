"""Walking directory trees and collecting their entries."""

from __future__ import annotations

import os
import re
import stat
from typing import Iterable

from .chown import USRGRPINFO, read_ownership
from .entry import Entry
from .messages import msg
from .names import NameCache
from .tree import EntryTree

NOBACKUP = ".nobackup"


class ExcludeList:
    """Regular expressions; a path matching any of them is left out."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._patterns = [re.compile(pattern) for pattern in patterns]

    @classmethod
    def load(cls, path: str | os.PathLike) -> ExcludeList:
        """Read one expression per line, skipping comments and empty lines.

        A malformed expression raises ValueError.
        """
        excludes = cls()
        number = 1
        with open(path, encoding="utf-8", errors="surrogateescape") as handle:
            for line in handle:
                if line.startswith("#") or line == "\n":
                    continue
                pattern = line[:-1] if line.endswith("\n") else line
                try:
                    excludes._patterns.append(re.compile(pattern))
                except re.error as exc:
                    raise ValueError(
                        f"Corrupt regular expression line: {number}, "
                        f"column {exc.pos or 0}: {exc.msg}"
                    ) from exc
                number += 1
        return excludes

    def __len__(self) -> int:
        return len(self._patterns)

    def matches(self, path: str) -> bool:
        """True when any expression matches somewhere in ``path``."""
        return any(pattern.search(path) for pattern in self._patterns)


class HardlinkTable:
    """Maps (device, inode) to the first path seen for it."""

    def __init__(self) -> None:
        self._names: dict[tuple[int, int], str] = {}

    def lookup(self, entry: Entry) -> str | None:
        """Return the earlier path of the same file, or record this one."""
        key = (entry.dev, entry.ino)
        name = self._names.get(key)
        if name is None:
            self._names[key] = entry.name
        return name


def read_link(path: str) -> str | None:
    """Return the target of a symbolic link, or None on error."""
    try:
        return os.readlink(path)
    except OSError as exc:
        msg(f"Error reading link `{path}': {exc.strerror}")
        return None


def _link_length(target: str | None) -> int:
    return len(os.fsencode(target)) if target is not None else 0


class Crawler:
    """Fills an EntryTree with the contents of directories."""

    def __init__(
        self,
        tree: EntryTree,
        names: NameCache | None = None,
        excludes: ExcludeList | None = None,
        one_filesystem: bool = False,
        nobackup: bool = True,
        chown: bool = True,
        verbose: int = 0,
    ) -> None:
        self.tree = tree
        self.names = names if names is not None else NameCache()
        self.excludes = excludes if excludes is not None else ExcludeList()
        self.one_filesystem = one_filesystem
        self.nobackup = nobackup
        self.chown = chown
        self.verbose = verbose
        self.links = HardlinkTable()

    def _entry(self, path: str, st: os.stat_result) -> Entry:
        return Entry(
            name=path,
            name_size=len(os.fsencode(path)),
            uid=st.st_uid,
            user=self.names.user_name(st.st_uid),
            gid=st.st_gid,
            group=self.names.group_name(st.st_gid),
            ctime=int(st.st_ctime),
            mtime=int(st.st_mtime),
            atime=int(st.st_atime),
            mode=st.st_mode,
            size=st.st_size,
            dev=st.st_dev,
            rdev=st.st_rdev,
            ino=st.st_ino,
        )

    def prepend(self, path: str) -> bool:
        """Add the directories leading up to ``path``, and ``path`` itself.

        Returns False when a component cannot be examined or is a
        symbolic link; a link is still added before giving up.
        """
        current = ""
        for part in (p for p in path.split("/") if p):
            current = f"{current}/{part}"
            try:
                st = os.lstat(current)
            except OSError as exc:
                msg(f"Could not stat path `{current}': {exc.strerror}")
                return False
            entry = self._entry(current, st)
            if stat.S_ISLNK(st.st_mode):
                # a link here could lead out of the backup: stop
                entry.target = read_link(current)
                entry.size = entry.name_size
                entry.name_size += 4 + _link_length(entry.target)
                self.tree.insert(entry)
                return False
            self.tree.insert(entry)
        return True

    def _apply_ownership(self, entry: Entry, directory: str, base: str | None) -> None:
        if not self.chown:
            return
        owner = read_ownership(directory, base)
        if owner is not None:
            entry.uid, entry.gid = owner.uid, owner.gid
            entry.user, entry.group = owner.user, owner.group

    def crawl(self, path: str) -> None:
        """Add everything below the directory ``path`` to the tree."""
        try:
            children = os.listdir(path)
        except OSError as exc:
            # plain files are allowed as arguments too
            if os.access(path, os.R_OK):
                return
            msg(f"Cannot enter directory `{path}': {exc.strerror}")
            return
        try:
            current_dev = os.stat(path).st_dev
        except OSError as exc:
            msg(
                f"Cannot determine holding device of the directory "
                f"`{path}': {exc.strerror}"
            )
            return

        pending: list[Entry] = []
        for child in children:
            if self.chown and child.startswith(USRGRPINFO):
                continue
            curpath = f"/{child}" if path == "/" else f"{path}/{child}"
            try:
                st = os.lstat(curpath)
            except OSError as exc:
                msg(f"Could not stat path `{curpath}': {exc.strerror}")
                continue
            if "\n" in curpath:
                msg(f"Newline (\\n) found in path `{curpath}', skipping")
                continue

            mode = st.st_mode
            if stat.S_ISDIR(mode):
                if self.one_filesystem and st.st_dev != current_dev:
                    msg(f"Not walking into different filesystem `{curpath}'")
                    continue
                if self.excludes.matches(curpath):
                    continue
                entry = self._entry(curpath, st)
                self._apply_ownership(entry, curpath, None)
                pending.append(entry)
                continue

            if not (
                stat.S_ISREG(mode)
                or stat.S_ISLNK(mode)
                or stat.S_ISBLK(mode)
                or stat.S_ISCHR(mode)
                or stat.S_ISFIFO(mode)
                or stat.S_ISSOCK(mode)
            ):
                if self.verbose > 0:
                    msg(f"Neither file nor directory `{curpath}'")
                continue

            entry = self._entry(curpath, st)
            if self.excludes.matches(curpath):
                continue
            if st.st_nlink > 1:
                earlier = self.links.lookup(entry)
                if earlier is not None:
                    entry.target = earlier
                    entry.hardlink = True
            if stat.S_ISLNK(mode):
                entry.target = read_link(curpath)
            if entry.is_link():
                entry.size = entry.name_size
                entry.name_size += 4 + _link_length(entry.target)
            self._apply_ownership(entry, path, child)

            if self.nobackup and child == NOBACKUP:
                if self.verbose > 0:
                    msg(f"{NOBACKUP} found in '{path}'")
                self.tree.hide_under(path)
                self.tree.insert(entry)
                return
            self.tree.insert(entry)

        while pending:
            directory = pending.pop()
            self.tree.insert(directory)
            self.crawl(directory.name)