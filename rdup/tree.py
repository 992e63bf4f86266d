"""An ordered collection of entries, keyed by path name."""

from __future__ import annotations

import os
import stat
from typing import Iterable, Iterator

from .entry import Entry


def compare_entries(a: Entry, b: Entry) -> int:
    """Compare two entries; 0 means they describe the same object.

    Entries are ordered by name. With equal names a different inode
    gives -2 and a different mode -3, except for directories whose
    permission bits alone have changed, which still count as equal.
    """
    name_a, name_b = os.fsencode(a.name), os.fsencode(b.name)
    if name_a != name_b:
        return -1 if name_a < name_b else 1
    if a.ino != b.ino:
        return -2
    if (
        stat.S_ISDIR(a.mode)
        and stat.S_ISDIR(b.mode)
        and stat.S_IMODE(a.mode) != stat.S_IMODE(b.mode)
    ):
        return 0
    if a.mode != b.mode:
        return -3
    return 0


class EntryTree:
    """Entries in name order, each with a flag that hides it from output."""

    def __init__(self, entries: Iterable[Entry] = ()) -> None:
        self._slots: dict[bytes, list[list]] = {}
        for entry in entries:
            self.insert(entry)

    def _find(self, entry: Entry) -> list | None:
        for slot in self._slots.get(os.fsencode(entry.name), ()):
            if compare_entries(slot[0], entry) == 0:
                return slot
        return None

    def insert(self, entry: Entry, hidden: bool = False) -> None:
        """Add ``entry``; for an equal entry already present only the flag changes."""
        slot = self._find(entry)
        if slot is not None:
            slot[1] = hidden
            return
        self._slots.setdefault(os.fsencode(entry.name), []).append([entry, hidden])

    def lookup(self, entry: Entry) -> Entry | None:
        """Return the stored entry equal to ``entry``, or None."""
        slot = self._find(entry)
        return slot[0] if slot is not None else None

    def is_hidden(self, entry: Entry) -> bool:
        """True when the stored entry equal to ``entry`` is hidden."""
        slot = self._find(entry)
        return bool(slot is not None and slot[1])

    def __contains__(self, entry: Entry) -> bool:
        return self._find(entry) is not None

    def __len__(self) -> int:
        return sum(len(slots) for slots in self._slots.values())

    def __iter__(self) -> Iterator[tuple[Entry, bool]]:
        """Yield ``(entry, hidden)`` pairs in name order."""
        for key in sorted(self._slots):
            for entry, hidden in self._slots[key]:
                yield entry, hidden

    def hide_under(self, path: str) -> None:
        """Hide every non-directory whose name starts with ``path``."""
        prefix = os.fsencode(path)
        for key, slots in self._slots.items():
            if not key.startswith(prefix):
                continue
            for slot in slots:
                if not stat.S_ISDIR(slot[0].mode):
                    slot[1] = True

    def subtract(self, other: EntryTree) -> EntryTree:
        """Return a tree of the entries here that ``other`` lacks."""
        result = EntryTree()
        for entry, hidden in self:
            if other.lookup(entry) is None:
                result.insert(entry, hidden)
        return result

    def visible(self) -> Iterator[Entry]:
        """Yield the entries that are not hidden, in name order."""
        for entry, hidden in self:
            if not hidden:
                yield entry