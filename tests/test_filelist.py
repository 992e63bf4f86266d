import io
import stat

from rdup.entry import Entry
from rdup.filelist import (
    HEADER,
    read_filelist,
    select_changed,
    select_new,
    write_filelist,
)
from rdup.tree import EntryTree


def _regular(name, ino, size=10, ctime=0):
    return Entry(name=name, name_size=len(name), mode=stat.S_IFREG | 0o644,
                 dev=5, ino=ino, size=size, ctime=ctime)


def _directory(name, ino):
    return Entry(name=name, name_size=len(name), mode=stat.S_IFDIR | 0o755,
                 dev=5, ino=ino, size=4096)


def _symlink(name, target, ino):
    return Entry(name=name, name_size=len(name) + 4 + len(target),
                 size=len(name), target=target,
                 mode=stat.S_IFLNK | 0o777, dev=5, ino=ino)


def _roundtrip(tree):
    out = io.BytesIO()
    write_filelist(out, tree)
    out.seek(0)
    return read_filelist(out)


def test_header_written_first():
    out = io.BytesIO()
    write_filelist(out, EntryTree([_regular("/a", 3)]))
    first = out.getvalue().split(b"\n")[0]
    assert first == b"# mode dev inode linktype uid gid pathlen filesize path"
    assert out.getvalue().startswith(HEADER.encode())


def test_roundtrip_regular_and_directory():
    tree = EntryTree([_directory("/d", 2), _regular("/d/file", 3, size=42)])
    back = _roundtrip(tree)
    entries = {e.name: e for e in back.visible()}
    assert set(entries) == {"/d", "/d/file"}
    assert entries["/d/file"].size == 42
    assert entries["/d/file"].ino == 3
    assert entries["/d/file"].mode == stat.S_IFREG | 0o644
    assert entries["/d"].size == 0
    assert entries["/d/file"].target is None


def test_roundtrip_symlink():
    tree = EntryTree([_symlink("/d/link", "../target", 7)])
    (entry,) = list(_roundtrip(tree).visible())
    assert entry.name == "/d/link"
    assert entry.target == "../target"
    assert entry.is_symlink()
    assert entry.hardlink is False
    assert entry.size == len("/d/link")


def test_roundtrip_hardlink():
    link = _regular("/d/b", 9)
    link.target = "/d/a"
    link.hardlink = True
    link.size = len("/d/b")
    link.name_size = len("/d/b -> /d/a")
    (entry,) = list(_roundtrip(EntryTree([link])).visible())
    assert entry.hardlink is True
    assert entry.name == "/d/b"
    assert entry.target == "/d/a"


def test_hidden_entries_not_written():
    tree = EntryTree([_regular("/x/a", 3)])
    tree.insert(_regular("/x/b", 4), True)
    names = [e.name for e in _roundtrip(tree).visible()]
    assert names == ["/x/a"]


def test_corrupt_lines_are_skipped():
    good = io.BytesIO()
    write_filelist(good, EntryTree([_regular("/ok", 3)]))
    data = (
        b"# comment\n"
        b"33188 0 3 - 0 0 2 1 /z\n"
        b"33188 5 3 x 0 0 2 1 /z\n"
        b"33188 5 3 - 0 0 9 1 /z\n"
        b"abc\n"
        + good.getvalue().split(b"\n", 1)[1]
    )
    names = [e.name for e in read_filelist(io.BytesIO(data)).visible()]
    assert names == ["/ok"]


def test_read_none_gives_empty_tree():
    assert len(read_filelist(None)) == 0


def test_select_new_skips_large_files():
    tree = EntryTree([_directory("/d", 2), _regular("/d/big", 3, size=500),
                      _regular("/d/small", 4, size=5)])
    names = [e.name for e in select_new(tree, 100)]
    assert names == ["/d", "/d/small"]
    assert len(list(select_new(tree, 0))) == 3


def test_select_changed_uses_ctime():
    tree = EntryTree([_directory("/d", 2), _regular("/d/old", 3, ctime=100),
                      _regular("/d/new", 4, ctime=300)])
    names = [e.name for e in select_changed(tree, 200, 0)]
    assert names == ["/d", "/d/new"]
    assert len(list(select_changed(tree, 0, 0))) == 3