import os
import stat

import pytest

from rdup.crawler import Crawler, ExcludeList, HardlinkTable, read_link
from rdup.entry import Entry
from rdup.names import NameCache
from rdup.tree import EntryTree


@pytest.fixture
def base(tmp_path):
    return os.path.realpath(tmp_path)


def crawl(base, **options):
    tree = EntryTree()
    Crawler(tree, NameCache(), **options).crawl(base)
    return tree


def by_name(tree):
    return {entry.name: entry for entry in tree.visible()}


def test_exclude_load_and_match(tmp_path):
    rules = tmp_path / "excludes"
    rules.write_text("# comment\n\n\\.o$\n^/tmp/x\n")
    excludes = ExcludeList.load(rules)
    assert len(excludes) == 2
    assert excludes.matches("/a/b.o")
    assert not excludes.matches("/a/b.c")
    assert excludes.matches("/tmp/xyz")


def test_exclude_bad_expression(tmp_path):
    rules = tmp_path / "excludes"
    rules.write_text("ok\n(\n")
    with pytest.raises(ValueError, match="line: 2"):
        ExcludeList.load(rules)


def test_hardlink_table_remembers_first_name():
    table = HardlinkTable()
    assert table.lookup(Entry(name="/a", dev=1, ino=2)) is None
    assert table.lookup(Entry(name="/b", dev=1, ino=2)) == "/a"
    assert table.lookup(Entry(name="/c", dev=1, ino=3)) is None


def test_read_link(base):
    link = os.path.join(base, "ln")
    os.symlink("somewhere", link)
    assert read_link(link) == "somewhere"
    assert read_link(os.path.join(base, "missing")) is None


def test_crawl_collects_files_dirs_and_links(base):
    with open(os.path.join(base, "f.txt"), "w") as handle:
        handle.write("data")
    os.mkdir(os.path.join(base, "sub"))
    with open(os.path.join(base, "sub", "g.txt"), "w") as handle:
        handle.write("more")
    os.symlink("f.txt", os.path.join(base, "ln"))

    entries = by_name(crawl(base))
    expected = {
        os.path.join(base, "f.txt"),
        os.path.join(base, "sub"),
        os.path.join(base, "sub", "g.txt"),
        os.path.join(base, "ln"),
    }
    assert set(entries) == expected
    assert stat.S_ISDIR(entries[os.path.join(base, "sub")].mode)
    assert entries[os.path.join(base, "f.txt")].size == 4

    link = entries[os.path.join(base, "ln")]
    assert link.target == "f.txt"
    assert link.size == len(link.name)
    assert link.name_size == link.size + 4 + len("f.txt")


def test_crawl_detects_hardlinks(base):
    first = os.path.join(base, "a")
    second = os.path.join(base, "b")
    with open(first, "w") as handle:
        handle.write("x")
    os.link(first, second)
    entries = by_name(crawl(base))
    links = [e for e in entries.values() if e.hardlink]
    assert len(links) == 1
    other = first if links[0].name == second else second
    assert links[0].target == other
    assert links[0].name_size == len(links[0].name) + 4 + len(other)


def test_crawl_nobackup_hides_directory_contents(base):
    directory = os.path.join(base, "d")
    os.mkdir(directory)
    open(os.path.join(directory, "f"), "w").close()
    open(os.path.join(directory, ".nobackup"), "w").close()
    os.mkdir(os.path.join(directory, "sub"))
    names = set(by_name(crawl(base)))
    assert os.path.join(directory, ".nobackup") in names
    assert os.path.join(directory, "f") not in names
    assert os.path.join(directory, "sub") not in names
    assert directory in names


def test_crawl_nobackup_disabled(base):
    open(os.path.join(base, "f"), "w").close()
    open(os.path.join(base, ".nobackup"), "w").close()
    names = set(by_name(crawl(base, nobackup=False)))
    assert os.path.join(base, "f") in names


def test_crawl_excludes(base):
    os.mkdir(os.path.join(base, "sub"))
    open(os.path.join(base, "sub", "g"), "w").close()
    open(os.path.join(base, "keep"), "w").close()
    names = set(by_name(crawl(base, excludes=ExcludeList(["/sub$"]))))
    assert names == {os.path.join(base, "keep")}


def test_crawl_reads_ownership_helpers(base):
    open(os.path.join(base, "f.txt"), "w").close()
    with open(os.path.join(base, "._rdup_.f.txt"), "w") as handle:
        handle.write("alice:1234/staff:99\n")
    os.mkdir(os.path.join(base, "sub"))
    with open(os.path.join(base, "sub", "._rdup_."), "w") as handle:
        handle.write("bob:4321/wheel:7\n")

    entries = by_name(crawl(base))
    assert set(entries) == {os.path.join(base, "f.txt"), os.path.join(base, "sub")}
    owned = entries[os.path.join(base, "f.txt")]
    assert (owned.user, owned.uid, owned.group, owned.gid) == ("alice", 1234, "staff", 99)
    sub = entries[os.path.join(base, "sub")]
    assert (sub.user, sub.uid) == ("bob", 4321)


def test_crawl_missing_path_adds_nothing(base):
    tree = crawl(os.path.join(base, "missing"))
    assert len(tree) == 0


def test_prepend_adds_all_ancestors(base):
    path = os.path.join(base, "a", "b")
    os.makedirs(path)
    tree = EntryTree()
    assert Crawler(tree, NameCache()).prepend(path) is True
    expected = [path, os.path.dirname(path)]
    current = os.path.dirname(path)
    while current != "/":
        current = os.path.dirname(current)
        if current != "/":
            expected.append(current)
    assert sorted(e.name for e in tree.visible()) == sorted(expected)


def test_prepend_stops_at_symlink(base):
    real = os.path.join(base, "real")
    os.mkdir(real)
    link = os.path.join(base, "ln")
    os.symlink(real, link)
    tree = EntryTree()
    assert Crawler(tree, NameCache()).prepend(os.path.join(link, "x")) is False
    entries = by_name(tree)
    assert entries[link].target == real
    assert os.path.join(link, "x") not in entries