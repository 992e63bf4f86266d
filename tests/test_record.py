import io
import os
import stat

import pytest

from rdup.entry import Entry, InputFormat, OutputFormat
from rdup.protocol import iter_blocks, write_block_header
from rdup.record import (
    EntryError,
    format_header,
    format_table,
    iter_entries,
    parse_entry,
    strmode,
    write_data,
    write_header,
)

LINE = "+- 0644 1234 1000 alice 100 staff 6 3"


def test_parse_regular_entry():
    entry = parse_entry(LINE, 1)
    assert entry.plus is True
    assert entry.mode == stat.S_IFREG | 0o644
    assert entry.mtime == 1234
    assert entry.uid == 1000
    assert entry.user == "alice"
    assert entry.gid == 100
    assert entry.group == "staff"
    assert entry.name_size == 6
    assert entry.size == 3
    assert entry.hardlink is False


def test_parse_minus_entry():
    entry = parse_entry("-d 0755 1 0 root 0 root 4 0", 1)
    assert entry.plus is False
    assert stat.S_ISDIR(entry.mode)


def test_parse_hardlink_type():
    entry = parse_entry("+h 0644 1 0 root 0 root 10 4", 1)
    assert entry.hardlink is True
    assert stat.S_ISREG(entry.mode)


def test_parse_device():
    entry = parse_entry("+c 0600 1 0 root 0 root 8 4,5", 1)
    assert stat.S_ISCHR(entry.mode)
    assert entry.rdev == os.makedev(4, 5)
    assert entry.size == 0


def test_device_without_comma():
    with pytest.raises(EntryError):
        parse_entry("+b 0600 1 0 root 0 root 8 45", 1)


def test_minus_rejected_for_archive_output():
    with pytest.raises(EntryError, match="Removing files"):
        parse_entry("-- 0644 1 0 root 0 root 4 0", 1, InputFormat.RDUP, OutputFormat.TAR)


@pytest.mark.parametrize(
    "line",
    [
        "+-",
        "*- 0644 1 0 root 0 root 4 0",
        "+x 0644 1 0 root 0 root 4 0",
        "+- 9999 1 0 root 0 root 4 0",
        "+- 0644 1234",
        "+- 0644 1 0 root 0 root",
    ],
)
def test_corrupt_lines(line):
    with pytest.raises(EntryError):
        parse_entry(line, 7)


def test_format_header_round_trip():
    entry = parse_entry(LINE, 1)
    entry.name = "/a/b/c"
    assert format_header(entry) == LINE + "\n/a/b/c"


def test_write_header_bytes():
    entry = parse_entry(LINE, 1)
    entry.name = "/a/b/c"
    out = io.BytesIO()
    write_header(out, entry)
    assert out.getvalue() == (LINE + "\n/a/b/c").encode()


def test_link_header_round_trip():
    line = "+l 0777 5 0 root 0 root 10 4"
    stream = io.BytesIO((line + "\n/a/b -> /c").encode())
    entry = next(iter_entries(stream))
    assert entry.name == "/a/b"
    assert entry.target == "/c"
    assert format_header(entry) == line + "\n/a/b -> /c"


def test_write_data_block():
    out = io.BytesIO()
    write_data(out, b"abc")
    assert out.getvalue() == b"01BLOCK00003\nabc"


def test_iter_entries_with_content():
    stream = io.BytesIO()
    stream.write((LINE + "\n/a/b/c").encode())
    write_data(stream, b"abc")
    write_block_header(stream, 0)
    stream.write(b"+d 0755 1 0 root 0 root 2 0\n/d")
    stream.seek(0)
    entries = iter_entries(stream)
    first = next(entries)
    assert first.name == "/a/b/c"
    assert list(iter_blocks(stream)) == [b"abc"]
    second = next(entries)
    assert second.name == "/d"
    assert stat.S_ISDIR(second.mode)
    with pytest.raises(StopIteration):
        next(entries)


def test_iter_entries_short_name():
    stream = io.BytesIO(b"+- 0644 1 0 root 0 root 20 0\n/short")
    with pytest.raises(EntryError, match="name size"):
        next(iter_entries(stream))


def test_iter_entries_relative_name():
    stream = io.BytesIO(b"+- 0644 1 0 root 0 root 3 0\nabc")
    with pytest.raises(EntryError, match="does not start with /"):
        next(iter_entries(stream))


def test_parse_list_input(tmp_path):
    path = tmp_path / "file"
    path.write_bytes(b"hello")
    entry = parse_entry(str(path), 1, InputFormat.LIST)
    assert entry.name == str(path)
    assert entry.size == 5
    assert stat.S_ISREG(entry.mode)
    assert entry.plus is True


def test_parse_list_symlink(tmp_path):
    link = tmp_path / "link"
    os.symlink("/target/path", link)
    entry = parse_entry(str(link), 1, InputFormat.LIST)
    assert entry.target == "/target/path"


def test_parse_list_missing(tmp_path):
    with pytest.raises(EntryError, match="Could not stat"):
        parse_entry(str(tmp_path / "missing"), 1, InputFormat.LIST)


def test_strmode_plain():
    assert strmode(0o755) == "rwxr-xr-x"


def test_strmode_special_bits():
    assert strmode(0o7755) == "rwsr-sr-t"
    assert strmode(0o7644).upper() == strmode(0o7644)[:2].upper() + strmode(0o7644)[2:]
    assert strmode(0o7644)[2] == "S"


def test_format_table_regular():
    entry = Entry(name="/a/b/c", mode=stat.S_IFREG | 0o644, user="alice", group="staff", size=3)
    line = format_table(entry)
    assert line.startswith("+-" + strmode(0o644) + " alice/staff ")
    assert line.endswith(" /a/b/c\n")


def test_format_table_numeric_owner_and_link():
    entry = Entry(
        name="/a/b", target="/c", mode=stat.S_IFLNK | 0o777,
        uid=1000, gid=100, name_size=10, size=4,
    )
    line = format_table(entry)
    assert " 1000/100 " in line
    assert line.endswith(" /a/b -> /c\n")


def test_format_table_device():
    entry = Entry(name="/dev/x", mode=stat.S_IFBLK | 0o600, user="root", group="root",
                  rdev=os.makedev(4, 5))
    line = format_table(entry)
    assert line.startswith("+b")
    assert "4,5 " in line