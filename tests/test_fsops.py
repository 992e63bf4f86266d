import io
import os
import stat

import pytest

from rdup.entry import Entry
from rdup.fsops import Updater
from rdup.names import NameCache
from rdup.protocol import write_block, write_block_header

MTIME = 1000000000
NOUSER = "rdupnosuchuser"
NOGROUP = "rdupnosuchgroup"


def blocks(data: bytes) -> bytes:
    buf = io.BytesIO()
    if data:
        write_block_header(buf, len(data))
        write_block(buf, data)
    write_block_header(buf, 0)
    return buf.getvalue()


def make_entry(name, mode, **kwargs):
    return Entry(
        name=name,
        mode=mode,
        user=NOUSER,
        group=NOGROUP,
        uid=os.getuid(),
        gid=os.getgid(),
        mtime=MTIME,
        **kwargs,
    )


def updater(**kwargs):
    options = dict(quiet=True, chown=False, verbose=0, names=NameCache(), out=io.StringIO())
    options.update(kwargs)
    return Updater(**options)


def test_make_regular_file(tmp_path):
    path = str(tmp_path / "f")
    entry = make_entry(path, stat.S_IFREG | 0o640, size=5)
    assert updater().make(io.BytesIO(blocks(b"hello")), str(tmp_path), entry)
    with open(path, "rb") as handle:
        assert handle.read() == b"hello"
    st = os.stat(path)
    assert stat.S_IMODE(st.st_mode) == 0o640
    assert st.st_mtime == MTIME


def test_make_file_replaces_existing(tmp_path):
    path = tmp_path / "f"
    path.write_bytes(b"old content that is long")
    entry = make_entry(str(path), stat.S_IFREG | 0o644)
    assert updater().make(io.BytesIO(blocks(b"new")), str(tmp_path), entry)
    assert path.read_bytes() == b"new"


def test_dry_run_consumes_content(tmp_path):
    path = tmp_path / "f"
    stream = io.BytesIO(blocks(b"data") + b"tail")
    entry = make_entry(str(path), stat.S_IFREG | 0o644)
    assert updater(dry=True).make(stream, str(tmp_path), entry)
    assert not path.exists()
    assert stream.read() == b"tail"


def test_nameless_file_consumes_content():
    stream = io.BytesIO(blocks(b"data") + b"rest")
    entry = make_entry(None, stat.S_IFREG | 0o644)
    assert updater().make(stream, "/", entry)
    assert stream.read() == b"rest"


def test_bad_block_fails(tmp_path):
    entry = make_entry(str(tmp_path / "f"), stat.S_IFREG | 0o644)
    stream = io.BytesIO(b"99BLOCK00005\nhello")
    assert updater().make(stream, str(tmp_path), entry) is False


def test_make_directory(tmp_path):
    path = tmp_path / "d"
    entry = make_entry(str(path), stat.S_IFDIR | 0o750)
    assert updater().make(io.BytesIO(), str(tmp_path), entry)
    assert path.is_dir()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o750


def test_existing_directory_gets_new_mode(tmp_path):
    path = tmp_path / "d"
    path.mkdir(mode=0o700)
    (path / "keep").write_bytes(b"x")
    entry = make_entry(str(path), stat.S_IFDIR | 0o755)
    assert updater().make(io.BytesIO(), str(tmp_path), entry)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o755
    assert (path / "keep").exists()


def test_make_symlink(tmp_path):
    path = str(tmp_path / "l")
    entry = make_entry(path, stat.S_IFLNK | 0o777, target="target")
    assert updater().make(io.BytesIO(), str(tmp_path), entry)
    assert os.readlink(path) == "target"


def test_hardlinks_are_deferred(tmp_path):
    original = tmp_path / "f"
    original.write_bytes(b"x")
    link = tmp_path / "g"
    entry = make_entry(str(link), stat.S_IFREG | 0o644, hardlink=True, target="/f")
    up = updater()
    assert up.make(io.BytesIO(), str(tmp_path), entry)
    assert not link.exists()
    assert up.make_hardlinks()
    assert os.stat(link).st_ino == os.stat(original).st_ino


def test_hardlink_to_missing_target_fails(tmp_path):
    entry = make_entry(str(tmp_path / "g"), stat.S_IFREG | 0o644, hardlink=True, target="/none")
    up = updater()
    assert up.make(io.BytesIO(), str(tmp_path), entry)
    assert up.make_hardlinks() is False


def test_make_fifo(tmp_path):
    path = tmp_path / "p"
    entry = make_entry(str(path), stat.S_IFIFO | 0o600)
    assert updater().make(io.BytesIO(), str(tmp_path), entry)
    assert stat.S_ISFIFO(os.lstat(path).st_mode)


def test_socket_is_skipped(tmp_path):
    path = tmp_path / "s"
    entry = make_entry(str(path), stat.S_IFSOCK | 0o600)
    assert updater().make(io.BytesIO(), str(tmp_path), entry)
    assert not path.exists()


def test_minus_entry_removes(tmp_path):
    path = tmp_path / "f"
    path.write_bytes(b"x")
    entry = make_entry(str(path), stat.S_IFREG | 0o644, plus=False)
    assert updater().make(io.BytesIO(), str(tmp_path), entry)
    assert not path.exists()


def test_remove_missing_path_is_success(tmp_path):
    assert updater().remove(str(tmp_path / "absent"))


def test_remove_directory_recursively(tmp_path):
    top = tmp_path / "top"
    (top / "a" / "b").mkdir(parents=True)
    (top / "a" / "b" / "f").write_bytes(b"x")
    (top / "g").write_bytes(b"y")
    assert updater().remove(str(top))
    assert not top.exists()


def test_remove_dry_keeps_file(tmp_path):
    path = tmp_path / "f"
    path.write_bytes(b"x")
    assert updater(dry=True).remove(str(path))
    assert path.exists()


def test_remove_from_read_only_directory(tmp_path):
    directory = tmp_path / "ro"
    directory.mkdir()
    victim = directory / "f"
    victim.write_bytes(b"x")
    directory.chmod(0o555)
    try:
        assert updater().remove(str(victim))
        assert not victim.exists()
        assert stat.S_IMODE(os.stat(directory).st_mode) == 0o555
    finally:
        directory.chmod(0o755)


def test_table_mode_writes_line_only(tmp_path):
    out = io.StringIO()
    path = str(tmp_path / "l")
    entry = make_entry(path, stat.S_IFLNK | 0o777, target="dest", size=len(path))
    assert updater(dry=True, table=True, out=out).make(io.BytesIO(), None, entry)
    line = out.getvalue()
    assert line.startswith("+l")
    assert f"{path} -> dest" in line
    assert not os.path.lexists(path)


def test_verbose_reports_name(tmp_path, capsys):
    path = str(tmp_path / "f")
    entry = make_entry(path, stat.S_IFREG | 0o644)
    assert updater(verbose=1).make(io.BytesIO(blocks(b"")), str(tmp_path), entry)
    assert path in capsys.readouterr().err


@pytest.mark.parametrize("dry", [True, False])
def test_make_hardlinks_empty(dry):
    up = updater(dry=dry)
    assert up.make_hardlinks() is True
    assert up.hardlinks == []