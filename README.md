# rdup

rdup works out what has to be backed up and leaves the backing up to
other tools. The package installs three commands that work together.

- `rdup` walks one or more directories and compares them with the file
  list saved by the last run. It prints what was added, what changed and
  what was removed. The output is a stream that can carry file contents.
- `rdup-tr` reads that stream and writes it out again, either as the
  rdup stream or as a tar, pax or cpio archive. Along the way it can
  encrypt or decrypt every path with AES.
- `rdup-up` reads an rdup stream and updates a directory tree to match
  it. It can also print a table of contents.

`rdup` and `rdup-tr` will not write to a terminal unless `-c` is given.

## Installation

```
pip install .
```

Python 3.10 or later is needed on a POSIX system. The only dependency is
`cryptography`, which path encryption uses.

## Usage

Make a dump of `/home` into a tar archive. The list of files seen is
saved in `/var/backup/list` for the next run:

```
rdup -N /var/backup/stamp /var/backup/list /home | rdup-tr -O tar > home.tar
```

`-N` compares entries with the ctime of the timestamp file. If that file
does not exist, every entry counts as changed. When the run ends, the
timestamp file is created or touched again. On later runs, entries that
are already in the list are only written if their ctime is not older
than the timestamp. Entries that are no longer on disk are written as
removals. If the list file is `/dev/null`, nothing is saved.

Restore a stream into a directory, dropping the first path component:

```
rdup /dev/null /home | rdup-up -t -s 1 /srv/restore
```

Show a table of contents without touching the file system:

```
rdup /dev/null /etc | rdup-up -T
```

Encrypt the paths with a key file. The key is the first line of the
file and must be 16, 24 or 32 bytes long. A longer key is cut to 32
bytes:

```
rdup /dev/null /home | rdup-tr -X keyfile | rdup-up /srv/encrypted
```

`-Y keyfile` decrypts the paths again.

### `rdup` options

- `-F FORMAT`: the output format. The default is
  `%p%T %b %t %u %U %g %G %l %s\n%n%C`. Directives: `%p` (+ or -),
  `%T` (type), `%b` (permission bits), `%m` (mode), `%t` (mtime),
  `%u`/`%U` (uid/user), `%g`/`%G` (gid/group), `%l` (path length),
  `%s` (size), `%n` (path, with ` -> target` for links), `%N` (path only),
  `%H` (SHA-1 of the contents), `%C` (contents as blocks), `%%`.
  C-style backslash escapes such as `\n` and `\t` also work.
- `-E FILE`: skip paths that match any regular expression in FILE.
  The file has one expression per line; `#` lines and empty lines are
  ignored.
- `-P CMD`: pass file contents through `sh -c CMD`. The option can be
  repeated to chain several commands.
- `-N FILE` / `-M FILE`: do an incremental dump against the ctime or
  the mtime of FILE.
- `-m` / `-r`: print only new and changed entries, or only removed ones.
- `-s SIZE`: leave out regular files larger than SIZE bytes.
- `-x`: stay on one file system.
- `-n`: ignore `.nobackup` marker files. Without `-n`, a directory that
  holds `.nobackup` has its other files left out.
- `-u`: do not treat `._rdup_.` ownership files specially.
- `-R`: print each list in reverse order.
- `-v`: be more verbose.
- `-a`: accepted, but does nothing.

### `rdup-tr` options

- `-O FMT`: `rdup` (the default), `tar`, `pax` or `cpio`. The cpio
  output uses the portable odc header.
- `-L`: read a list of path names instead of an rdup stream.
- `-X FILE` / `-Y FILE`: encrypt or decrypt paths with the key in FILE.
- `-c`: allow output to a terminal.
- `-v`: print each processed path to standard error.

### `rdup-up` options

- `-t`: create the target directory if it does not exist.
- `-s NUM`: strip NUM leading path components.
- `-r PATH`: strip PATH from every path name.
- `-n`: dry run.
- `-T`: print a table of contents. This implies a dry run, and the
  directory can be left out.
- `-u`: do not write `._rdup_.` files when chown fails.
- `-q`: do not report chown failures.
- `-v`: print each processed path to standard error.

Each command shows its full help with `-h` and its version with `-V`.

## Library use

The parts can also be used from Python:

- `rdup.protocol` has the block protocol: `write_block_header`,
  `read_block_header`, `iter_blocks`.
- `rdup.record` parses and writes entry headers: `parse_entry`,
  `iter_entries`, `format_header`, `format_table`.
- `rdup.crypt.PathCipher` encrypts and decrypts paths, and
  `rdup.crypt.read_key` reads a key file.
- `rdup.crawler.Crawler` fills an `rdup.tree.EntryTree` from a
  directory tree.
- `rdup.filelist` reads and writes the saved file list.
- `rdup.paths.abspath` normalises absolute paths.

## Limitations

- `rdup-up` cannot recreate named sockets, and the tar and pax outputs
  of `rdup-tr` leave sockets out with a message.
- `rdup-tr` only writes archives. It does not read tar, pax or cpio
  archives back into an rdup stream.
- Removals can only be written in the rdup output format.

## Tests

```
pip install .[test]
pytest
```