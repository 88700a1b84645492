# oplpctools

A library for working with an Open PS2 Loader game library from Python:

- read, register, rename and delete games listed in a `ul.cfg` file, along
  with their `ul.*` part files;
- create PS2 virtual memory card (VMC) images, then inspect and read them;
- look through a JSON list of releases for a newer version of the tools.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Games and memory cards as data

`oplpctools.models` defines the shared data types:

- `Game(id, installation_type, title="<Untitled>", media_type=MediaType.UNKNOWN, part_count=1)`.
  Each instance gets its own `uuid`.
- `Vmc(filepath, title, size)`, where `size` is in MiB and each instance gets
  its own `uuid`.
- The enumerations `MediaType`, `GameInstallationType` and `VideoMode`.

## The ul.cfg storage

```python
from oplpctools.models import Game, GameInstallationType, MediaType
from oplpctools.ulconfig import UlConfigGameStorage, make_part_filename

storage = UlConfigGameStorage(validate=True)
storage.load("/media/usb")           # a missing ul.cfg means no games
for game in storage.games:
    print(game.id, game.title, game.media_type, game.part_count)

game = Game("SLUS_123.45", GameInstallationType.UL_CONFIG,
            title="My Game", media_type=MediaType.DVD, part_count=2)
storage.register(game)               # appends a record to ul.cfg

print(make_part_filename(game.id, game.title, 0))   # ul.XXXXXXXX.SLUS_123.45.00
```

`storage.rename(game, title)` writes the new title into the game's record.
It also renames the game's part files, which must already be in the same
directory as `ul.cfg`. If any step fails, the part files that were already
renamed get their old names back. `storage.delete(game)` removes the record
and deletes the part files.

The module also provides these functions:

- `crc32` and `make_part_filename`, which work out part file names;
- `validate_title` and `validate_id`, which check lengths;
- `encode_record` and `decode_record`, which convert a game to and from a
  64-byte config record.

A title may hold at most 32 bytes of UTF-8. A storage created with
`validate=True` also checks the loaded file. That file must be a whole
number of records, and each game must have at most 10 parts and printable
text. Invalid titles and corrupted files raise
`oplpctools.errors.ValidationError`. File problems raise
`oplpctools.errors.StorageIOError`. Both derive from
`oplpctools.errors.OplError`.

## Virtual memory cards

```python
from oplpctools.vmcfs import VmcFS
from oplpctools.vmc_path import VmcPath

VmcFS.create("card.bin", 8)          # size in MiB, 8 to 512

with VmcFS.load("card.bin") as fs:
    print(fs.info.cluster_size, fs.info.max_allocatable_clusters)
    for entry in fs.enumerate_entries(VmcPath("/")):
        print(entry.name, entry.is_directory, entry.size)
```

Paths may be given as `VmcPath` objects or as plain strings. Names are
matched without regard to case. To open a file, call
`fs.open_file("/DIR/FILE")`. The `VmcFile` it returns has these members:

- `name` and `size`;
- `read(max_size=-1)`, which returns `bytes` and gives `b""` at the end of
  the file;
- `seek(pos)`, which raises `ValueError` if the position is outside the file;
- `tell()`.

A damaged or unformatted image raises `oplpctools.errors.VmcFSError`. A size
outside the allowed range raises `ValidationError`.

`oplpctools.vmc_format` holds the on-disk structures:

- `VmcSuperblock`, `FSEntry` and `FSDateTime`, each with `pack()` and
  `unpack()`;
- the `EntryMode` flags;
- `build_superblock(size_mib)` and `format_vmc(filename, size_mib)`.

## Update checks

```python
from oplpctools.updater import Updater, Version

updater = Updater(Version(3, 1))
update = updater.read_updates(releases_json)   # also stored in updater.latest_update
if update is not None:
    print(update.version, update.download_url, update.html_url)
```

`read_updates` accepts a JSON array of releases, each with a `tag_name`, an
`html_url` and an `assets` list. It skips drafts, prereleases and releases
that have no asset for the running platform and architecture. It keeps the
newest of the releases that are left. The helpers it uses are also public:
`parse_releases`, `parse_version_tag` and `find_update`.

`Updater.check_for_update()` downloads the listing from the class attribute
`Updater.releases_url`, which is `None` by default. Set it first, for
example `Updater.releases_url = "https://example.com/releases.json"`. The
download only happens where `Updater.is_supported()` is true. Network errors
give `None`.

## What the package does not do

This is a library only. It has:

- no command-line tool and no graphical interface;
- no installation of games from disc images or optical drives, so part files
  must be produced some other way;
- no games stored in per-media directories;
- no cover art handling;
- no writing or exporting of files inside memory card images, which can only
  be created blank and then read.