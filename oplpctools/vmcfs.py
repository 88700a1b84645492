"""Read access to the file system of a virtual memory card image."""

import re
import struct
from dataclasses import dataclass
from itertools import takewhile

from .errors import StorageIOError, VmcFSError
from .vmc_format import (
    ENTRY_SIZE,
    FAT_CLUSTER_MASK,
    FAT_FLAG_LAST,
    INVALID_CLUSTER,
    NULL_CLUSTER,
    SUPERBLOCK_SIZE,
    VMC_MAGIC,
    EntryMode,
    FSEntry,
    VmcSuperblock,
    format_vmc,
)
from .vmc_path import VmcPath

_VERSION_RE = re.compile(r"^1\.[012]\.0\.0$")
_PAGE_SIZE = 512
_CLUSTER_SIZES = (512, 1024)
_POINTER_SIZE = 4


def _not_formatted():
    return VmcFSError("The VMC is corrupted or not formatted correctly")


def _signed32(value):
    return value - (1 << 32) if value & 0x80000000 else value


def _as_path(path):
    return path if isinstance(path, VmcPath) else VmcPath(path)


@dataclass(frozen=True)
class VmcInfo:
    """Layout parameters of a loaded memory card, taken from its superblock."""

    magic: str
    version: str
    pagesize: int
    pages_per_cluster: int
    pages_per_block: int
    clusters_per_card: int
    alloc_offset: int
    alloc_end: int
    rootdir_cluster: int
    backup_block1: int
    backup_block2: int
    ifc_ptr_list: tuple
    bad_block_list: tuple
    cardtype: int
    cardflags: int
    cluster_size: int
    fat_entries_per_cluster: int
    clusters_per_block: int
    cardform: int
    max_allocatable_clusters: int

    @classmethod
    def _from_superblock(cls, sb):
        return cls(
            magic=sb.magic,
            version=sb.version,
            pagesize=sb.pagesize,
            pages_per_cluster=sb.pages_per_cluster,
            pages_per_block=sb.pages_per_block,
            clusters_per_card=sb.clusters_per_card,
            alloc_offset=sb.alloc_offset,
            alloc_end=sb.alloc_end,
            rootdir_cluster=sb.rootdir_cluster,
            backup_block1=sb.backup_block1,
            backup_block2=sb.backup_block2,
            ifc_ptr_list=tuple(sb.ifc_ptr_list),
            bad_block_list=tuple(_signed32(value) for value in sb.bad_block_list),
            cardtype=sb.cardtype,
            cardflags=sb.cardflags,
            cluster_size=sb.cluster_size,
            fat_entries_per_cluster=sb.fat_entries_per_cluster,
            clusters_per_block=sb.clusters_per_block,
            cardform=sb.cardform,
            max_allocatable_clusters=sb.max_allocatable_clusters,
        )


@dataclass(frozen=True)
class VmcEntryInfo:
    """A file or directory listed in a memory card directory."""

    name: str
    is_directory: bool
    size: int


@dataclass(frozen=True)
class _Entry:
    name: str
    is_directory: bool
    cluster: int
    length: int

    @classmethod
    def from_fs_entry(cls, fs_entry):
        return cls(
            name=fs_entry.name,
            is_directory=bool(fs_entry.mode & EntryMode.DIRECTORY),
            cluster=fs_entry.cluster,
            length=fs_entry.length,
        )

    def to_info(self):
        return VmcEntryInfo(self.name, self.is_directory, self.length)


def _validate_superblock(sb):
    if (
        sb.magic != VMC_MAGIC
        or not _VERSION_RE.match(sb.version)
        or sb.pagesize != _PAGE_SIZE
        or sb.cluster_size not in _CLUSTER_SIZES
        or sb.pages_per_cluster != sb.cluster_size // sb.pagesize
        or sb.alloc_offset == INVALID_CLUSTER
        or sb.alloc_offset < 2
        or sb.alloc_end == INVALID_CLUSTER
        or sb.alloc_end < sb.alloc_offset
        or sb.ifc_ptr_list[0] >= sb.alloc_offset
    ):
        raise _not_formatted()


class VmcFile:
    """A file opened on a memory card; reads advance the current position."""

    def __init__(self, fs, name, size, clusters):
        self._fs = fs
        self._name = name
        self._size = size
        self._clusters = tuple(clusters)
        self._position = 0

    @property
    def name(self):
        """The file name as stored in its directory entry."""
        return self._name

    @property
    def size(self):
        """The file length in bytes."""
        return self._size

    def tell(self):
        """The current read position."""
        return self._position

    def seek(self, pos):
        """Move the read position; it must lie inside the file."""
        if pos != self._position and not 0 <= pos < self._size:
            raise ValueError(f"Position {pos} is outside the file of {self._size} bytes")
        self._position = pos
        return self._position

    def read(self, max_size=-1):
        """Read up to ``max_size`` bytes (all remaining if negative); b"" at end of file."""
        cluster_size = self._fs.info.cluster_size
        start_index = self._position // cluster_size
        if self._position >= self._size or start_index >= len(self._clusters):
            return b""
        if max_size is None or max_size < 0:
            max_size = self._size - self._position
        position_in_cluster = self._position % cluster_size
        position_in_file = self._position
        out = bytearray()
        for cluster in self._clusters[start_index:]:
            available = min(cluster_size - position_in_cluster, self._size - position_in_file)
            to_read = min(available, max_size - len(out))
            is_last = (
                available + position_in_cluster < cluster_size
                or to_read + len(out) == max_size
            )
            data = self._fs._read_cluster(cluster, absolute=False)
            out += data[position_in_cluster : position_in_cluster + to_read]
            position_in_file += to_read
            position_in_cluster = 0
            if is_last:
                break
        self._position = position_in_file
        return bytes(out)


class VmcFS:
    """A loaded memory card image; use :meth:`load` to open one."""

    def __init__(self, filepath):
        self._filepath = filepath
        self._info = None
        self._fat = ()
        try:
            self._stream = open(filepath, "rb")
        except OSError as error:
            raise StorageIOError(f'Unable to open file "{filepath}": {error.strerror}') from error
        try:
            self._info = self._read_superblock()
            self._fat = self._read_fat()
        except BaseException:
            self.close()
            raise

    @classmethod
    def load(cls, filepath):
        """Open and validate the memory card image at ``filepath``."""
        return cls(filepath)

    @staticmethod
    def create(filepath, size_mib):
        """Create a blank formatted memory card image of ``size_mib`` MiB."""
        format_vmc(filepath, size_mib)

    @property
    def info(self):
        """Layout parameters read from the superblock."""
        return self._info

    def enumerate_entries(self, path):
        """List the entries of the directory at ``path``, without "." and ".."."""
        entry = self._resolve(_as_path(path))
        if entry is None:
            raise VmcFSError("Path not found")
        return [
            child.to_info()
            for child in self._iter_entries(entry)
            if child.name not in (".", "..")
        ]

    def open_file(self, path):
        """Open the file at ``path`` for reading."""
        path = _as_path(path)
        entry = self._resolve(path)
        if entry is None:
            raise VmcFSError("File not found")
        if entry.is_directory:
            raise VmcFSError(f'"{path}" is not a file')
        return VmcFile(self, entry.name, entry.length, self._entry_clusters(entry))

    def close(self):
        """Release the underlying image file."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _read(self, offset, size):
        if self._stream is None:
            raise VmcFSError("The VMC is closed")
        try:
            self._stream.seek(offset)
            data = self._stream.read(size)
        except (OSError, ValueError, OverflowError) as error:
            raise _not_formatted() from error
        if len(data) != size:
            raise _not_formatted()
        return data

    def _read_cluster(self, cluster, absolute, size=None):
        cluster_size = self._info.cluster_size
        offset = cluster * cluster_size
        if not absolute:
            offset += self._info.alloc_offset * cluster_size
        return self._read(offset, cluster_size if size is None else size)

    def _read_superblock(self):
        sb = VmcSuperblock.unpack(self._read(0, SUPERBLOCK_SIZE))
        _validate_superblock(sb)
        return VmcInfo._from_superblock(sb)

    def _read_fat(self):
        per_cluster = self._info.cluster_size // _POINTER_SIZE
        layout = f"<{per_cluster}I"
        ifc = takewhile(
            lambda ptr: ptr not in (INVALID_CLUSTER, NULL_CLUSTER), self._info.ifc_ptr_list
        )
        pointers = []
        for ptr in ifc:
            pointers.extend(struct.unpack(layout, self._read_cluster(ptr, absolute=True)))
        fat = []
        for ptr in takewhile(lambda value: value != INVALID_CLUSTER, pointers):
            fat.extend(struct.unpack(layout, self._read_cluster(ptr, absolute=True)))
        return tuple(fat)

    def _root_entry(self):
        raw = self._read_cluster(self._info.rootdir_cluster, absolute=False, size=ENTRY_SIZE)
        return _Entry.from_fs_entry(FSEntry.unpack(raw))

    def _entry_clusters(self, entry):
        if entry.cluster > self._info.max_allocatable_clusters:
            raise _not_formatted()
        clusters = []
        seen = set()
        cluster = entry.cluster
        while True:
            if cluster in seen or cluster >= len(self._fat):
                raise _not_formatted()
            seen.add(cluster)
            clusters.append(cluster)
            value = self._fat[cluster]
            if value >> 24 == FAT_FLAG_LAST:
                return clusters
            cluster = value & FAT_CLUSTER_MASK

    def _iter_entries(self, directory):
        per_cluster = self._info.cluster_size // ENTRY_SIZE
        remaining = directory.length
        for cluster in self._entry_clusters(directory):
            raw = self._read_cluster(cluster, absolute=False)
            for offset in range(0, per_cluster * ENTRY_SIZE, ENTRY_SIZE):
                if remaining <= 0:
                    return
                remaining -= 1
                fs_entry = FSEntry.unpack(raw[offset : offset + ENTRY_SIZE])
                if not fs_entry.mode & EntryMode.EXISTS:
                    continue
                yield _Entry.from_fs_entry(fs_entry)

    def _resolve(self, path):
        entry = self._root_entry()
        for part in path.parts:
            key = part.casefold()
            entry = next(
                (child for child in self._iter_entries(entry) if child.name.casefold() == key),
                None,
            )
            if entry is None:
                return None
        return entry