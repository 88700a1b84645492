"""On-disk structures of a virtual memory card and creation of blank cards."""

import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntFlag

from .errors import StorageIOError, ValidationError

VMC_MAGIC = "Sony PS2 Memory Card Format "
VMC_VERSION = "1.2.0.0"

MIN_SIZE_MIB = 8
MAX_SIZE_MIB = 512

INVALID_CLUSTER = 0xFFFFFFFF
NULL_CLUSTER = 0
IFC_LIST_LENGTH = 32
BAD_BLOCK_LIST_LENGTH = 32

FAT_FLAG_FREE = 0x7F
FAT_FLAG_LAST = 0xFF
FAT_CLUSTER_MASK = 0xFFFFFF

_MIB = 1024 * 1024
_PAGE_SIZE = 512
_PAGES_PER_CLUSTER = 2
_CLUSTERS_PER_BLOCK = 8
_POINTER_SIZE = 4
_CARD_TYPE = 2
_CARD_FLAGS = 0x2B
_CARD_FORM = 1
_JAPAN_TZ = timezone(timedelta(hours=9))

_SUPERBLOCK = struct.Struct("<28s12shHHHIIIIII8s32I32IBBHIIIiIIIIIIi")
_DATETIME = struct.Struct("<BBBBBBH")
_ENTRY = struct.Struct("<HHI8sII8sI28s32s416s")
_FAT_ENTRY = struct.Struct("<I")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DATETIME_SIZE = _DATETIME.size
ENTRY_SIZE = _ENTRY.size
FAT_ENTRY_SIZE = _FAT_ENTRY.size


def _c_string(raw):
    return raw.split(b"\0", 1)[0].decode("latin-1")


def _check_length(data, size, what):
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


class EntryMode(IntFlag):
    """Mode bits of a directory entry."""

    READ = 0x1
    WRITE = 0x2
    EXECUTE = 0x4
    PROTECTED = 0x8
    FILE = 0x10
    DIRECTORY = 0x20
    POCKETSTATION = 0x800
    PLAYSTATION = 0x1000
    HIDDEN = 0x2000
    EXISTS = 0x8000


@dataclass(frozen=True)
class FSDateTime:
    """A timestamp as stored in a directory entry (Japan standard time)."""

    year: int = 0
    month: int = 0
    day: int = 0
    hour: int = 0
    minute: int = 0
    second: int = 0
    resv2: int = 0

    def pack(self):
        """Serialize into the 8-byte on-disk form."""
        return _DATETIME.pack(
            self.resv2, self.second, self.minute, self.hour, self.day, self.month, self.year
        )

    @classmethod
    def unpack(cls, data):
        """Read a timestamp from the first 8 bytes of ``data``."""
        _check_length(data, DATETIME_SIZE, "A timestamp")
        resv2, second, minute, hour, day, month, year = _DATETIME.unpack(
            bytes(data[:DATETIME_SIZE])
        )
        return cls(year, month, day, hour, minute, second, resv2)


@dataclass
class FSEntry:
    """A 512-byte directory entry."""

    mode: int = 0
    length: int = 0
    created: FSDateTime = field(default_factory=FSDateTime)
    cluster: int = 0
    dir_entry: int = 0
    modified: FSDateTime = field(default_factory=FSDateTime)
    attr: int = 0
    name: str = ""

    def pack(self):
        """Serialize into the 512-byte on-disk form."""
        return _ENTRY.pack(
            self.mode,
            0,
            self.length,
            self.created.pack(),
            self.cluster,
            self.dir_entry,
            self.modified.pack(),
            self.attr,
            b"",
            self.name.encode("latin-1", errors="replace")[:32],
            b"",
        )

    @classmethod
    def unpack(cls, data):
        """Read an entry from the first 512 bytes of ``data``."""
        _check_length(data, ENTRY_SIZE, "A directory entry")
        (mode, _unused, length, created, cluster, dir_entry, modified, attr,
         _unused2, name, _unused3) = _ENTRY.unpack(bytes(data[:ENTRY_SIZE]))
        return cls(
            mode=mode,
            length=length,
            created=FSDateTime.unpack(created),
            cluster=cluster,
            dir_entry=dir_entry,
            modified=FSDateTime.unpack(modified),
            attr=attr,
            name=_c_string(name),
        )


def _zeros(count):
    return tuple([0] * count)


@dataclass
class VmcSuperblock:
    """The 384-byte superblock at the start of a memory card image."""

    magic: str = ""
    version: str = ""
    pagesize: int = 0
    pages_per_cluster: int = 0
    pages_per_block: int = 0
    clusters_per_card: int = 0
    alloc_offset: int = 0
    alloc_end: int = 0
    rootdir_cluster: int = 0
    backup_block1: int = 0
    backup_block2: int = 0
    ifc_ptr_list: tuple = field(default_factory=lambda: _zeros(IFC_LIST_LENGTH))
    bad_block_list: tuple = field(default_factory=lambda: _zeros(BAD_BLOCK_LIST_LENGTH))
    cardtype: int = 0
    cardflags: int = 0
    cluster_size: int = 0
    fat_entries_per_cluster: int = 0
    clusters_per_block: int = 0
    cardform: int = 0
    rootdir_cluster2: int = 0
    unknown1: int = 0
    unknown2: int = 0
    max_allocatable_clusters: int = 0
    unknown3: int = 0
    unknown4: int = 0
    unknown5: int = 0

    def pack(self):
        """Serialize into the 384-byte on-disk form."""
        ifc = tuple(self.ifc_ptr_list)
        bad = tuple(self.bad_block_list)
        if len(ifc) != IFC_LIST_LENGTH or len(bad) != BAD_BLOCK_LIST_LENGTH:
            raise ValueError("The IFC and bad block lists must hold 32 entries each")
        return _SUPERBLOCK.pack(
            self.magic.encode("latin-1"),
            self.version.encode("latin-1"),
            self.pagesize,
            self.pages_per_cluster,
            self.pages_per_block,
            0,
            self.clusters_per_card,
            self.alloc_offset,
            self.alloc_end,
            self.rootdir_cluster,
            self.backup_block1,
            self.backup_block2,
            b"",
            *ifc,
            *bad,
            self.cardtype,
            self.cardflags,
            0,
            self.cluster_size,
            self.fat_entries_per_cluster,
            self.clusters_per_block,
            self.cardform,
            self.rootdir_cluster2,
            self.unknown1,
            self.unknown2,
            self.max_allocatable_clusters,
            self.unknown3,
            self.unknown4,
            self.unknown5,
        )

    @classmethod
    def unpack(cls, data):
        """Read a superblock from the first 384 bytes of ``data``."""
        _check_length(data, SUPERBLOCK_SIZE, "A superblock")
        values = _SUPERBLOCK.unpack(bytes(data[:SUPERBLOCK_SIZE]))
        (magic, version, pagesize, pages_per_cluster, pages_per_block, _unused,
         clusters_per_card, alloc_offset, alloc_end, rootdir_cluster,
         backup_block1, backup_block2, _unused2) = values[:13]
        ifc = values[13:13 + IFC_LIST_LENGTH]
        bad = values[13 + IFC_LIST_LENGTH:13 + IFC_LIST_LENGTH + BAD_BLOCK_LIST_LENGTH]
        (cardtype, cardflags, _unused3, cluster_size, fat_entries_per_cluster,
         clusters_per_block, cardform, rootdir_cluster2, unknown1, unknown2,
         max_allocatable_clusters, unknown3, unknown4, unknown5) = values[77:]
        return cls(
            magic=_c_string(magic),
            version=_c_string(version),
            pagesize=pagesize,
            pages_per_cluster=pages_per_cluster,
            pages_per_block=pages_per_block,
            clusters_per_card=clusters_per_card,
            alloc_offset=alloc_offset,
            alloc_end=alloc_end,
            rootdir_cluster=rootdir_cluster,
            backup_block1=backup_block1,
            backup_block2=backup_block2,
            ifc_ptr_list=tuple(ifc),
            bad_block_list=tuple(bad),
            cardtype=cardtype,
            cardflags=cardflags,
            cluster_size=cluster_size,
            fat_entries_per_cluster=fat_entries_per_cluster,
            clusters_per_block=clusters_per_block,
            cardform=cardform,
            rootdir_cluster2=rootdir_cluster2,
            unknown1=unknown1,
            unknown2=unknown2,
            max_allocatable_clusters=max_allocatable_clusters,
            unknown3=unknown3,
            unknown4=unknown4,
            unknown5=unknown5,
        )


def _ceil_div(value, divisor):
    return -(-value // divisor)


def _validate_size(size_mib):
    if not MIN_SIZE_MIB <= size_mib <= MAX_SIZE_MIB:
        raise ValidationError(
            f"VMC size must be greater than or equal to {MIN_SIZE_MIB} Mib "
            f"and less than or equal to {MAX_SIZE_MIB} Mib"
        )


def build_superblock(size_mib):
    """Compute the superblock of a freshly formatted card of ``size_mib`` MiB."""
    _validate_size(size_mib)
    cluster_size = _PAGE_SIZE * _PAGES_PER_CLUSTER
    clusters_per_card = size_mib * _MIB // cluster_size
    pointers_per_cluster = cluster_size // _POINTER_SIZE
    blocks_per_card = clusters_per_card // _CLUSTERS_PER_BLOCK
    # One block for the superblock and two for backups.
    available = clusters_per_card - _CLUSTERS_PER_BLOCK * 3
    fat_list_count = _ceil_float(
        available / (pointers_per_cluster + 1 + 1.0 / pointers_per_cluster)
    )
    ifc_list_count = _ceil_div(fat_list_count, pointers_per_cluster)
    ifc = [0] * IFC_LIST_LENGTH
    for index in range(ifc_list_count):
        ifc[index] = _CLUSTERS_PER_BLOCK + index
    return VmcSuperblock(
        magic=VMC_MAGIC,
        version=VMC_VERSION,
        pagesize=_PAGE_SIZE,
        pages_per_cluster=_PAGES_PER_CLUSTER,
        pages_per_block=_CLUSTERS_PER_BLOCK * _PAGES_PER_CLUSTER,
        clusters_per_card=clusters_per_card,
        alloc_offset=_CLUSTERS_PER_BLOCK + fat_list_count + ifc_list_count,
        alloc_end=clusters_per_card - 2 * _CLUSTERS_PER_BLOCK,
        rootdir_cluster=0,
        backup_block1=blocks_per_card - 1,
        backup_block2=blocks_per_card - 2,
        ifc_ptr_list=tuple(ifc),
        bad_block_list=tuple([INVALID_CLUSTER] * BAD_BLOCK_LIST_LENGTH),
        cardtype=_CARD_TYPE,
        cardflags=_CARD_FLAGS,
        cluster_size=cluster_size,
        fat_entries_per_cluster=pointers_per_cluster,
        clusters_per_block=_CLUSTERS_PER_BLOCK,
        cardform=_CARD_FORM,
        rootdir_cluster2=0,
        max_allocatable_clusters=available - fat_list_count - ifc_list_count,
        unknown5=-1,
    )


def _ceil_float(value):
    whole = int(value)
    return whole if whole == value else whole + 1


def _fat_entry(cluster, flag):
    return _FAT_ENTRY.pack(((flag & 0xFF) << 24) | (cluster & FAT_CLUSTER_MASK))


def _now_japan():
    now = datetime.now(_JAPAN_TZ)
    return FSDateTime(now.year, now.month, now.day, now.hour, now.minute, now.second)


def _root_entries(sb):
    stamp = _now_japan()
    mode = EntryMode.READ | EntryMode.WRITE | EntryMode.EXECUTE | EntryMode.DIRECTORY | EntryMode.EXISTS
    return b"".join(
        FSEntry(
            mode=int(mode),
            length=2,
            created=stamp,
            cluster=sb.rootdir_cluster,
            dir_entry=0,
            modified=stamp,
            attr=0,
            name=name,
        ).pack()
        for name in (".", "..")
    )


def _write_fat(stream, sb):
    cluster_size = sb.cluster_size
    per_cluster = sb.fat_entries_per_cluster
    entry_count = sb.max_allocatable_clusters
    fat_cluster_count = _ceil_div(entry_count, per_cluster)
    ifc_cluster_count = _ceil_div(fat_cluster_count, per_cluster)
    fat_start = sb.clusters_per_block + ifc_cluster_count

    ifc = bytearray(ifc_cluster_count * cluster_size)
    pointers = struct.pack(
        f"<{fat_cluster_count}I", *range(fat_start, fat_start + fat_cluster_count)
    )
    ifc[: len(pointers)] = pointers
    stream.seek(sb.clusters_per_block * cluster_size)
    stream.write(ifc)

    stream.seek(fat_start * cluster_size)
    stream.write(_fat_entry(FAT_CLUSTER_MASK, FAT_FLAG_FREE) * entry_count)

    stream.seek((sb.alloc_offset + sb.rootdir_cluster) * cluster_size)
    stream.write(_root_entries(sb))

    # The root directory occupies the first allocatable cluster.
    stream.seek(fat_start * cluster_size)
    stream.write(_fat_entry(FAT_CLUSTER_MASK, FAT_FLAG_LAST))


def format_vmc(filename, size_mib):
    """Create or overwrite ``filename`` with a blank formatted card of ``size_mib`` MiB."""
    sb = build_superblock(size_mib)
    try:
        with open(filename, "wb") as stream:
            blank = b"\xff" * _MIB
            for _ in range(size_mib):
                stream.write(blank)
            stream.seek(0)
            stream.write(sb.pack())
            _write_fat(stream, sb)
    except OSError as error:
        raise StorageIOError(f'Unable to write file "{filename}": {error.strerror}') from error
    return sb