import struct

import pytest

from oplpctools.errors import StorageIOError, ValidationError
from oplpctools.vmc_format import (
    ENTRY_SIZE,
    EntryMode,
    FSDateTime,
    FSEntry,
    MAX_SIZE_MIB,
    MIN_SIZE_MIB,
    SUPERBLOCK_SIZE,
    VMC_MAGIC,
    VMC_VERSION,
    VmcSuperblock,
    build_superblock,
    format_vmc,
)

MIB = 1024 * 1024


@pytest.fixture(scope="module")
def card(tmp_path_factory):
    path = tmp_path_factory.mktemp("vmc") / "card.bin"
    sb = format_vmc(path, MIN_SIZE_MIB)
    return sb, path.read_bytes()


def _fat_start(sb):
    per = sb.fat_entries_per_cluster
    fat_clusters = -(-sb.max_allocatable_clusters // per)
    return sb.clusters_per_block + -(-fat_clusters // per)


def test_structure_sizes_match_format():
    assert len(VmcSuperblock().pack()) == 384
    assert len(FSEntry().pack()) == 512
    assert len(FSDateTime().pack()) == 8
    assert SUPERBLOCK_SIZE == 384
    assert ENTRY_SIZE == 512


def test_superblock_fixed_fields():
    sb = build_superblock(MIN_SIZE_MIB)
    assert sb.magic == "Sony PS2 Memory Card Format "
    assert sb.version == "1.2.0.0"
    assert sb.pagesize == 512
    assert sb.cluster_size == 1024
    assert sb.cardflags == 0x2B
    assert sb.unknown5 == -1
    assert sb.rootdir_cluster == 0
    assert all(value == 0xFFFFFFFF for value in sb.bad_block_list)


@pytest.mark.parametrize("size", [MIN_SIZE_MIB, 16, 64, 128, MAX_SIZE_MIB])
def test_superblock_invariants(size):
    sb = build_superblock(size)
    assert sb.clusters_per_card * sb.cluster_size == size * MIB
    assert sb.pages_per_cluster * sb.pagesize == sb.cluster_size
    assert sb.alloc_end == sb.clusters_per_card - 2 * sb.clusters_per_block
    assert sb.alloc_offset + sb.max_allocatable_clusters == sb.alloc_end
    assert sb.ifc_ptr_list[0] == sb.clusters_per_block
    assert sb.ifc_ptr_list[0] < sb.alloc_offset
    assert sb.backup_block1 == sb.backup_block2 + 1
    ifc_count = sum(1 for ptr in sb.ifc_ptr_list if ptr != 0)
    fat_count = sb.alloc_offset - sb.clusters_per_block - ifc_count
    assert fat_count * sb.fat_entries_per_cluster >= sb.max_allocatable_clusters
    assert ifc_count * sb.fat_entries_per_cluster >= fat_count


@pytest.mark.parametrize("size", [0, MIN_SIZE_MIB - 1, MAX_SIZE_MIB + 1])
def test_build_superblock_rejects_bad_size(size):
    with pytest.raises(ValidationError):
        build_superblock(size)


def test_superblock_round_trip():
    sb = build_superblock(32)
    assert VmcSuperblock.unpack(sb.pack()) == sb


def test_superblock_pack_starts_with_magic():
    raw = build_superblock(MIN_SIZE_MIB).pack()
    assert raw[:28] == VMC_MAGIC.encode("latin-1")
    assert raw[28:28 + len(VMC_VERSION)] == VMC_VERSION.encode("latin-1")


def test_superblock_unpack_short_data():
    with pytest.raises(ValueError):
        VmcSuperblock.unpack(b"\0" * (SUPERBLOCK_SIZE - 1))


def test_superblock_pack_rejects_bad_lists():
    sb = VmcSuperblock(ifc_ptr_list=(1, 2, 3))
    with pytest.raises(ValueError):
        sb.pack()


def test_datetime_round_trip():
    stamp = FSDateTime(2020, 5, 17, 23, 59, 30)
    assert FSDateTime.unpack(stamp.pack()) == stamp


def test_datetime_layout_puts_year_last():
    raw = FSDateTime(year=2020, second=30).pack()
    assert raw[1] == 30
    assert struct.unpack("<H", raw[6:8])[0] == 2020


def test_entry_round_trip():
    entry = FSEntry(
        mode=int(EntryMode.FILE | EntryMode.EXISTS | EntryMode.READ),
        length=1234,
        created=FSDateTime(2021, 1, 2, 3, 4, 5),
        cluster=7,
        dir_entry=3,
        modified=FSDateTime(2022, 6, 7, 8, 9, 10),
        attr=0,
        name="BESLES-12345",
    )
    assert FSEntry.unpack(entry.pack()) == entry


def test_entry_name_is_truncated_to_field():
    entry = FSEntry(name="N" * 40)
    assert FSEntry.unpack(entry.pack()).name == "N" * 32


def test_entry_unpack_short_data():
    with pytest.raises(ValueError):
        FSEntry.unpack(b"\0" * 100)


def test_format_file_size_and_superblock(card):
    sb, data = card
    assert len(data) == MIN_SIZE_MIB * MIB
    assert VmcSuperblock.unpack(data) == sb
    assert sb == build_superblock(MIN_SIZE_MIB)


def test_format_root_directory(card):
    sb, data = card
    offset = (sb.alloc_offset + sb.rootdir_cluster) * sb.cluster_size
    dot = FSEntry.unpack(data[offset:])
    dotdot = FSEntry.unpack(data[offset + ENTRY_SIZE:])
    assert [dot.name, dotdot.name] == [".", ".."]
    for entry in (dot, dotdot):
        assert entry.mode & EntryMode.DIRECTORY
        assert entry.mode & EntryMode.EXISTS
        assert not entry.mode & EntryMode.FILE
        assert entry.length == 2
        assert entry.cluster == sb.rootdir_cluster
        assert entry.created == entry.modified
        assert 1 <= entry.created.month <= 12


def test_format_ifc_points_to_fat(card):
    sb, data = card
    start = _fat_start(sb)
    ifc_offset = sb.clusters_per_block * sb.cluster_size
    first, second = struct.unpack("<2I", data[ifc_offset:ifc_offset + 8])
    assert first == start
    assert second == start + 1


def test_format_fat_entries(card):
    sb, data = card
    offset = _fat_start(sb) * sb.cluster_size
    entries = struct.unpack(f"<{sb.max_allocatable_clusters}I",
                            data[offset:offset + 4 * sb.max_allocatable_clusters])
    assert entries[0] == 0xFFFFFFFF
    assert entries[1] >> 24 == 0x7F
    assert all(value & 0xFFFFFF == 0xFFFFFF for value in entries)
    assert all(value >> 24 == 0x7F for value in entries[1:])


def test_format_leaves_unused_space_erased(card):
    sb, data = card
    assert data[SUPERBLOCK_SIZE:sb.cluster_size] == b"\xff" * (sb.cluster_size - SUPERBLOCK_SIZE)
    tail = data[sb.alloc_end * sb.cluster_size:]
    assert tail == b"\xff" * len(tail)


def test_format_rejects_bad_size_without_creating_file(tmp_path):
    path = tmp_path / "bad.bin"
    with pytest.raises(ValidationError):
        format_vmc(path, MAX_SIZE_MIB + 1)
    assert not path.exists()


def test_format_unwritable_location(tmp_path):
    with pytest.raises(StorageIOError):
        format_vmc(tmp_path / "missing" / "card.bin", MIN_SIZE_MIB)