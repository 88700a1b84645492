import re

import pytest

from oplpctools.errors import StorageIOError, ValidationError
from oplpctools.models import Game, GameInstallationType, MediaType
from oplpctools.ulconfig import (
    RECORD_SIZE,
    UlConfigGameStorage,
    crc32,
    decode_record,
    encode_record,
    make_part_filename,
    validate_id,
    validate_title,
)


def _game(game_id="SLUS_201.23", title="Some Game", media=MediaType.DVD, parts=2):
    return Game(
        game_id,
        GameInstallationType.UL_CONFIG,
        title=title,
        media_type=media,
        part_count=parts,
    )


def _summary(game):
    return (game.id, game.title, game.media_type, game.part_count)


def _loaded(directory, validate=True):
    storage = UlConfigGameStorage(validate=validate)
    storage.load(directory)
    return storage


def _make_parts(directory, game):
    paths = [directory / make_part_filename(game.id, game.title, part) for part in range(game.part_count)]
    for path in paths:
        path.write_bytes(b"data")
    return paths


def test_record_size_is_fixed():
    assert len(encode_record(_game())) == RECORD_SIZE == 64


def test_record_layout_bytes():
    record = encode_record(_game(media=MediaType.DVD, parts=3))
    assert record[32:35] == b"ul."
    assert record[48] == 0x14
    assert record[53] == 0x08
    assert encode_record(_game(media=MediaType.CD))[48] == 0x12


def test_unknown_media_is_written_as_cd():
    record = encode_record(_game(media=MediaType.UNKNOWN))
    assert decode_record(record).media_type is MediaType.CD


def test_record_round_trip():
    game = _game(title="Ünïcødé title", parts=5)
    decoded = decode_record(encode_record(game))
    assert _summary(decoded) == _summary(game)
    assert decoded.installation_type is GameInstallationType.UL_CONFIG


def test_full_length_title_round_trip():
    game = _game(title="x" * 32)
    assert decode_record(encode_record(game)).title == game.title


def test_decode_unknown_media():
    record = bytearray(encode_record(_game()))
    record[48] = 0x99
    assert decode_record(bytes(record)).media_type is MediaType.UNKNOWN


def test_decode_short_record_raises():
    with pytest.raises(ValidationError):
        decode_record(b"\0" * 10)


def test_validate_title_limits():
    validate_title("a" * 32)
    validate_title("é" * 16)
    with pytest.raises(ValidationError):
        validate_title("a" * 33)
    with pytest.raises(ValidationError):
        validate_title("é" * 17)


def test_validate_id_limit():
    validate_id("ul.SLUS_201.23")
    with pytest.raises(ValidationError):
        validate_id("ul.ABCDEFGHIJKLM")


def test_crc32_is_unsigned_32_bit_and_deterministic():
    value = crc32("Some Game")
    assert value == crc32("Some Game")
    assert 0 <= value < 2**32


def test_crc32_distinguishes_titles():
    assert crc32("abc") != crc32("abd")


def test_crc32_stops_at_nul():
    assert crc32("abc\0def") == crc32("abc")


def test_part_filename_format():
    name = make_part_filename("SLUS_200.02", "Title", 3)
    assert re.fullmatch(r"ul\.[0-9A-F]{8}\.SLUS_200\.02\.03", name)
    assert name.split(".")[1] == f"{crc32('Title'):08X}"


def test_installation_type():
    assert UlConfigGameStorage().installation_type is GameInstallationType.UL_CONFIG


def test_load_without_config(tmp_path):
    assert _loaded(tmp_path).games == ()


def test_register_and_reload(tmp_path):
    storage = _loaded(tmp_path)
    first = _game()
    second = _game(game_id="SLES_500.01", title="Other", media=MediaType.CD, parts=1)
    storage.register(first)
    storage.register(second)
    assert storage.games == (first, second)
    reloaded = _loaded(tmp_path)
    assert [_summary(g) for g in reloaded.games] == [_summary(first), _summary(second)]


def test_register_without_load_raises():
    with pytest.raises(StorageIOError):
        UlConfigGameStorage().register(_game())


def test_register_rejects_long_title(tmp_path):
    storage = _loaded(tmp_path)
    with pytest.raises(ValidationError):
        storage.register(_game(title="t" * 33))
    assert not (tmp_path / "ul.cfg").exists()


def test_register_rejects_long_id(tmp_path):
    storage = _loaded(tmp_path)
    with pytest.raises(ValidationError):
        storage.register(_game(game_id="ABCDEFGHIJKLM"))


def test_load_rejects_partial_record(tmp_path):
    (tmp_path / "ul.cfg").write_bytes(b"\0" * (RECORD_SIZE + 1))
    with pytest.raises(ValidationError):
        _loaded(tmp_path)
    assert len(_loaded(tmp_path, validate=False).games) == 1


def test_load_rejects_too_many_parts(tmp_path):
    (tmp_path / "ul.cfg").write_bytes(encode_record(_game(parts=11)))
    with pytest.raises(ValidationError):
        _loaded(tmp_path)
    assert _loaded(tmp_path, validate=False).games[0].part_count == 11


def test_load_rejects_non_printable_title(tmp_path):
    (tmp_path / "ul.cfg").write_bytes(encode_record(_game(title="a\x01b")))
    with pytest.raises(ValidationError):
        _loaded(tmp_path)


def test_rename_updates_config_and_parts(tmp_path):
    storage = _loaded(tmp_path)
    game = _game(parts=2)
    storage.register(game)
    old_parts = _make_parts(tmp_path, game)
    storage.rename(game, "New Title")
    assert game.title == "New Title"
    assert not any(path.exists() for path in old_parts)
    for part in range(2):
        assert (tmp_path / make_part_filename(game.id, "New Title", part)).exists()
    assert _loaded(tmp_path).games[0].title == "New Title"


def test_rename_missing_record(tmp_path):
    storage = _loaded(tmp_path)
    storage.register(_game())
    with pytest.raises(ValidationError):
        storage.rename(_game(game_id="SLES_999.99", parts=0), "Other")


def test_rename_rejects_long_title(tmp_path):
    storage = _loaded(tmp_path)
    game = _game()
    storage.register(game)
    with pytest.raises(ValidationError):
        storage.rename(game, "n" * 33)
    assert game.title == "Some Game"


def test_rename_conflict_rolls_back(tmp_path):
    storage = _loaded(tmp_path)
    game = _game(parts=2)
    storage.register(game)
    old_parts = _make_parts(tmp_path, game)
    (tmp_path / make_part_filename(game.id, "New Title", 0)).write_bytes(b"other")
    with pytest.raises(StorageIOError):
        storage.rename(game, "New Title")
    assert all(path.exists() for path in old_parts)
    assert game.title == "Some Game"
    assert _loaded(tmp_path).games[0].title == "Some Game"


def test_delete_removes_record_and_parts(tmp_path):
    storage = _loaded(tmp_path)
    first = _game()
    second = _game(game_id="SLES_500.01", title="Other", parts=1)
    storage.register(first)
    storage.register(second)
    parts = _make_parts(tmp_path, first)
    storage.delete(first)
    assert storage.games == (second,)
    assert not any(path.exists() for path in parts)
    assert [g.id for g in _loaded(tmp_path).games] == ["SLES_500.01"]
    assert not (tmp_path / "ul.cfg.tmp").exists()
    assert not (tmp_path / "ul.cfg.bk").exists()


def test_delete_unknown_game(tmp_path):
    storage = _loaded(tmp_path)
    storage.register(_game())
    with pytest.raises(ValidationError):
        storage.delete(_game(game_id="SLES_999.99"))
    assert len(_loaded(tmp_path).games) == 1