"""The ``ul.cfg`` game list and the split part files it describes."""

import contextlib
import os
import unicodedata
from pathlib import Path

from .errors import StorageIOError, ValidationError
from .models import Game, GameInstallationType, MediaType

CONFIG_FILENAME = "ul.cfg"
IMAGE_PREFIX = "ul."
MAX_NAME_LENGTH = 32
MAX_ID_LENGTH = 15
MAX_PART_COUNT = 10
_PAD_LENGTH = 15
RECORD_SIZE = MAX_NAME_LENGTH + MAX_ID_LENGTH + 2 + _PAD_LENGTH

_MEDIA_CD = 0x12
_MEDIA_DVD = 0x14
_PAD_MARKER = 0x08

_IMAGE_OFFSET = MAX_NAME_LENGTH
_PARTS_OFFSET = _IMAGE_OFFSET + MAX_ID_LENGTH
_MEDIA_OFFSET = _PARTS_OFFSET + 1
_PAD_MARKER_OFFSET = _MEDIA_OFFSET + 1 + 4

_NON_PRINTABLE_CATEGORIES = frozenset({"Cc", "Cf", "Cs", "Co", "Cn", "Zl", "Zp"})


def _build_crc_table():
    table = [0] * 256
    crc = 0
    for index in range(256):
        crc = index << 24
        for _ in range(8):
            if crc & 0x80000000:
                crc = (crc << 1) & 0xFFFFFFFF
            else:
                crc = ((crc << 1) ^ 0x04C11DB7) & 0xFFFFFFFF
        table[255 - index] = crc
    # The checksum deliberately starts from the last value computed for the table.
    return tuple(table), crc


_CRC_TABLE, _CRC_SEED = _build_crc_table()


def crc32(text):
    """Checksum of a title's UTF-8 bytes as used in part file names, terminator included."""
    data = text.encode("utf-8").split(b"\0", 1)[0] + b"\0"
    crc = _CRC_SEED
    for byte in data:
        crc = _CRC_TABLE[byte ^ (crc >> 24)] ^ ((crc << 8) & 0xFFFFFF00)
    return crc


def make_part_filename(game_id, name, part):
    """File name of one part of a split game image."""
    return f"ul.{crc32(name):08X}.{game_id}.{part:02d}"


def validate_title(title):
    """Raise ValidationError if the title does not fit into a config record."""
    if len(title.encode("utf-8")) > MAX_NAME_LENGTH:
        raise ValidationError(f"Maximum name length is {MAX_NAME_LENGTH} bytes")


def validate_id(game_id):
    """Raise ValidationError if the identifier does not fit into a config record."""
    if len(_latin1(game_id)) > MAX_ID_LENGTH:
        raise ValidationError(f"Maximum id length is {MAX_ID_LENGTH} bytes")


def _latin1(text):
    return text.encode("latin-1", errors="replace")


def encode_record(game):
    """Serialize a game into one fixed-size config record."""
    validate_title(game.title)
    image = IMAGE_PREFIX + game.id
    validate_id(image)
    if not 0 <= game.part_count <= 0xFF:
        raise ValidationError(f"Invalid part count: {game.part_count}")
    record = bytearray(RECORD_SIZE)
    name_bytes = game.title.encode("utf-8")
    image_bytes = _latin1(image)
    record[: len(name_bytes)] = name_bytes
    record[_IMAGE_OFFSET : _IMAGE_OFFSET + len(image_bytes)] = image_bytes
    record[_PARTS_OFFSET] = game.part_count
    record[_MEDIA_OFFSET] = _MEDIA_DVD if game.media_type is MediaType.DVD else _MEDIA_CD
    record[_PAD_MARKER_OFFSET] = _PAD_MARKER
    return bytes(record)


def decode_record(data):
    """Build a game from one config record."""
    if len(data) < RECORD_SIZE:
        raise ValidationError(f"A config record must be {RECORD_SIZE} bytes long")
    name_field = bytes(data[:MAX_NAME_LENGTH])
    if name_field[-1] == 0:
        name_field = name_field.split(b"\0", 1)[0]
    image = bytes(data[_IMAGE_OFFSET:_PARTS_OFFSET]).split(b"\0", 1)[0]
    media = data[_MEDIA_OFFSET]
    if media == _MEDIA_CD:
        media_type = MediaType.CD
    elif media == _MEDIA_DVD:
        media_type = MediaType.DVD
    else:
        media_type = MediaType.UNKNOWN
    return Game(
        image[len(IMAGE_PREFIX):].decode("latin-1"),
        GameInstallationType.UL_CONFIG,
        title=name_field.decode("utf-8", errors="replace"),
        media_type=media_type,
        part_count=data[_PARTS_OFFSET],
    )


def _is_printable(text):
    return all(unicodedata.category(ch) not in _NON_PRINTABLE_CATEGORIES for ch in text)


def _is_valid_game(game):
    return game.part_count <= MAX_PART_COUNT and _is_printable(game.id) and _is_printable(game.title)


def _records(data):
    for offset in range(0, len(data) - RECORD_SIZE + 1, RECORD_SIZE):
        yield offset, data[offset : offset + RECORD_SIZE]


def _find_record_offset(data, game_id):
    key = _latin1(IMAGE_PREFIX + game_id)
    for offset, record in _records(data):
        if record[_IMAGE_OFFSET : _IMAGE_OFFSET + len(key)] == key:
            return offset
    return None


def _corrupted():
    return ValidationError(f"{CONFIG_FILENAME} is corrupted")


class UlConfigGameStorage:
    """Games installed as split parts and listed in ``ul.cfg``."""

    def __init__(self, validate=True):
        self.validate = validate
        self._config_path = None
        self._games = []

    @property
    def installation_type(self):
        """The installation type of every game in this storage."""
        return GameInstallationType.UL_CONFIG

    @property
    def games(self):
        """The games currently known to the storage."""
        return tuple(self._games)

    def load(self, directory):
        """Read the game list from ``ul.cfg`` in ``directory``; a missing file means no games."""
        self._games.clear()
        self._config_path = Path(directory) / CONFIG_FILENAME
        if not self._config_path.exists():
            return
        data = self._read_config()
        if self.validate and len(data) % RECORD_SIZE:
            raise _corrupted()
        for _, record in _records(data):
            game = decode_record(record)
            if self.validate and not _is_valid_game(game):
                raise _corrupted()
            self._games.append(game)

    def register(self, game):
        """Append a record for ``game`` to the config file."""
        config = self._require_config()
        record = encode_record(game)
        with self._open(config, "ab") as stream:
            self._write(stream, record)
        self._games.append(game)

    def rename(self, game, title):
        """Change a game's title in the config and rename its part files to match."""
        validate_title(title)
        self._require_config()
        offset = _find_record_offset(self._read_config(), game.id)
        if offset is None:
            raise ValidationError("Config record was not found")
        name_field = title.encode("utf-8").split(b"\0", 1)[0].ljust(MAX_NAME_LENGTH, b"\0")
        try:
            self._rename_part_files(game, title)
            with self._open(self._config_path, "r+b") as stream:
                stream.seek(offset)
                self._write(stream, name_field)
        except Exception:
            self._undo_rename_part_files(game, title)
            raise
        game.title = title

    def delete(self, game):
        """Remove a game's config record and its part files."""
        self._delete_config_record(game.id)
        self._delete_part_files(game)
        if game in self._games:
            self._games.remove(game)

    def _require_config(self):
        if self._config_path is None:
            raise StorageIOError("The game storage is not loaded")
        return self._config_path

    @staticmethod
    def _open(path, mode):
        try:
            return open(path, mode)
        except OSError as error:
            raise StorageIOError(f'Unable to open file "{path}": {error.strerror}') from error

    @staticmethod
    def _write(stream, data):
        try:
            written = stream.write(data)
        except OSError as error:
            raise StorageIOError("An error occurred while writing data to file") from error
        if written != len(data):
            raise StorageIOError("An error occurred while writing data to file")

    def _read_config(self):
        with self._open(self._config_path, "rb") as stream:
            return stream.read()

    def _part_path(self, game_id, title, part):
        return self._config_path.parent / make_part_filename(game_id, title, part)

    def _rename_part_files(self, game, title):
        for part in range(game.part_count):
            source = self._part_path(game.id, game.title, part)
            target = self._part_path(game.id, title, part)
            if source == target:
                continue
            if target.exists():
                raise StorageIOError(f'File already exists: "{target}"')
            try:
                os.rename(source, target)
            except OSError as error:
                raise StorageIOError(f'Unable to rename file "{source}" to "{target}"') from error

    def _undo_rename_part_files(self, game, title):
        for part in range(game.part_count):
            renamed = self._part_path(game.id, title, part)
            original = self._part_path(game.id, game.title, part)
            if renamed == original or not renamed.exists() or original.exists():
                continue
            with contextlib.suppress(OSError):
                os.rename(renamed, original)

    def _delete_config_record(self, game_id):
        config = self._require_config()
        data = self._read_config()
        offset = _find_record_offset(data, game_id)
        if offset is None:
            raise ValidationError(f'Unable to locate Game "{game_id}" in the config file')
        temp = config.with_name(config.name + ".tmp")
        with self._open(temp, "wb") as stream:
            self._write(stream, data[:offset] + data[offset + RECORD_SIZE :])
        backup = config.with_name(config.name + ".bk")
        try:
            os.replace(config, backup)
        except OSError as error:
            raise StorageIOError("Unable to backup config file") from error
        try:
            os.replace(temp, config)
        except OSError:
            return
        with contextlib.suppress(OSError):
            os.remove(backup)

    def _delete_part_files(self, game):
        for part in range(game.part_count):
            with contextlib.suppress(OSError):
                os.remove(self._part_path(game.id, game.title, part))