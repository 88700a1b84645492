"""Core data types: games, virtual memory cards and their enumerations."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from uuid import UUID, uuid4

UNTITLED = "<Untitled>"


class MediaType(Enum):
    """Kind of optical medium a game was installed from."""

    UNKNOWN = 0
    CD = 1
    DVD = 2


class GameInstallationType(Enum):
    """How a game is stored on the device."""

    UL_CONFIG = 0
    DIRECTORY = 1


class VideoMode(IntEnum):
    """Video modes a game can be forced into."""

    NTSC = 0
    NTSC_NON_INTERLACED = 1
    PAL = 2
    PAL_NON_INTERLACED = 3
    PAL_60HZ = 4
    PAL_60HZ_NON_INTERLACED = 5
    PS1_NTSC_HDTV_480P_60HZ = 6
    PS1_PAL_HDTV_576P_50HZ = 7
    HDTV_480P_60HZ = 8
    HDTV_576P_50HZ = 9
    HDTV_720P_60HZ = 10
    HDTV_1080I_60HZ = 11
    HDTV_1080I_60HZ_NON_INTERLACED = 12
    HDTV_1080P_60HZ = 13
    VGA_640X480P_60HZ = 14
    VGA_640X480P_72HZ = 15
    VGA_640X480P_75HZ = 16
    VGA_640X480P_85HZ = 17
    VGA_640X480I_60HZ = 18
    VGA_640X960I_60HZ = 19
    VGA_800X600P_56HZ = 20
    VGA_800X600P_60HZ = 21
    VGA_800X600P_72HZ = 22
    VGA_800X600P_75HZ = 23
    VGA_800X600P_85HZ = 24
    VGA_1024X768P_60HZ = 25
    VGA_1024X768P_70HZ = 26
    VGA_1024X768P_75HZ = 27
    VGA_1024X768P_85HZ = 28
    VGA_1280X1024P_60HZ = 29
    VGA_1280X1024P_75HZ = 30


@dataclass(eq=False)
class Game:
    """A game known to the library, identified by a unique session UUID."""

    id: str
    installation_type: GameInstallationType
    title: str = UNTITLED
    media_type: MediaType = MediaType.UNKNOWN
    part_count: int = 1
    uuid: UUID = field(default_factory=uuid4, init=False)


@dataclass(eq=False)
class Vmc:
    """A virtual memory card file; ``size`` is in MiB."""

    filepath: str
    title: str
    size: int
    uuid: UUID = field(default_factory=uuid4, init=False)