"""Discovery of newer application releases from a JSON release listing."""

import json
import os
import platform as _platform_module
import re
import ssl
import sys
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from enum import Enum

_VERSION_RE = re.compile(r"(\d+)\.(\d+)")
_ASSET_NAME_RE = re.compile(r".*_(.*)_\d+\.\d+_([^\.]*).*")
_MAX_VERSION_COMPONENT = 0xFFFF
_REQUEST_TIMEOUT = 30


@dataclass(frozen=True, order=True)
class Version:
    """A ``major.minor`` application version."""

    major: int = 0
    minor: int = 0

    def __str__(self):
        return f"{self.major}.{self.minor}"


CURRENT_VERSION = Version(3, 1)


class Platform(Enum):
    """Operating systems that release assets are published for."""

    LINUX = "linux"
    WINDOWS = "windows"


class Architecture(Enum):
    """CPU architectures that release assets are published for."""

    X86 = "x86"
    AMD64 = "amd64"


@dataclass(frozen=True)
class Asset:
    """A downloadable file attached to a release."""

    platform: Platform
    arch: Architecture
    url: str


@dataclass(frozen=True)
class Release:
    """A published release with the assets recognised in it."""

    version: Version
    is_prerelease: bool = False
    is_draft: bool = False
    url: str = ""
    assets: tuple = field(default_factory=tuple)


@dataclass(frozen=True)
class Update:
    """A release newer than the running version that fits this machine."""

    version: Version
    download_url: str
    html_url: str


def parse_version_tag(tag_name):
    """Extract the first ``major.minor`` pair from a tag name, or return None."""
    match = _VERSION_RE.search(tag_name)
    if match is None:
        return None
    major, minor = int(match.group(1)), int(match.group(2))
    if major > _MAX_VERSION_COMPONENT or minor > _MAX_VERSION_COMPONENT:
        return None
    return Version(major, minor)


def _as_object(value):
    return value if isinstance(value, dict) else {}


def _as_string(value):
    return value if isinstance(value, str) else ""


def _as_array(value):
    return value if isinstance(value, list) else []


def _parse_asset(raw):
    raw = _as_object(raw)
    match = _ASSET_NAME_RE.search(_as_string(raw.get("name")))
    if match is None:
        return None
    platforms = {p.value: p for p in Platform}
    archs = {a.value: a for a in Architecture}
    asset_platform = platforms.get(match.group(1).casefold())
    asset_arch = archs.get(match.group(2).casefold())
    if asset_platform is None or asset_arch is None:
        return None
    return Asset(asset_platform, asset_arch, _as_string(raw.get("browser_download_url")))


def parse_releases(releases_json):
    """Parse a JSON array of releases; entries without a version tag are skipped."""
    try:
        document = json.loads(releases_json)
    except (ValueError, TypeError):
        return []
    releases = []
    for raw in _as_array(document):
        raw = _as_object(raw)
        version = parse_version_tag(_as_string(raw.get("tag_name")))
        if version is None:
            continue
        assets = tuple(
            asset
            for asset in map(_parse_asset, _as_array(raw.get("assets")))
            if asset is not None
        )
        releases.append(
            Release(
                version=version,
                is_prerelease=raw.get("prerelease") is True,
                is_draft=raw.get("draft") is True,
                url=_as_string(raw.get("html_url")),
                assets=assets,
            )
        )
    return releases


def build_platform():
    """The platform of the running system, or None if no assets exist for it."""
    if sys.platform.startswith("linux"):
        return Platform.LINUX
    if sys.platform == "win32":
        return Platform.WINDOWS
    return None


def build_architecture():
    """The CPU architecture of the running system, or None if unsupported."""
    machine = _platform_module.machine().lower()
    if machine in ("x86_64", "amd64"):
        return Architecture.AMD64
    if machine in ("i386", "i486", "i586", "i686", "x86"):
        return Architecture.X86
    return None


def find_update(releases, current_version, platform, arch):
    """Return the newest published release above ``current_version`` with a fitting asset."""
    update = None
    for release in releases:
        baseline = update.version if update is not None else current_version
        if release.is_draft or release.is_prerelease or not release.assets:
            continue
        if release.version <= baseline:
            continue
        for asset in release.assets:
            if asset.arch == arch and asset.platform == platform:
                update = Update(release.version, asset.url, release.url)
                break
    return update


def _application_path():
    if sys.argv and sys.argv[0]:
        return os.path.abspath(sys.argv[0])
    return sys.executable


class Updater:
    """Checks a release listing for a version newer than the running one."""

    releases_url = None

    def __init__(self, current_version=None):
        self.current_version = current_version if current_version is not None else CURRENT_VERSION
        self._update = None

    @staticmethod
    def is_supported():
        """Whether updates can be offered on this system."""
        platform = build_platform()
        if platform is None or build_architecture() is None:
            return False
        return platform is Platform.WINDOWS or os.access(_application_path(), os.W_OK)

    def check_for_update(self):
        """Fetch the release listing from ``releases_url`` and return the update found, if any."""
        if self.releases_url is None or not self.is_supported():
            return None
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        request = urllib.request.Request(self.releases_url)
        try:
            with urllib.request.urlopen(request, timeout=_REQUEST_TIMEOUT, context=context) as reply:
                body = reply.read()
        except (urllib.error.URLError, OSError):
            return None
        return self.read_updates(body)

    def read_updates(self, releases_json):
        """Parse a release listing and remember the best update for this system."""
        platform = build_platform()
        arch = build_architecture()
        self._update = None
        if platform is not None and arch is not None:
            self._update = find_update(
                parse_releases(releases_json), self.current_version, platform, arch
            )
        return self._update

    @property
    def latest_update(self):
        """The update found by the last check, or None."""
        return self._update