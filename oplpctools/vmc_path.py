"""Slash-separated paths inside a virtual memory card."""

SEPARATOR = "/"


def _split(path):
    return tuple(part for part in path.split(SEPARATOR) if part)


class VmcPath:
    """An immutable absolute path inside a memory card file system."""

    __slots__ = ("_parts",)

    def __init__(self, path="", relative=""):
        self._parts = _split(path) + _split(relative)

    @classmethod
    def from_parts(cls, parts):
        """Build a path from already separated components, without splitting them."""
        instance = cls()
        instance._parts = tuple(parts)
        return instance

    @classmethod
    def root(cls):
        """Return the root path."""
        return cls()

    def __add__(self, relative_path):
        return VmcPath.from_parts(self._parts + _split(relative_path))

    def __str__(self):
        return self.path

    def __repr__(self):
        return f"VmcPath({self.path!r})"

    def __eq__(self, other):
        if isinstance(other, VmcPath):
            return self._parts == other._parts
        if isinstance(other, str):
            return self.path == other
        return NotImplemented

    def __hash__(self):
        return hash(self.path)

    @property
    def path(self):
        """The path as a string, always starting with the separator."""
        return SEPARATOR + SEPARATOR.join(self._parts)

    @property
    def parts(self):
        """The path components, root first."""
        return self._parts

    @property
    def is_root(self):
        """Whether this is the root path."""
        return not self._parts

    def up(self):
        """Return the parent path; the parent of the root is the root."""
        return VmcPath.from_parts(self._parts[:-1])