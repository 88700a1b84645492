"""Exception hierarchy used throughout the package."""


class OplError(Exception):
    """Base error carrying a human-readable message."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class ValidationError(OplError):
    """Raised when input data or on-disk data fails validation."""


class StorageIOError(OplError):
    """Raised when reading or writing storage fails."""


class VmcFSError(OplError):
    """Raised when a virtual memory card image is unreadable or malformed."""