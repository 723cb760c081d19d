"""
Exception types raised by the vault core.

Every failure the core reports is a subclass of ClockodeError so callers can
catch the whole family at once.
"""

from typing import List, Optional


class ClockodeError(Exception):
    """Base class for all vault errors."""


class WrongPasswordError(ClockodeError):
    """The vault could not be authenticated with the given password."""


class AuthenticationError(ClockodeError):
    """AEAD authentication failed (wrong key, tampered or truncated data)."""


class FormatError(ClockodeError):
    """Bytes could not be interpreted as a vault file or vault document."""


class CorruptedError(FormatError):
    """The data is structurally invalid."""


class UnsupportedVersionError(FormatError):
    """The data was written by a format version this build does not know."""

    def __init__(self, version, supported=None):
        self.version = version
        self.supported = supported
        message = f"Unsupported format version: {version!r}"
        if supported is not None:
            message += f" (supported: {supported!r})"
        super().__init__(message)


class ValidationError(ClockodeError, ValueError):
    """An account field violates its invariants."""


class NotFoundError(ClockodeError, KeyError):
    """No account with the requested id exists."""

    def __str__(self):
        return str(self.args[0]) if self.args else "Account not found"


class AlreadyExistsError(ClockodeError):
    """A vault file already exists at the target path."""


class InvalidSetError(ClockodeError):
    """A reorder request does not name exactly the current accounts."""


class StorageIOError(ClockodeError):
    """Reading or writing the vault file failed at the operating system level."""


class VaultLockedError(ClockodeError):
    """The handle has been locked; unlock the vault again."""


class VaultBusyError(ClockodeError):
    """Another handle is already live for this vault file."""


class ImportValidationError(ClockodeError):
    """A backup was rejected; nothing was imported.

    ``errors`` holds one human readable message per offending record.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []
