"""
Clockode TOTP vault core
Copyright (c) 2025

Stores TOTP seeds encrypted at rest under a master password and derives live
codes from them. This package holds no UI code; window rendering, clipboard
and file pickers belong to the application that calls into it.

THREAT MODEL:
Decrypted secrets live in process memory while a vault is unlocked. They are
wiped on lock on a best-effort basis; Python may keep copies of immutable
bytes objects that cannot be cleared. Backups are plaintext.
"""

from .backup import ImportMode
from .config import APP_VERSION as __version__
from .crypto import KdfAlgorithm, KdfParams
from .errors import (
    AlreadyExistsError,
    AuthenticationError,
    ClockodeError,
    CorruptedError,
    FormatError,
    ImportValidationError,
    InvalidSetError,
    NotFoundError,
    StorageIOError,
    UnsupportedVersionError,
    ValidationError,
    VaultBusyError,
    VaultLockedError,
    WrongPasswordError,
)
from .models import Account, Algorithm, Vault
from .otp_uri import account_to_uri, read_qr_from_file, uri_to_account
from .storage import VaultHandle, VaultStore
from .totp import TotpCode, generate
from .vault_manager import default_vault_path, find_vault

__all__ = [
    "Account",
    "Algorithm",
    "AlreadyExistsError",
    "AuthenticationError",
    "ClockodeError",
    "CorruptedError",
    "FormatError",
    "ImportMode",
    "ImportValidationError",
    "InvalidSetError",
    "KdfAlgorithm",
    "KdfParams",
    "NotFoundError",
    "StorageIOError",
    "TotpCode",
    "UnsupportedVersionError",
    "ValidationError",
    "Vault",
    "VaultBusyError",
    "VaultHandle",
    "VaultLockedError",
    "VaultStore",
    "WrongPasswordError",
    "account_to_uri",
    "default_vault_path",
    "find_vault",
    "generate",
    "read_qr_from_file",
    "uri_to_account",
]
