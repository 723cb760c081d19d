"""
Vault store: the single authority over an encrypted vault file.

VaultStore knows where the file lives and which KDF parameters new keys
should use. Creating or unlocking a vault returns a VaultHandle, which owns
the derived key and the decrypted accounts for the duration of one session.
Locking the handle (or dropping it) wipes the key and the account secrets.
Only lock() and save() persist changes; a dirty handle that is dropped
without locking loses them.

Only one handle may be live per store. Concurrent access to the same file
from other processes is not supported.
"""

import os
import hmac
import logging
import datetime
import threading
import weakref
from dataclasses import replace
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, List, Optional, Union

from . import config
from .backup import FORMAT_JSON, ImportMode, merge_accounts, read_backup, write_backup
from .codec import VaultHeader, decode, encode, pack_vault_file, unpack_vault_file
from .crypto import (
    KdfParams,
    derive_key,
    generate_nonce,
    generate_salt,
    open_sealed,
    seal,
    wipe,
)
from .errors import (
    AlreadyExistsError,
    AuthenticationError,
    FormatError,
    InvalidSetError,
    NotFoundError,
    StorageIOError,
    ValidationError,
    VaultBusyError,
    VaultLockedError,
    WrongPasswordError,
)
from .models import (
    Account,
    Algorithm,
    Vault,
    new_account_id,
    validate_digits,
    validate_issuer,
    validate_label,
    validate_period,
)
from .totp import TotpCode, generate
from .utils import atomic_write

logger = logging.getLogger(__name__)

Password = Union[str, bytes]

_FIELD_VALIDATORS = {
    'label': validate_label,
    'issuer': validate_issuer,
    'digits': validate_digits,
    'period': validate_period,
    'algorithm': Algorithm.parse,
}
_IMMUTABLE_FIELDS = frozenset({'id', 'secret', 'created_at'})


class VaultStore:
    """Creates and unlocks the vault stored at ``filepath``."""

    def __init__(self, filepath: Union[str, os.PathLike], kdf_params: Optional[KdfParams] = None):
        """
        Args:
            filepath: Location of the vault file
            kdf_params: Work factors for new keys. Vaults written with other
                parameters are rekeyed to these on unlock.
        """
        self.filepath = os.fspath(filepath)
        self.kdf_params = kdf_params or KdfParams.default()
        self._lock = threading.Lock()
        self._handle_ref = None

    def exists(self) -> bool:
        return os.path.exists(self.filepath)

    @property
    def handle(self) -> Optional['VaultHandle']:
        """The live handle, if any."""
        handle = self._handle_ref() if self._handle_ref is not None else None
        if handle is not None and handle.is_unlocked:
            return handle
        return None

    def _ensure_no_live_handle(self) -> None:
        if self.handle is not None:
            raise VaultBusyError(f"Vault {self.filepath} is already unlocked")

    def _register(self, handle: 'VaultHandle') -> None:
        self._handle_ref = weakref.ref(handle)

    def _release(self, handle: 'VaultHandle') -> None:
        if self._handle_ref is not None and self._handle_ref() is handle:
            self._handle_ref = None

    def create(self, password: Password) -> 'VaultHandle':
        """
        Create an empty vault protected by ``password`` and return its handle.

        Raises:
            AlreadyExistsError: If a file already exists at the target path.
            StorageIOError: If the file cannot be written.
        """
        with self._lock:
            self._ensure_no_live_handle()
            if self.exists():
                raise AlreadyExistsError(f"A vault already exists at {self.filepath}")
            directory = os.path.dirname(os.path.abspath(self.filepath))
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"Cannot create vault directory {directory}: {e}") from e

            salt = generate_salt()
            key = derive_key(password, salt, self.kdf_params)
            handle = VaultHandle(self, key, salt, self.kdf_params, Vault())
            try:
                handle._write()
            except StorageIOError:
                handle._wipe()
                raise
            self._register(handle)

        logger.info(f"Created new vault at {self.filepath}")
        return handle

    def _read_file(self) -> bytes:
        try:
            with open(self.filepath, 'rb') as f:
                return f.read()
        except OSError as e:
            raise StorageIOError(f"Cannot read vault file {self.filepath}: {e}") from e

    def unlock(self, password: Password) -> 'VaultHandle':
        """
        Decrypt the vault and return a handle to it.

        Raises:
            WrongPasswordError: If the vault does not authenticate. A wrong
                password and a tampered file are reported the same way.
            UnsupportedVersionError: If the file was written by an unknown
                format version.
            CorruptedError: If the header is unreadable, or the authenticated
                contents cannot be decoded.
            StorageIOError: If the file cannot be read.
            VaultBusyError: If a handle for this vault is already live.
        """
        with self._lock:
            self._ensure_no_live_handle()
            blob = self._read_file()
            header, header_bytes, ciphertext = unpack_vault_file(blob)

            key = derive_key(password, header.salt, header.kdf_params)
            try:
                plaintext = open_sealed(key, header.nonce, ciphertext, header_bytes)
            except AuthenticationError:
                wipe(key)
                if len(ciphertext) < config.TAG_SIZE:
                    logger.warning(f"Unlock failed for {self.filepath}: ciphertext is truncated")
                else:
                    logger.warning(f"Unlock failed for {self.filepath}: authentication tag did not verify")
                raise WrongPasswordError("Wrong password") from None

            try:
                vault = decode(plaintext)
            except FormatError:
                wipe(key)
                logger.error(f"Vault {self.filepath} authenticated but its contents could not be decoded")
                raise

            handle = VaultHandle(self, key, header.salt, header.kdf_params, vault, header=header)
            if header.kdf_params != self.kdf_params:
                logger.warning(
                    f"Vault uses outdated KDF parameters {header.describe()}, rekeying on next save"
                )
                handle._rekey(password, self.kdf_params)
            self._register(handle)

        logger.info(f"Unlocked vault {self.filepath} with {len(vault.accounts)} account(s)")
        return handle

    def _in_background(self, fn, password: Password, executor) -> Future:
        if executor is not None:
            return executor.submit(fn, password)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix='clockode-kdf')
        try:
            return pool.submit(fn, password)
        finally:
            pool.shutdown(wait=False)

    def unlock_in_background(self, password: Password, executor=None) -> Future:
        """Run unlock() on a worker thread so key derivation does not block the caller."""
        return self._in_background(self.unlock, password, executor)

    def create_in_background(self, password: Password, executor=None) -> Future:
        """Run create() on a worker thread."""
        return self._in_background(self.create, password, executor)


class VaultHandle:
    """
    An unlocked vault session.

    All mutations mark the handle dirty; save() persists them, lock() saves
    pending changes and then wipes the key and every account secret. Any
    call after lock() raises VaultLockedError.
    """

    def __init__(self, store: VaultStore, key: bytearray, salt: bytes,
                 kdf_params: KdfParams, vault: Vault, header: Optional[VaultHeader] = None):
        self._store = store
        self._key: Optional[bytearray] = key
        self._salt: Optional[bytes] = salt
        self._kdf_params = kdf_params
        self._vault: Optional[Vault] = vault
        self._header = header
        self._dirty = False
        self._lock = threading.RLock()

    def __enter__(self) -> 'VaultHandle':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.lock()

    def __del__(self):
        if getattr(self, '_key', None) is not None:
            if self._dirty:
                logger.warning(f"Vault handle for {self.filepath} dropped with unsaved changes; they are discarded")
            self._wipe()

    def __repr__(self) -> str:
        state = 'unlocked' if self.is_unlocked else 'locked'
        return f"<VaultHandle {self.filepath} {state}{' dirty' if self._dirty else ''}>"

    # State

    @property
    def filepath(self) -> str:
        return self._store.filepath

    @property
    def is_unlocked(self) -> bool:
        return self._key is not None

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def kdf_params(self) -> KdfParams:
        return self._kdf_params

    @property
    def header(self) -> Optional[VaultHeader]:
        """Header of the file as last read or written by this handle."""
        return self._header

    def _require_unlocked(self) -> Vault:
        if self._key is None or self._vault is None:
            raise VaultLockedError("Vault is locked")
        return self._vault

    def _find(self, account_id: str) -> Account:
        vault = self._require_unlocked()
        index = vault.index_of(account_id)
        if index < 0:
            raise NotFoundError(f"No account with id {account_id}")
        return vault.accounts[index]

    # Accounts

    @property
    def accounts(self) -> List[Account]:
        """Accounts in display order. The list is a copy of the immutable records."""
        with self._lock:
            return list(self._require_unlocked().accounts)

    def get_account(self, account_id: str) -> Account:
        with self._lock:
            return self._find(account_id)

    def add_account(self, label: str, secret: Union[str, bytes], issuer: Optional[str] = None,
                    digits: int = config.TOTP_DEFAULT_DIGITS,
                    period: int = config.TOTP_DEFAULT_PERIOD,
                    algorithm: Union[Algorithm, str] = config.TOTP_DEFAULT_ALGORITHM) -> Account:
        """
        Validate and append a new account.

        ``secret`` is raw bytes or base32 text.

        Raises:
            ValidationError: If any field violates the account invariants.
        """
        with self._lock:
            vault = self._require_unlocked()
            existing = set(vault.ids())
            account_id = new_account_id()
            while account_id in existing:
                account_id = new_account_id()
            account = Account(
                id=account_id,
                label=label,
                secret=secret,
                issuer=issuer,
                digits=digits,
                period=period,
                algorithm=algorithm,
            )
            vault.accounts.append(account)
            self._dirty = True
        logger.debug(f"Added account {account.id}")
        return account

    def update_account(self, account_id: str, **fields) -> None:
        """
        Change label, issuer, digits, period or algorithm of an account.

        Raises:
            ValidationError: If a field is immutable, unknown or invalid.
                Nothing is changed in that case.
            NotFoundError: If no account has ``account_id``.
        """
        immutable = sorted(_IMMUTABLE_FIELDS.intersection(fields))
        if immutable:
            raise ValidationError(f"Field(s) cannot be changed: {', '.join(immutable)}")
        unknown = sorted(set(fields) - set(_FIELD_VALIDATORS))
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

        with self._lock:
            account = self._find(account_id)
            changes = {name: _FIELD_VALIDATORS[name](value) for name, value in fields.items()}
            if not changes:
                return
            updated = replace(account, **changes)
            vault = self._vault
            vault.accounts[vault.index_of(account_id)] = updated
            wipe(account.secret)
            self._dirty = True

    def delete_account(self, account_id: str) -> None:
        """
        Raises:
            NotFoundError: If no account has ``account_id``.
        """
        with self._lock:
            account = self._find(account_id)
            self._vault.accounts.remove(account)
            wipe(account.secret)
            self._dirty = True
        logger.debug(f"Deleted account {account_id}")

    def reorder(self, ordered_ids: Iterable[str]) -> None:
        """
        Put the accounts in the given order.

        Raises:
            InvalidSetError: If the ids are not exactly the current account
                ids, each once.
        """
        ordered_ids = list(ordered_ids)
        with self._lock:
            vault = self._require_unlocked()
            by_id = {account.id: account for account in vault.accounts}
            if len(ordered_ids) != len(by_id) or set(ordered_ids) != set(by_id):
                raise InvalidSetError("Reorder ids must match the current accounts exactly")
            vault.accounts[:] = [by_id[account_id] for account_id in ordered_ids]
            self._dirty = True

    def generate_code(self, account_id: str,
                      now: Optional[Union[int, float, datetime.datetime]] = None) -> TotpCode:
        """Current TOTP code for an account. ``now`` defaults to the system clock."""
        if isinstance(now, datetime.datetime):
            now = now.timestamp()
        with self._lock:
            account = self._find(account_id)
            return generate(account.secret, now, account.digits, account.period, account.algorithm)

    # Persistence

    def _write(self) -> None:
        nonce = generate_nonce()
        header = VaultHeader(kdf_params=self._kdf_params, salt=self._salt, nonce=nonce)
        header_bytes = header.pack()
        _, ciphertext = seal(self._key, encode(self._vault), header_bytes, nonce=nonce)
        try:
            atomic_write(self.filepath, pack_vault_file(header, ciphertext))
        except OSError as e:
            logger.error(f"Error saving vault file {self.filepath}: {e}", exc_info=True)
            raise StorageIOError(f"Could not write vault file {self.filepath}: {e}") from e
        self._header = header

    def save(self) -> None:
        """
        Re-encrypt the whole vault under a fresh nonce and replace the file.

        Raises:
            StorageIOError: If writing fails; the previous file is untouched.
        """
        with self._lock:
            self._require_unlocked()
            self._write()
            self._dirty = False
        logger.info(f"Saved vault {self.filepath}")

    def lock(self, save: bool = True) -> None:
        """
        End the session. Pending changes are saved first unless ``save`` is
        False. If that save fails the handle stays unlocked.
        """
        with self._lock:
            if self._key is None:
                return
            if save and self._dirty:
                self.save()
            self._wipe()
        self._store._release(self)
        logger.info(f"Locked vault {self.filepath}")

    def _wipe(self) -> None:
        wipe(self._key)
        if self._vault is not None:
            for account in self._vault.accounts:
                wipe(account.secret)
            self._vault.accounts.clear()
        self._key = None
        self._salt = None
        self._vault = None
        self._dirty = False

    def _rekey(self, password: Password, kdf_params: KdfParams) -> None:
        salt = generate_salt()
        key = derive_key(password, salt, kdf_params)
        wipe(self._key)
        self._key = key
        self._salt = salt
        self._kdf_params = kdf_params
        self._dirty = True

    def change_password(self, old_password: Password, new_password: Password) -> None:
        """
        Re-protect the vault with a new master password.

        A new salt is generated and the store's KDF parameters are used. The
        change is persisted by the next save().

        Raises:
            WrongPasswordError: If ``old_password`` is not the current password.
        """
        with self._lock:
            self._require_unlocked()
            check = derive_key(old_password, self._salt, self._kdf_params)
            try:
                if not hmac.compare_digest(bytes(check), bytes(self._key)):
                    raise WrongPasswordError("Wrong password")
            finally:
                wipe(check)
            self._rekey(new_password, self._store.kdf_params)
        logger.info(f"Master password changed for {self.filepath}")

    # Backup

    def export_backup(self, filepath: str, fmt: str = FORMAT_JSON) -> None:
        """
        Write every account to a plaintext backup file.

        Raises:
            StorageIOError: If the file cannot be written.
        """
        with self._lock:
            vault = self._require_unlocked()
            try:
                write_backup(filepath, vault.accounts, fmt)
            except OSError as e:
                raise StorageIOError(f"Could not write backup {filepath}: {e}") from e

    def import_backup(self, filepath: str, mode: ImportMode = ImportMode.MERGE) -> int:
        """
        Load accounts from a backup file.

        Either every record is valid and the import is applied, or nothing
        changes.

        Returns:
            Number of accounts added

        Raises:
            ImportValidationError: If any record is invalid.
            StorageIOError: If the file cannot be read.
        """
        with self._lock:
            vault = self._require_unlocked()
            try:
                incoming = read_backup(filepath)
            except OSError as e:
                raise StorageIOError(f"Could not read backup {filepath}: {e}") from e

            mode = ImportMode(mode)
            merged = merge_accounts(vault.accounts, incoming, mode)
            if mode is ImportMode.REPLACE:
                added = len(merged)
                kept = {id(account) for account in merged}
                for account in vault.accounts:
                    if id(account) not in kept:
                        wipe(account.secret)
            else:
                added = len(merged) - len(vault.accounts)
            vault.accounts[:] = merged
            self._dirty = True
        logger.info(f"Imported {added} account(s) from backup ({mode.value})")
        return added
