"""
Cryptographic operations for the TOTP vault.

Key derivation turns the master password and the salt stored in the vault
header into a 32 byte key (scrypt by default, Argon2id as an alternative).
The cipher envelope seals the serialized vault with AES-256-GCM under a fresh
random 96 bit nonce on every call.

Never log keys, passwords or plaintext from this module.
"""

import os
import struct
import logging
from enum import IntEnum
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from . import config
from .errors import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)

# kdf id, cost1, cost2, cost3
KDF_RECORD_FORMAT = '>BIII'
KDF_RECORD_SIZE = struct.calcsize(KDF_RECORD_FORMAT)


class KdfAlgorithm(IntEnum):
    """Key derivation functions a vault header can name."""
    SCRYPT = 1
    ARGON2ID = 2

    @classmethod
    def from_name(cls, name: str) -> 'KdfAlgorithm':
        try:
            return {'scrypt': cls.SCRYPT, 'argon2id': cls.ARGON2ID}[name.lower()]
        except KeyError:
            raise ValidationError(f"Unknown key derivation function: {name}") from None


@dataclass(frozen=True)
class KdfParams:
    """
    Work factors for the key derivation function.

    For scrypt the three costs are (N, r, p). For Argon2id they are
    (time_cost, memory_cost in KiB, parallelism). The record is stored in
    the clear in the vault header so that old vaults keep opening after the
    defaults change.
    """
    algorithm: KdfAlgorithm
    cost1: int
    cost2: int
    cost3: int

    def __post_init__(self):
        try:
            algorithm = KdfAlgorithm(self.algorithm)
        except ValueError:
            raise ValidationError(f"Unknown key derivation function id: {self.algorithm!r}") from None
        object.__setattr__(self, 'algorithm', algorithm)
        for value in (self.cost1, self.cost2, self.cost3):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValidationError("KDF costs must be positive integers")
        if algorithm is KdfAlgorithm.SCRYPT:
            n, r, p = self.cost1, self.cost2, self.cost3
            if n < 2 or n & (n - 1):
                raise ValidationError(f"scrypt N must be a power of two greater than 1, got {n}")
            if n > config.SCRYPT_MAX_N or r > config.SCRYPT_MAX_R or p > config.SCRYPT_MAX_P:
                raise ValidationError(f"scrypt parameters out of range: N={n} r={r} p={p}")
            if 128 * r * (n + p) > config.KDF_MAX_MEMORY:
                raise ValidationError(f"scrypt parameters need too much memory: N={n} r={r} p={p}")
        else:
            time_cost, memory_cost, parallelism = self.cost1, self.cost2, self.cost3
            if (time_cost > config.ARGON2_MAX_TIME_COST
                    or memory_cost > config.ARGON2_MAX_MEMORY_COST
                    or parallelism > config.ARGON2_MAX_PARALLELISM):
                raise ValidationError("Argon2id parameters out of range")
            if memory_cost < 8 * parallelism:
                raise ValidationError("Argon2id memory cost must be at least 8 KiB per lane")

    @classmethod
    def scrypt(cls, n: int = config.SCRYPT_N, r: int = config.SCRYPT_R,
               p: int = config.SCRYPT_P) -> 'KdfParams':
        return cls(KdfAlgorithm.SCRYPT, n, r, p)

    @classmethod
    def argon2id(cls, time_cost: int = config.ARGON2_TIME_COST,
                 memory_cost: int = config.ARGON2_MEMORY_COST,
                 parallelism: int = config.ARGON2_PARALLELISM) -> 'KdfParams':
        return cls(KdfAlgorithm.ARGON2ID, time_cost, memory_cost, parallelism)

    @classmethod
    def default(cls) -> 'KdfParams':
        """Parameters used for new vaults and for rekeying old ones."""
        if KdfAlgorithm.from_name(config.DEFAULT_KDF) is KdfAlgorithm.ARGON2ID:
            return cls.argon2id()
        return cls.scrypt()

    def pack(self) -> bytes:
        return struct.pack(KDF_RECORD_FORMAT, int(self.algorithm), self.cost1, self.cost2, self.cost3)

    @classmethod
    def unpack(cls, record: bytes) -> 'KdfParams':
        """
        Parse the fixed-size header record.

        Raises:
            ValidationError: If the record names an unknown KDF or
                unreasonable costs.
        """
        if len(record) != KDF_RECORD_SIZE:
            raise ValidationError(f"KDF record must be {KDF_RECORD_SIZE} bytes, got {len(record)}")
        algorithm, cost1, cost2, cost3 = struct.unpack(KDF_RECORD_FORMAT, record)
        return cls(algorithm, cost1, cost2, cost3)


def _password_bytes(password: Union[str, bytes]) -> bytes:
    if isinstance(password, str):
        return password.encode('utf-8')
    return bytes(password)


def generate_salt() -> bytes:
    """Generate a cryptographically secure random salt."""
    return os.urandom(config.SALT_SIZE)


def generate_nonce() -> bytes:
    return os.urandom(config.NONCE_SIZE)


def derive_key(password: Union[str, bytes], salt: bytes, params: KdfParams) -> bytearray:
    """
    Derive the vault key from a password.

    Deterministic for a given (password, salt, params). This function never
    checks whether the password is right; a wrong password simply produces a
    key that fails authentication when the vault is opened.

    Args:
        password: The master password (str is UTF-8 encoded)
        salt: Salt from the vault header
        params: Work factors from the vault header

    Returns:
        32-byte key in a bytearray so the caller can wipe it
    """
    secret = _password_bytes(password)
    if params.algorithm is KdfAlgorithm.SCRYPT:
        kdf = Scrypt(
            salt=salt,
            length=config.KEY_SIZE,
            n=params.cost1,
            r=params.cost2,
            p=params.cost3,
        )
        key = kdf.derive(secret)
    else:
        key = hash_secret_raw(
            secret=secret,
            salt=salt,
            time_cost=params.cost1,
            memory_cost=params.cost2,
            parallelism=params.cost3,
            hash_len=config.KEY_SIZE,
            type=Type.ID,
        )
    return bytearray(key)


def seal(key: Union[bytes, bytearray], plaintext: bytes,
         associated_data: Optional[bytes] = None,
         nonce: Optional[bytes] = None) -> Tuple[bytes, bytes]:
    """
    Encrypt data using AES-256-GCM.

    A fresh random nonce is minted for every call unless one is passed in;
    callers that bind the nonce into associated data generate it first with
    generate_nonce().

    Returns:
        Tuple of (nonce, ciphertext with the 16 byte tag appended)
    """
    if nonce is None:
        nonce = generate_nonce()
    if len(nonce) != config.NONCE_SIZE:
        raise ValueError(f"Nonce must be {config.NONCE_SIZE} bytes")
    ciphertext = AESGCM(bytes(key)).encrypt(nonce, plaintext, associated_data)
    return nonce, ciphertext


def open_sealed(key: Union[bytes, bytearray], nonce: bytes, ciphertext: bytes,
                associated_data: Optional[bytes] = None) -> bytes:
    """
    Decrypt data sealed with seal().

    Raises:
        AuthenticationError: On a wrong key, tampered ciphertext or tag,
            tampered associated data or truncated input. The causes are not
            distinguished.
    """
    if len(nonce) != config.NONCE_SIZE or len(ciphertext) < config.TAG_SIZE:
        raise AuthenticationError("Authentication failed")
    try:
        return AESGCM(bytes(key)).decrypt(nonce, ciphertext, associated_data)
    except (InvalidTag, ValueError):
        raise AuthenticationError("Authentication failed") from None


def wipe(data: Optional[bytearray]) -> None:
    """Overwrite a mutable buffer with zeros."""
    if isinstance(data, bytearray):
        for i in range(len(data)):
            data[i] = 0
