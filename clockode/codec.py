"""
Serialization of the vault document and of the on-disk vault file.

The document is canonical JSON (sorted keys, no insignificant whitespace).
The file layout is::

    [version: u8][kdf params: 13 bytes][salt: 16 bytes][nonce: 12 bytes][ciphertext + tag]

Everything before the ciphertext is the header and is bound to the
ciphertext as AEAD associated data.
"""

import json
import struct
import logging
from dataclasses import dataclass
from typing import Any, Dict

from . import config
from .crypto import KDF_RECORD_SIZE, KdfParams
from .errors import CorruptedError, UnsupportedVersionError, ValidationError
from .models import Account, Vault

logger = logging.getLogger(__name__)

HEADER_SIZE = 1 + KDF_RECORD_SIZE + config.SALT_SIZE + config.NONCE_SIZE


def encode(vault: Vault) -> bytes:
    """Serialize a vault to its canonical byte form."""
    data = {
        'version': vault.version,
        'accounts': [account.to_dict() for account in vault.accounts],
    }
    return json.dumps(data, sort_keys=True, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def decode(payload: bytes) -> Vault:
    """
    Parse bytes produced by encode().

    Raises:
        UnsupportedVersionError: If the document carries a version this
            build does not read.
        CorruptedError: If the bytes are not a well formed vault document.
    """
    try:
        data = json.loads(payload.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise CorruptedError(f"Vault document is not valid JSON: {e}") from None
    if not isinstance(data, dict):
        raise CorruptedError("Vault document must be an object")

    version = data.get('version')
    if isinstance(version, bool) or not isinstance(version, int):
        raise CorruptedError("Vault document has no version")
    if version != config.CODEC_VERSION:
        raise UnsupportedVersionError(version, config.CODEC_VERSION)

    records = data.get('accounts')
    if not isinstance(records, list):
        raise CorruptedError("Vault document has no account list")
    try:
        accounts = [Account.from_dict(record) for record in records]
        return Vault(accounts=accounts, version=version)
    except ValidationError as e:
        raise CorruptedError(f"Invalid account in vault document: {e}") from None


@dataclass(frozen=True)
class VaultHeader:
    """Cleartext fields written in front of the ciphertext."""
    kdf_params: KdfParams
    salt: bytes
    nonce: bytes
    version: int = config.VAULT_FORMAT_VERSION

    def pack(self) -> bytes:
        if len(self.salt) != config.SALT_SIZE:
            raise ValueError(f"Salt must be {config.SALT_SIZE} bytes")
        if len(self.nonce) != config.NONCE_SIZE:
            raise ValueError(f"Nonce must be {config.NONCE_SIZE} bytes")
        return struct.pack('>B', self.version) + self.kdf_params.pack() + self.salt + self.nonce

    def describe(self) -> Dict[str, Any]:
        """Non-secret summary, safe to log."""
        return {
            'version': self.version,
            'kdf': self.kdf_params.algorithm.name.lower(),
            'costs': (self.kdf_params.cost1, self.kdf_params.cost2, self.kdf_params.cost3),
        }


def pack_vault_file(header: VaultHeader, ciphertext: bytes) -> bytes:
    return header.pack() + ciphertext


def unpack_vault_file(blob: bytes):
    """
    Split a vault file into its header and ciphertext.

    The version byte is checked before anything else is parsed.

    Returns:
        Tuple of (VaultHeader, header bytes, ciphertext)

    Raises:
        UnsupportedVersionError: If the version byte is unknown.
        CorruptedError: If the file is too short or the KDF record is invalid.
    """
    if not blob:
        raise CorruptedError("Vault file is empty")
    version = blob[0]
    if version != config.VAULT_FORMAT_VERSION:
        raise UnsupportedVersionError(version, config.VAULT_FORMAT_VERSION)
    if len(blob) < HEADER_SIZE:
        raise CorruptedError(f"Vault file truncated: {len(blob)} bytes, header needs {HEADER_SIZE}")

    offset = 1
    record = blob[offset:offset + KDF_RECORD_SIZE]
    offset += KDF_RECORD_SIZE
    try:
        kdf_params = KdfParams.unpack(record)
    except ValidationError as e:
        raise CorruptedError(f"Invalid KDF parameters in header: {e}") from None
    salt = blob[offset:offset + config.SALT_SIZE]
    offset += config.SALT_SIZE
    nonce = blob[offset:offset + config.NONCE_SIZE]
    offset += config.NONCE_SIZE

    header = VaultHeader(kdf_params=kdf_params, salt=bytes(salt), nonce=bytes(nonce), version=version)
    return header, bytes(blob[:HEADER_SIZE]), bytes(blob[HEADER_SIZE:])
