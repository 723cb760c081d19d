"""
Plaintext vault model: accounts and the ordered collection that holds them.
"""

import re
import uuid
import hashlib
import base64
import binascii
import datetime
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from . import config
from .errors import ValidationError

_WHITESPACE = re.compile(r'\s+')


class Algorithm(str, Enum):
    """HMAC hash functions usable by the TOTP construction."""
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def hash_name(self) -> str:
        return self.value.lower()

    @property
    def digest(self):
        """hashlib constructor for this algorithm."""
        return getattr(hashlib, self.hash_name)

    @classmethod
    def parse(cls, value: Union[str, 'Algorithm']) -> 'Algorithm':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().upper().replace('-', '')
            for member in cls:
                if member.value == normalized:
                    return member
        raise ValidationError(f"Unsupported algorithm: {value!r}")


def new_account_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def normalize_secret(secret: Union[str, bytes, bytearray]) -> bytearray:
    """
    Turn a user supplied secret into raw key bytes.

    Raw bytes are taken as they are. Text is treated as base32: whitespace is
    removed, letters are upper-cased and missing '=' padding is restored, so
    secrets written as ``jbsw y3dp ehpk 3pxp`` are accepted.

    Raises:
        ValidationError: If the text is not valid base32 or decodes to nothing.
    """
    if isinstance(secret, (bytes, bytearray)):
        raw = bytearray(secret)
    elif isinstance(secret, str):
        cleaned = _WHITESPACE.sub('', secret).upper().rstrip('=')
        cleaned += '=' * (-len(cleaned) % 8)
        try:
            raw = bytearray(base64.b32decode(cleaned))
        except (binascii.Error, ValueError):
            raise ValidationError("Secret is not valid base32") from None
    else:
        raise ValidationError(f"Secret must be text or bytes, not {type(secret).__name__}")
    if not raw:
        raise ValidationError("Secret must not be empty")
    return raw


def encode_secret(secret: Union[bytes, bytearray]) -> str:
    """Base32 text for a raw secret, without padding."""
    return base64.b32encode(bytes(secret)).decode('ascii').rstrip('=')


def validate_label(label: Any) -> str:
    if not isinstance(label, str) or not label.strip():
        raise ValidationError("Label must be a non-empty string")
    return label


def validate_issuer(issuer: Any) -> Optional[str]:
    if issuer is None:
        return None
    if not isinstance(issuer, str):
        raise ValidationError("Issuer must be a string or None")
    return issuer


def validate_digits(digits: Any) -> int:
    if isinstance(digits, bool) or digits not in config.TOTP_ALLOWED_DIGITS:
        raise ValidationError(
            f"Digits must be one of {config.TOTP_ALLOWED_DIGITS}, got {digits!r}"
        )
    return int(digits)


def validate_period(period: Any) -> int:
    if isinstance(period, bool) or not isinstance(period, int):
        raise ValidationError(f"Period must be an integer, got {period!r}")
    if not 0 < period <= config.TOTP_MAX_PERIOD:
        raise ValidationError(f"Period must be between 1 and {config.TOTP_MAX_PERIOD} seconds")
    return period


@dataclass(frozen=True)
class Account:
    """
    One stored TOTP secret.

    Accounts are immutable records; the vault handle swaps in a validated
    copy when fields are updated. ``id``, ``secret`` and ``created_at`` never
    change after creation, so replacing a secret means deleting the account
    and adding a new one. The secret lives in a bytearray so it can be wiped
    when the vault locks.
    """
    label: str
    secret: bytearray
    issuer: Optional[str] = None
    digits: int = config.TOTP_DEFAULT_DIGITS
    period: int = config.TOTP_DEFAULT_PERIOD
    algorithm: Algorithm = Algorithm(config.TOTP_DEFAULT_ALGORITHM)
    id: str = field(default_factory=new_account_id)
    created_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, 'label', validate_label(self.label))
        object.__setattr__(self, 'secret', normalize_secret(self.secret))
        object.__setattr__(self, 'issuer', validate_issuer(self.issuer))
        object.__setattr__(self, 'digits', validate_digits(self.digits))
        object.__setattr__(self, 'period', validate_period(self.period))
        object.__setattr__(self, 'algorithm', Algorithm.parse(self.algorithm))
        if not isinstance(self.id, str) or not self.id:
            raise ValidationError("Account id must be a non-empty string")
        if not isinstance(self.created_at, datetime.datetime):
            raise ValidationError("created_at must be a datetime")
        if self.created_at.tzinfo is None:
            object.__setattr__(self, 'created_at', self.created_at.replace(tzinfo=datetime.timezone.utc))

    def __repr__(self) -> str:
        return (f"Account(id={self.id!r}, label={self.label!r}, issuer={self.issuer!r}, "
                f"digits={self.digits}, period={self.period}, algorithm={self.algorithm.value})")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization. The secret is base32 text."""
        return {
            'id': self.id,
            'label': self.label,
            'issuer': self.issuer,
            'secret': encode_secret(self.secret),
            'digits': self.digits,
            'period': self.period,
            'algorithm': self.algorithm.value,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """
        Create from dictionary.

        Raises:
            ValidationError: If a field is missing or violates its invariants.
        """
        if not isinstance(data, dict):
            raise ValidationError("Account record must be an object")
        missing = [name for name in ('id', 'label', 'secret') if name not in data]
        if missing:
            raise ValidationError(f"Account record is missing: {', '.join(missing)}")
        if not isinstance(data['secret'], str):
            raise ValidationError("Secret must be base32 text")
        created_at = data.get('created_at')
        if created_at is None:
            created_at = utcnow()
        else:
            try:
                created_at = datetime.datetime.fromisoformat(created_at)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid created_at: {created_at!r}") from None
        return cls(
            id=data['id'],
            label=data['label'],
            issuer=data.get('issuer'),
            secret=data['secret'],
            digits=data.get('digits', config.TOTP_DEFAULT_DIGITS),
            period=data.get('period', config.TOTP_DEFAULT_PERIOD),
            algorithm=data.get('algorithm', config.TOTP_DEFAULT_ALGORITHM),
            created_at=created_at,
        )


@dataclass
class Vault:
    """The decrypted document: accounts in display order plus a version tag."""
    accounts: List[Account] = field(default_factory=list)
    version: int = config.CODEC_VERSION

    def __post_init__(self):
        seen = set()
        for account in self.accounts:
            if account.id in seen:
                raise ValidationError(f"Duplicate account id: {account.id}")
            seen.add(account.id)

    def index_of(self, account_id: str) -> int:
        for i, account in enumerate(self.accounts):
            if account.id == account_id:
                return i
        return -1

    def ids(self) -> List[str]:
        return [account.id for account in self.accounts]
