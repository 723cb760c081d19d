"""
Plaintext backups of the vault contents.

Two formats are written and read:

* ``json``: a versioned document listing every account field. This is the
  lossless format; ids and creation times survive a round trip.
* ``otpauth``: one provisioning URI per line, readable by other
  authenticator apps. Imported accounts get fresh ids.

Backups are NOT encrypted. The caller must treat the file as sensitive.
"""

import json
import logging
import datetime
from enum import Enum
from typing import List, Sequence

from . import config
from .errors import ImportValidationError, ValidationError
from .models import Account
from .otp_uri import account_to_uri, uri_to_account
from .utils import atomic_write

logger = logging.getLogger(__name__)

FORMAT_JSON = "json"
FORMAT_OTPAUTH = "otpauth"


class ImportMode(str, Enum):
    """How imported accounts are combined with the ones already in the vault."""
    REPLACE = "replace"
    MERGE = "merge"


def dump_backup(accounts: Sequence[Account], fmt: str = FORMAT_JSON) -> bytes:
    """Serialize accounts in the given backup format."""
    if fmt == FORMAT_JSON:
        document = {
            'format': config.BACKUP_FORMAT_NAME,
            'version': config.BACKUP_FORMAT_VERSION,
            'exported_at': datetime.datetime.now(datetime.timezone.utc).isoformat(),
            'accounts': [account.to_dict() for account in accounts],
        }
        return json.dumps(document, indent=2, ensure_ascii=False).encode('utf-8')
    if fmt == FORMAT_OTPAUTH:
        lines = [f"# {config.APP_NAME} export, {len(accounts)} account(s)"]
        lines.extend(account_to_uri(account) for account in accounts)
        return ('\n'.join(lines) + '\n').encode('utf-8')
    raise ValueError(f"Unknown backup format: {fmt}")


def _load_json(text: str) -> List[Account]:
    try:
        document = json.loads(text)
    except ValueError as e:
        raise ImportValidationError(f"Backup is not valid JSON: {e}") from None
    if not isinstance(document, dict) or document.get('format') != config.BACKUP_FORMAT_NAME:
        raise ImportValidationError("Not a Clockode backup document")
    version = document.get('version')
    if isinstance(version, bool) or version != config.BACKUP_FORMAT_VERSION:
        raise ImportValidationError(f"Unsupported backup version: {version!r}")
    records = document.get('accounts')
    if not isinstance(records, list):
        raise ImportValidationError("Backup document has no account list")

    accounts, errors = [], []
    for i, record in enumerate(records):
        try:
            accounts.append(Account.from_dict(record))
        except ValidationError as e:
            errors.append(f"account #{i + 1}: {e}")
    seen = set()
    for account in accounts:
        if account.id in seen:
            errors.append(f"duplicate account id {account.id}")
        seen.add(account.id)
    if errors:
        raise ImportValidationError(f"Backup rejected, {len(errors)} invalid record(s)", errors)
    return accounts


def _load_uri_list(text: str) -> List[Account]:
    accounts, errors = [], []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        try:
            accounts.append(uri_to_account(line))
        except ValidationError as e:
            errors.append(f"line {lineno}: {e}")
    if errors:
        raise ImportValidationError(f"Backup rejected, {len(errors)} invalid record(s)", errors)
    return accounts


def load_backup(data: bytes) -> List[Account]:
    """
    Parse and validate a backup. The format is detected from the content.

    Raises:
        ImportValidationError: If any record is invalid; no accounts are
            returned in that case.
    """
    try:
        text = data.decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ImportValidationError("Backup is not UTF-8 text") from None
    if text.lstrip().startswith('{'):
        return _load_json(text)
    return _load_uri_list(text)


def write_backup(filepath: str, accounts: Sequence[Account], fmt: str = FORMAT_JSON) -> None:
    """
    Write a backup file atomically with owner-only permissions.

    Raises:
        OSError: If the file cannot be written.
    """
    atomic_write(filepath, dump_backup(accounts, fmt))
    logger.info(f"Exported {len(accounts)} account(s) as {fmt} backup")


def read_backup(filepath: str) -> List[Account]:
    """
    Raises:
        OSError: If the file cannot be read.
        ImportValidationError: If the content is rejected.
    """
    with open(filepath, 'rb') as f:
        data = f.read()
    return load_backup(data)


def merge_accounts(current: Sequence[Account], incoming: Sequence[Account],
                   mode: ImportMode) -> List[Account]:
    """
    Combine imported accounts with the existing ones.

    REPLACE discards the current accounts. MERGE appends incoming accounts
    whose id is not already present and keeps existing order.
    """
    mode = ImportMode(mode)
    if mode is ImportMode.REPLACE:
        return list(incoming)
    existing = {account.id for account in current}
    merged = list(current)
    for account in incoming:
        if account.id not in existing:
            merged.append(account)
            existing.add(account.id)
    return merged
