# Tests for plaintext backup export/import

import json
import os

import pytest

from clockode import config
from clockode.backup import (
    FORMAT_JSON,
    FORMAT_OTPAUTH,
    ImportMode,
    dump_backup,
    load_backup,
    merge_accounts,
)
from clockode.errors import ImportValidationError, StorageIOError
from clockode.models import Account, Algorithm

GITHUB_SECRET = "JBSWY3DPEHPK3PXP"


@pytest.fixture
def populated(handle):
    handle.add_account(label="GitHub", secret=GITHUB_SECRET, issuer="GitHub")
    handle.add_account(label="alice@example.com", secret="GEZDGNBVGY3TQOJQ",
                       digits=8, period=60, algorithm=Algorithm.SHA256)
    handle.save()
    return handle


def backup_document(accounts):
    return {
        "format": config.BACKUP_FORMAT_NAME,
        "version": config.BACKUP_FORMAT_VERSION,
        "accounts": accounts,
    }


class TestJsonBackup:

    def test_export_lists_every_field(self, populated, tmp_path):
        path = str(tmp_path / "backup.json")
        populated.export_backup(path)
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
        assert document["format"] == config.BACKUP_FORMAT_NAME
        assert document["version"] == config.BACKUP_FORMAT_VERSION
        first = document["accounts"][0]
        assert set(first) == {"id", "label", "issuer", "secret", "digits", "period",
                              "algorithm", "created_at"}
        assert first["secret"] == GITHUB_SECRET

    def test_backup_is_not_the_vault_file(self, populated, tmp_path, vault_path):
        path = str(tmp_path / "backup.json")
        populated.export_backup(path)
        with open(path, "rb") as f:
            exported = f.read()
        with open(vault_path, "rb") as f:
            assert f.read() != exported

    def test_replace_round_trip(self, populated, tmp_path):
        path = str(tmp_path / "backup.json")
        populated.export_backup(path)
        original = [a.to_dict() for a in populated.accounts]
        populated.add_account(label="Temporary", secret=GITHUB_SECRET)
        assert populated.import_backup(path, ImportMode.REPLACE) == 2
        assert [a.to_dict() for a in populated.accounts] == original

    def test_merge_skips_existing_ids(self, populated, tmp_path):
        path = str(tmp_path / "backup.json")
        populated.export_backup(path)
        assert populated.import_backup(path, ImportMode.MERGE) == 0
        assert len(populated.accounts) == 2

    def test_merge_appends_new_accounts(self, populated, tmp_path):
        extra = Account(label="New", secret=GITHUB_SECRET)
        path = tmp_path / "backup.json"
        path.write_text(json.dumps(backup_document([extra.to_dict()])), encoding="utf-8")
        assert populated.import_backup(str(path), "merge") == 1
        assert [a.label for a in populated.accounts] == ["GitHub", "alice@example.com", "New"]
        assert populated.is_dirty

    def test_invalid_digits_rejects_whole_import(self, populated, tmp_path):
        good = Account(label="Good", secret=GITHUB_SECRET).to_dict()
        bad = Account(label="Bad", secret=GITHUB_SECRET).to_dict()
        bad["digits"] = 7
        path = tmp_path / "backup.json"
        path.write_text(json.dumps(backup_document([good, bad])), encoding="utf-8")

        before = populated.accounts
        for mode in (ImportMode.MERGE, ImportMode.REPLACE):
            with pytest.raises(ImportValidationError) as excinfo:
                populated.import_backup(str(path), mode)
            assert len(excinfo.value.errors) == 1
            assert excinfo.value.errors[0].startswith("account #2:")
        assert populated.accounts == before
        assert not populated.is_dirty

    def test_duplicate_ids_rejected(self):
        record = Account(label="Dup", secret=GITHUB_SECRET).to_dict()
        with pytest.raises(ImportValidationError):
            load_backup(json.dumps(backup_document([record, record])).encode())

    @pytest.mark.parametrize("document", [
        {"format": "something-else", "version": 1, "accounts": []},
        {"format": config.BACKUP_FORMAT_NAME, "version": 99, "accounts": []},
        {"format": config.BACKUP_FORMAT_NAME, "version": True, "accounts": []},
        {"format": config.BACKUP_FORMAT_NAME, "version": 1},
    ])
    def test_rejects_foreign_documents(self, document):
        with pytest.raises(ImportValidationError):
            load_backup(json.dumps(document).encode())

    def test_rejects_broken_json(self):
        with pytest.raises(ImportValidationError):
            load_backup(b"{ not json")

    def test_missing_file(self, handle, tmp_path):
        with pytest.raises(StorageIOError):
            handle.import_backup(str(tmp_path / "nope.json"))

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_export_is_owner_only(self, populated, tmp_path):
        path = str(tmp_path / "backup.json")
        populated.export_backup(path)
        assert os.stat(path).st_mode & 0o777 == 0o600


class TestOtpauthBackup:

    def test_export_and_reimport(self, populated, tmp_path):
        path = str(tmp_path / "codes.txt")
        populated.export_backup(path, fmt=FORMAT_OTPAUTH)
        with open(path, encoding="utf-8") as f:
            lines = [line for line in f.read().splitlines() if not line.startswith("#")]
        assert len(lines) == 2
        assert all(line.startswith("otpauth://totp/") for line in lines)

        before = populated.accounts
        assert populated.import_backup(path, ImportMode.MERGE) == 2
        imported = populated.accounts[2:]
        assert [a.label for a in imported] == [a.label for a in before]
        assert [bytes(a.secret) for a in imported] == [bytes(a.secret) for a in before]
        assert [(a.digits, a.period, a.algorithm) for a in imported] == [
            (a.digits, a.period, a.algorithm) for a in before]
        assert {a.id for a in imported}.isdisjoint(a.id for a in before)

    def test_comments_and_blank_lines_ignored(self):
        data = (
            "# exported codes\n"
            "\n"
            f"otpauth://totp/Example:alice?secret={GITHUB_SECRET}&issuer=Example\n"
        ).encode()
        (account,) = load_backup(data)
        assert account.label == "alice"
        assert account.issuer == "Example"

    def test_one_bad_line_rejects_everything(self):
        data = (
            f"otpauth://totp/Good?secret={GITHUB_SECRET}\n"
            f"otpauth://totp/Bad?secret={GITHUB_SECRET}&digits=7\n"
        ).encode()
        with pytest.raises(ImportValidationError) as excinfo:
            load_backup(data)
        assert len(excinfo.value.errors) == 1
        assert excinfo.value.errors[0].startswith("line 2:")


class TestMergeAccounts:

    def test_replace(self):
        a = Account(label="a", secret=GITHUB_SECRET)
        b = Account(label="b", secret=GITHUB_SECRET)
        assert merge_accounts([a], [b], ImportMode.REPLACE) == [b]

    def test_merge_keeps_order_and_dedupes(self):
        a = Account(label="a", secret=GITHUB_SECRET)
        b = Account(label="b", secret=GITHUB_SECRET)
        assert merge_accounts([a], [b, a, b], ImportMode.MERGE) == [a, b]

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            dump_backup([], fmt="csv")

    def test_json_is_default(self):
        assert dump_backup([]).lstrip().startswith(b"{")
        assert FORMAT_JSON == "json"
