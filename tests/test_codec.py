# Tests for the vault document codec and the on-disk header layout

import json
import datetime

import pytest

from clockode import config
from clockode.codec import HEADER_SIZE, VaultHeader, decode, encode, pack_vault_file, unpack_vault_file
from clockode.crypto import KdfParams, generate_nonce, generate_salt
from clockode.errors import CorruptedError, UnsupportedVersionError, ValidationError
from clockode.models import Account, Algorithm, Vault, normalize_secret

GITHUB_SECRET = "JBSWY3DPEHPK3PXP"


def make_account(**overrides):
    fields = dict(label="GitHub", secret=GITHUB_SECRET)
    fields.update(overrides)
    return Account(**fields)


class TestVaultRoundTrip:
    """decode(encode(v)) == v for representative vaults."""

    def test_empty_vault(self):
        assert decode(encode(Vault())) == Vault()

    def test_single_account(self):
        vault = Vault([make_account()])
        assert decode(encode(vault)) == vault

    def test_many_accounts_keep_order(self):
        vault = Vault([
            make_account(label=f"acct-{i}", issuer=None if i % 2 else f"Issuer {i}",
                         digits=8 if i % 3 == 0 else 6, period=30 + i,
                         algorithm=list(Algorithm)[i % 3])
            for i in range(20)
        ])
        decoded = decode(encode(vault))
        assert decoded == vault
        assert [a.label for a in decoded.accounts] == [f"acct-{i}" for i in range(20)]

    def test_unicode_and_binary_secret(self):
        vault = Vault([make_account(label="Bänk ✓", issuer="Ünïcode", secret=bytes(range(256)))])
        assert decode(encode(vault)) == vault

    def test_encoding_is_canonical(self):
        account = make_account()
        assert encode(Vault([account])) == encode(Vault([account]))
        assert b" " not in encode(Vault([make_account(label="x")]))


class TestDecodeErrors:

    def test_future_version(self):
        payload = json.dumps({"version": config.CODEC_VERSION + 1, "accounts": []}).encode()
        with pytest.raises(UnsupportedVersionError):
            decode(payload)

    def test_not_json(self):
        with pytest.raises(CorruptedError):
            decode(b"\x00\x01garbage")

    def test_missing_version(self):
        with pytest.raises(CorruptedError):
            decode(b'{"accounts": []}')

    def test_invalid_account(self):
        record = make_account().to_dict()
        record["digits"] = 7
        payload = json.dumps({"version": 1, "accounts": [record]}).encode()
        with pytest.raises(CorruptedError):
            decode(payload)

    def test_duplicate_ids(self):
        record = make_account().to_dict()
        payload = json.dumps({"version": 1, "accounts": [record, record]}).encode()
        with pytest.raises(CorruptedError):
            decode(payload)


class TestAccountModel:
    """Field invariants enforced when an account is built."""

    def test_defaults(self):
        account = make_account()
        assert account.digits == 6
        assert account.period == 30
        assert account.algorithm is Algorithm.SHA1
        assert account.issuer is None
        assert account.created_at.tzinfo is not None

    @pytest.mark.parametrize("digits", [0, 5, 7, 9, True, "6"])
    def test_bad_digits(self, digits):
        with pytest.raises(ValidationError):
            make_account(digits=digits)

    @pytest.mark.parametrize("period", [0, -30, 301, 1.5])
    def test_bad_period(self, period):
        with pytest.raises(ValidationError):
            make_account(period=period)

    def test_empty_label(self):
        with pytest.raises(ValidationError):
            make_account(label="   ")

    def test_empty_secret(self):
        with pytest.raises(ValidationError):
            make_account(secret=b"")

    def test_repr_hides_secret(self):
        assert GITHUB_SECRET not in repr(make_account())
        assert "secret" not in repr(make_account())

    def test_naive_created_at_becomes_utc(self):
        account = make_account(created_at=datetime.datetime(2024, 1, 1, 12, 0))
        assert account.created_at.tzinfo == datetime.timezone.utc


class TestNormalizeSecret:

    def test_spaces_and_lowercase(self):
        assert normalize_secret("jbsw y3dp ehpk 3pxp") == normalize_secret(GITHUB_SECRET)

    def test_missing_padding(self):
        assert normalize_secret("MFRGG") == bytearray(b"abc")

    def test_raw_bytes_pass_through(self):
        assert normalize_secret(b"\x00\x01") == bytearray(b"\x00\x01")

    def test_invalid_base32(self):
        with pytest.raises(ValidationError):
            normalize_secret("not base32!")


class TestVaultFile:
    """Bit layout of the encrypted file."""

    def header(self):
        return VaultHeader(kdf_params=KdfParams.scrypt(n=2 ** 4), salt=generate_salt(), nonce=generate_nonce())

    def test_layout(self):
        header = self.header()
        blob = pack_vault_file(header, b"C" * 40)
        assert HEADER_SIZE == 1 + 13 + 16 + 12
        assert blob[0] == config.VAULT_FORMAT_VERSION
        assert blob[14:30] == header.salt
        assert blob[30:42] == header.nonce
        assert blob[42:] == b"C" * 40

    def test_unpack(self):
        header = self.header()
        parsed, header_bytes, ciphertext = unpack_vault_file(pack_vault_file(header, b"xyz"))
        assert parsed == header
        assert header_bytes == header.pack()
        assert ciphertext == b"xyz"

    def test_unknown_version_checked_first(self):
        with pytest.raises(UnsupportedVersionError):
            unpack_vault_file(bytes([2]))

    def test_truncated_header(self):
        blob = pack_vault_file(self.header(), b"")
        with pytest.raises(CorruptedError):
            unpack_vault_file(blob[:HEADER_SIZE - 1])

    def test_empty_file(self):
        with pytest.raises(CorruptedError):
            unpack_vault_file(b"")

    def test_bad_kdf_record(self):
        blob = bytearray(pack_vault_file(self.header(), b""))
        blob[1] = 0x7F
        with pytest.raises(CorruptedError):
            unpack_vault_file(bytes(blob))
