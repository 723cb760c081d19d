"""
Shared pytest fixtures.

Real KDF costs take hundreds of milliseconds per derivation, so every store
built here uses tiny scrypt parameters.
"""

import pytest

from clockode.crypto import KdfParams
from clockode.storage import VaultStore


@pytest.fixture
def fast_params():
    return KdfParams.scrypt(n=2 ** 4, r=8, p=1)


@pytest.fixture
def vault_path(tmp_path):
    return str(tmp_path / "vault")


@pytest.fixture
def store(vault_path, fast_params):
    return VaultStore(vault_path, kdf_params=fast_params)


@pytest.fixture
def handle(store):
    """An unlocked, freshly created vault."""
    h = store.create("p1")
    yield h
    h.lock(save=False)
