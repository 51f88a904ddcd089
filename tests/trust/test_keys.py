import stat
from pathlib import Path

import paramiko
import pytest

from clusterprep.trust.keys import KeyStore, authorize_key, ensure_key_pair


def _mode(p: Path) -> int:
    return stat.S_IMODE(p.stat().st_mode)


@pytest.fixture
def store(tmp_path: Path) -> KeyStore:
    return KeyStore(ssh_dir=tmp_path / ".ssh")


def test_key_pair_created_with_modes(store):
    keys = ensure_key_pair(store, comment="ops@master", bits=1024)

    assert _mode(store.ssh_dir) == 0o700
    assert _mode(keys.private_key) == 0o600
    assert _mode(keys.public_key) == 0o644
    assert _mode(store.authorized_keys) == 0o600
    assert _mode(store.known_hosts) == 0o600

    line = keys.public_line()
    assert line.startswith("ssh-rsa ")
    assert line.endswith(" ops@master")
    # private key is loadable without a passphrase
    paramiko.RSAKey.from_private_key_file(str(keys.private_key))


def test_existing_key_pair_is_reused(store):
    first = ensure_key_pair(store, comment="ops@master", bits=1024)
    before = first.private_key.read_bytes()
    second = ensure_key_pair(store, comment="ops@master", bits=1024)
    assert second.private_key.read_bytes() == before


def test_lost_public_key_is_recovered(store):
    keys = ensure_key_pair(store, comment="ops@master", bits=1024)
    original = keys.public_line()
    keys.public_key.unlink()

    again = ensure_key_pair(store, comment="ops@master", bits=1024)
    assert again.public_line() == original


def test_authorize_key_appends_once(store):
    keys = ensure_key_pair(store, comment="ops@master", bits=1024)
    store.authorized_keys.write_text("ssh-ed25519 AAAAother other@host")

    assert authorize_key(store, keys.public_line()) is True
    assert authorize_key(store, keys.public_line()) is False

    lines = store.authorized_keys.read_text().splitlines()
    assert lines == ["ssh-ed25519 AAAAother other@host", keys.public_line()]
    assert _mode(store.authorized_keys) == 0o600
