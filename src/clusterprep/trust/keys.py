# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/trust/keys.py
from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import paramiko

from clusterprep.errors import ClusterprepError
from .models import KeyPair

log = logging.getLogger("clusterprep")

PRIVATE_KEY_NAME = "id_rsa"
PUBLIC_KEY_NAME = "id_rsa.pub"


@dataclass(frozen=True)
class KeyStore:
    """
    Layout of an account's ~/.ssh directory.

    uid/gid are set when clusterprep runs as root on behalf of another
    account (sudo); every file it creates is then handed to that account.
    """

    ssh_dir: Path
    uid: Optional[int] = None
    gid: Optional[int] = None

    @property
    def private_key(self) -> Path:
        return self.ssh_dir / PRIVATE_KEY_NAME

    @property
    def public_key(self) -> Path:
        return self.ssh_dir / PUBLIC_KEY_NAME

    @property
    def authorized_keys(self) -> Path:
        return self.ssh_dir / "authorized_keys"

    @property
    def known_hosts(self) -> Path:
        return self.ssh_dir / "known_hosts"

    def _own(self, path: Path) -> None:
        if self.uid is None:
            return
        with contextlib.suppress(PermissionError):
            os.chown(path, self.uid, self.gid if self.gid is not None else -1)

    def set_mode(self, path: Path, mode: int) -> None:
        try:
            os.chmod(path, mode)
        except OSError as exc:
            raise ClusterprepError(f"Failed to set permissions {oct(mode)} on {path}: {exc}") from exc
        self._own(path)

    def ensure_dir(self) -> None:
        if not self.ssh_dir.is_dir():
            log.info("[trust] Creating %s directory", self.ssh_dir)
            self.ssh_dir.mkdir(parents=True, exist_ok=True)
        self.set_mode(self.ssh_dir, 0o700)

    def touch(self, path: Path, mode: int = 0o600) -> None:
        if not path.exists():
            path.touch()
        self.set_mode(path, mode)


def generate_key_pair(store: KeyStore, comment: str, bits: int = 4096) -> KeyPair:
    """RSA key pair with an empty passphrase, written the way ssh-keygen lays it out."""
    key = paramiko.RSAKey.generate(bits=bits)
    key.write_private_key_file(str(store.private_key))
    store.public_key.write_text(f"{key.get_name()} {key.get_base64()} {comment}\n")
    return KeyPair(store.private_key, store.public_key)


def ensure_key_pair(store: KeyStore, comment: str, bits: int = 4096) -> KeyPair:
    """
    Create the key pair once; later runs reuse it. Permissions are fixed on
    every run: private 0600, public 0644, authorized_keys and known_hosts 0600.
    """
    store.ensure_dir()

    if not store.private_key.exists():
        log.info("[trust] Generating SSH key pair (rsa %d, %s)...", bits, comment)
        generate_key_pair(store, comment, bits=bits)
        log.info("[trust] SSH key pair generated successfully")
    else:
        log.info("[trust] SSH key already exists (skip generation)")
        if not store.public_key.exists():
            # recover a lost .pub from the private key
            key = paramiko.RSAKey.from_private_key_file(str(store.private_key))
            store.public_key.write_text(f"{key.get_name()} {key.get_base64()} {comment}\n")

    store.set_mode(store.private_key, 0o600)
    store.set_mode(store.public_key, 0o644)
    store.touch(store.authorized_keys, 0o600)
    store.touch(store.known_hosts, 0o600)
    return KeyPair(store.private_key, store.public_key)


def authorize_key(store: KeyStore, public_line: str) -> bool:
    """
    Append *public_line* to authorized_keys unless an identical line exists.
    Returns True when the file changed.
    """
    path = store.authorized_keys
    raw = path.read_text() if path.exists() else ""
    existing = raw.splitlines()
    if public_line in existing:
        log.info("[trust] Public key already in %s (skip)", path)
        return False

    log.info("[trust] Adding public key to its own %s", path)
    with path.open("a") as f:
        if raw and not raw.endswith("\n"):
            f.write("\n")
        f.write(public_line + "\n")
    store.set_mode(path, 0o600)
    return True
