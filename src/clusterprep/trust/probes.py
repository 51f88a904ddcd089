# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/trust/probes.py
from __future__ import annotations

import logging
import socket
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import paramiko

from clusterprep.utils.execution import TIMEOUT_RC, CommandRunner
from clusterprep.utils.files import scoped_tempfile

log = logging.getLogger("clusterprep")

KEY_ADDED_MARKER = "Number of key(s) added:"
KEYSCAN_TYPES = "rsa,ecdsa,ed25519"


# ------------------ reachability ------------------

def ping_host(runner: CommandRunner, ip: str, timeout: int = 2) -> bool:
    """Single ICMP echo, bounded by *timeout* seconds."""
    return runner.ok(["ping", "-c", "1", "-W", str(timeout), ip], timeout=timeout + 3)


def port_open(ip: str, port: int = 22, timeout: float = 3.0) -> bool:
    try:
        with socket.create_connection((ip, port), timeout=timeout):
            return True
    except OSError:
        return False


# ------------------ known_hosts ------------------

def host_key_known(known_hosts: Path, ip: str) -> bool:
    """True when *ip* already has an entry (hashed or not) in known_hosts."""
    if not known_hosts.exists():
        return False
    keys = paramiko.HostKeys()
    try:
        keys.load(str(known_hosts))
    except (IOError, paramiko.SSHException) as exc:
        log.debug("[trust] cannot parse %s: %s", known_hosts, exc)
        return False
    return keys.lookup(ip) is not None


def register_host_key(runner: CommandRunner, known_hosts: Path, ip: str, timeout: int = 5) -> bool:
    """
    Append hashed host keys of *ip* (rsa, ecdsa, ed25519) to known_hosts
    unless one is already recorded. Returns True when keys were added.
    """
    if host_key_known(known_hosts, ip):
        return False
    result = runner.run(
        ["ssh-keyscan", "-H", "-T", str(timeout), "-t", KEYSCAN_TYPES, ip],
        timeout=timeout * 3,
    )
    scanned = (result.stdout or "").strip()
    if not scanned:
        log.warning("[trust] ssh-keyscan returned no host keys for %s", ip)
        return False
    log.info("[trust] Adding %s to known_hosts...", ip)
    with known_hosts.open("a") as f:
        f.write(scanned + "\n")
    return True


# ------------------ authentication ------------------

def try_key_auth(
    ip: str,
    username: str,
    private_key: Path,
    *,
    port: int = 22,
    known_hosts: Optional[Path] = None,
    timeout: float = 5.0,
    command: Optional[str] = None,
) -> bool:
    """
    Non-interactive public key login (the BatchMode=yes equivalent).

    Unknown host keys are accepted and recorded; a changed host key fails.
    When *command* is given it must also exit 0.
    """
    client = paramiko.SSHClient()
    if known_hosts is not None and known_hosts.exists():
        client.load_host_keys(str(known_hosts))
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(
            hostname=ip,
            port=port,
            username=username,
            key_filename=str(private_key),
            look_for_keys=False,
            allow_agent=False,
            timeout=timeout,
            banner_timeout=timeout,
            auth_timeout=timeout,
        )
        if command is None:
            return True
        _, stdout, _ = client.exec_command(command, timeout=timeout)
        return stdout.channel.recv_exit_status() == 0
    except (paramiko.SSHException, OSError) as exc:
        log.debug("[trust] key auth to %s@%s failed: %s", username, ip, exc)
        return False
    finally:
        client.close()


# ------------------ key copy ------------------

@dataclass(frozen=True)
class CopyResult:
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def key_added(self) -> bool:
        return KEY_ADDED_MARKER in self.output

    @property
    def auth_rejected(self) -> bool:
        return "permission denied" in self.output.lower()

    def tail(self, lines: int = 2) -> str:
        return " ".join(ln.strip() for ln in self.output.strip().splitlines()[-lines:]).strip()


def copy_public_key(
    ip: str,
    username: str,
    public_key: Path,
    *,
    port: int = 22,
    connect_timeout: int = 10,
    timeout: float = 300,
) -> CopyResult:
    """
    Run `ssh-copy-id`, which may prompt for the remote password on the
    terminal. Combined stdout/stderr is captured in a scoped temp file.
    """
    cmd = [
        "ssh-copy-id",
        "-o", f"ConnectTimeout={connect_timeout}",
        "-o", "StrictHostKeyChecking=accept-new",
        "-p", str(port),
        "-i", str(public_key),
        f"{username}@{ip}",
    ]
    log.debug("[trust] $ %s", " ".join(cmd))
    with scoped_tempfile(prefix="clusterprep.copy-id.") as capture:
        with capture.open("w") as out:
            try:
                proc = subprocess.run(cmd, stdout=out, stderr=subprocess.STDOUT, timeout=timeout)
                rc = proc.returncode
            except subprocess.TimeoutExpired:
                rc = TIMEOUT_RC
            except FileNotFoundError as exc:
                out.write(f"{exc}\n")
                rc = 127
        output = capture.read_text(errors="replace")
    log.debug("[trust] ssh-copy-id rc=%s output:\n%s", rc, output.rstrip())
    return CopyResult(returncode=rc, output=output)
