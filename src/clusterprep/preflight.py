# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/preflight.py
from __future__ import annotations

import getpass
import os
import pwd
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from clusterprep.errors import PreflightError

SUPPORTED_OS_IDS = ("ubuntu", "debian")


def read_os_release(path: Path = Path("/etc/os-release")) -> Dict[str, str]:
    data: Dict[str, str] = {}
    if not path.exists():
        return data
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        data[k] = v.strip().strip('"').strip("'")
    return data


def check_os(path: Path = Path("/etc/os-release")) -> str:
    info = read_os_release(path)
    os_id = info.get("ID", "unknown")
    like = info.get("ID_LIKE", "").split()
    if os_id not in SUPPORTED_OS_IDS and not set(like) & set(SUPPORTED_OS_IDS):
        raise PreflightError(f"Unsupported OS: {os_id} (need Ubuntu or Debian)")
    return os_id


def require_root() -> None:
    if os.geteuid() != 0:
        raise PreflightError("This command must run as root (try: sudo clusterprep ...)")


@dataclass(frozen=True)
class LocalUser:
    name: str
    home: Path
    uid: int
    gid: int


def resolve_local_user(explicit: Optional[str] = None) -> LocalUser:
    """
    The account whose SSH keys are managed. Under sudo this is the invoking
    user (SUDO_USER), not root.
    """
    name = explicit or os.environ.get("SUDO_USER") or os.environ.get("USER") or getpass.getuser()
    try:
        pw = pwd.getpwnam(name)
    except KeyError:
        raise PreflightError(f"Unknown local user: {name}") from None
    return LocalUser(name=pw.pw_name, home=Path(pw.pw_dir), uid=pw.pw_uid, gid=pw.pw_gid)
