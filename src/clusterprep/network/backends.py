# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/network/backends.py
from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from clusterprep.errors import ApplyError
from clusterprep.utils.execution import CommandRunner

log = logging.getLogger("clusterprep")


class ApplyStrategy(Protocol):
    renderer: str

    def apply(self, runner: CommandRunner) -> None: ...


class NetworkManagerApply:
    """Reload NetworkManager (restart as fallback) and verify it stays active."""

    renderer = "NetworkManager"

    def __init__(self, settle_seconds: float = 2.0, sleep: Callable[[float], None] = time.sleep):
        self.settle_seconds = settle_seconds
        self.sleep = sleep

    def apply(self, runner: CommandRunner) -> None:
        if not runner.ok(["systemctl", "reload", "NetworkManager"]):
            log.warning("[network] NetworkManager reload failed, trying restart...")
            if not runner.ok(["systemctl", "restart", "NetworkManager"]):
                raise ApplyError("NetworkManager restart failed")
        self.sleep(self.settle_seconds)
        if not runner.ok(["systemctl", "is-active", "--quiet", "NetworkManager"]):
            raise ApplyError("NetworkManager is not running after configuration")


class NetworkdApply:
    """`netplan apply` for systemd-networkd hosts."""

    renderer = "networkd"

    def apply(self, runner: CommandRunner) -> None:
        result = runner.run(["netplan", "apply"])
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise ApplyError(f"netplan apply failed (rc={result.returncode}) {detail}".strip())


def detect_backend(runner: CommandRunner) -> ApplyStrategy:
    if runner.ok(["systemctl", "is-active", "--quiet", "NetworkManager"]):
        return NetworkManagerApply()
    return NetworkdApply()
