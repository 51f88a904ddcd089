# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/network/reconciler.py
from __future__ import annotations

import contextlib
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from clusterprep.config.models import (
    InterfaceClassification,
    NetworkIntent,
    NetworkMode,
    PathsConfig,
)
from clusterprep.errors import ConfigGenerationError
from clusterprep.utils.execution import CommandRunner
from clusterprep.utils.files import atomic_write_text, backup_file, restore_file

from .backends import ApplyStrategy, detect_backend
from .interfaces import current_address, default_route
from .netplan import render_netplan

log = logging.getLogger("clusterprep")

CLOUD_INIT_DISABLE_FILE = "99-disable-network-config.cfg"
CLOUD_INIT_DISABLE = "network: {config: disabled}\n"


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"


class NetworkReconciler:
    """
    Reconciles the static netplan config of this host:

      validate -> skip if live state matches -> backup -> render ->
      disable cloud-init networking -> fix perms -> `netplan generate` ->
      apply through the detected backend

    A failed `netplan generate` restores the previous file exactly.
    """

    def __init__(
        self,
        paths: Optional[PathsConfig] = None,
        runner: Optional[CommandRunner] = None,
        backend_detector: Callable[[CommandRunner], ApplyStrategy] = detect_backend,
    ):
        self.paths = paths or PathsConfig()
        self.runner = runner or CommandRunner(label="network")
        self.backend_detector = backend_detector

    # ------------------ live state ------------------

    def is_converged(self, intent: NetworkIntent, classification: InterfaceClassification) -> bool:
        if not self.paths.netplan_file.exists():
            return False
        if current_address(self.runner, classification.cluster_iface) != intent.address_cidr:
            return False

        route = default_route(self.runner)
        if NetworkMode(intent.mode) == NetworkMode.OFFLINE:
            return route is not None and route.gateway == intent.gateway
        return route is not None and route.device == classification.nat_iface

    # ------------------ steps ------------------

    def disable_cloud_init_network(self) -> None:
        cfg_dir = self.paths.cloud_cfg_dir
        if not cfg_dir.is_dir():
            return
        target = cfg_dir / CLOUD_INIT_DISABLE_FILE
        if target.exists() and target.read_text() == CLOUD_INIT_DISABLE:
            return
        log.info("[network] Disabling cloud-init network config (%s)", target)
        atomic_write_text(target, CLOUD_INIT_DISABLE, mode=0o644)

    def fix_permissions(self) -> None:
        log.info("[network] Fixing netplan permissions...")
        for p in sorted(self.paths.netplan_dir.glob("*.yaml")):
            with contextlib.suppress(PermissionError):
                os.chown(p, 0, 0)
            os.chmod(p, 0o600)

    def rollback(self, backup: Optional[Path]) -> None:
        target = self.paths.netplan_file
        if backup is not None:
            log.warning("[network] Restoring backup %s -> %s", backup, target)
            restore_file(backup, target)
        else:
            log.warning("[network] Removing invalid %s (no previous config)", target)
            with contextlib.suppress(FileNotFoundError):
                target.unlink()

    # ------------------ public API ------------------

    def reconcile(
        self,
        intent: NetworkIntent,
        classification: InterfaceClassification,
    ) -> ReconcileOutcome:
        intent.check_gateway()

        if self.is_converged(intent, classification):
            log.info("[network] Network already configured correctly (skip)")
            return ReconcileOutcome.SKIPPED

        target = self.paths.netplan_file
        backup = backup_file(target)
        if backup is not None:
            log.info("[network] Backed up existing config to %s", backup)

        strategy = self.backend_detector(self.runner)
        text = render_netplan(intent, classification, renderer=strategy.renderer)

        self.disable_cloud_init_network()

        log.info("[network] Writing netplan config (%s)", NetworkMode(intent.mode).value)
        log.info("[network]   cluster iface = %s", classification.cluster_iface)
        if classification.nat_iface:
            log.info("[network]   nat iface     = %s", classification.nat_iface)
        target.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(target, text, mode=0o600)

        self.fix_permissions()

        result = self.runner.run(["netplan", "generate"])
        if result.returncode != 0:
            log.error("[network] Generated netplan config %s is invalid", target)
            self.rollback(backup)
            raise ConfigGenerationError(
                f"netplan generate rejected {target}: {(result.stderr or '').strip()}"
            )

        log.info("[network] Applying netplan via %s...", strategy.renderer)
        strategy.apply(self.runner)

        log.info("[network] Network configured successfully (%s)", NetworkMode(intent.mode).value)
        log.info("[network] Reboot is recommended")
        return ReconcileOutcome.APPLIED
