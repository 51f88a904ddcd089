# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/identity/reconciler.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from clusterprep.config.models import (
    DEFAULT_DIRECTIVES,
    ClusterRoster,
    PathsConfig,
    Role,
    validate_hostname,
)
from clusterprep.errors import ServiceConfigError, ValidationError
from clusterprep.utils.execution import CommandRunner
from clusterprep.utils.files import atomic_write_text, backup_file, restore_file

from .hosts import update_hosts_file
from .sshd import patch_directives

log = logging.getLogger("clusterprep")

SSH_SERVICE = "ssh"
SSH_PACKAGES = ["openssh-server", "openssh-client"]


@dataclass
class IdentityReport:
    sshd_changed: List[str] = field(default_factory=list)
    hostname_changed: bool = False
    hosts_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.sshd_changed) or self.hostname_changed or self.hosts_changed


class IdentityReconciler:
    """
    Brings SSH, hostname and /etc/hosts in line with the node's role:

    - openssh installed, enabled and started (best effort)
    - fixed sshd security directives, validated with `sshd -t`
    - hostname via hostnamectl, only when it differs
    - roster block in /etc/hosts, loopback alias for the hostname commented out
    """

    def __init__(
        self,
        paths: Optional[PathsConfig] = None,
        runner: Optional[CommandRunner] = None,
        directives: Optional[Sequence[Tuple[str, str]]] = None,
    ):
        self.paths = paths or PathsConfig()
        self.runner = runner or CommandRunner(label="identity")
        if directives is None:
            directives = [(d.name, d.value) for d in DEFAULT_DIRECTIVES]
        self.directives = sorted(directives)

    # ------------------ ssh service ------------------

    def ensure_ssh_service(self) -> None:
        if not self.runner.ok(["systemctl", "is-enabled", SSH_SERVICE]):
            log.info("[identity] Installing OpenSSH...")
            self.runner.run(["apt-get", "update", "-qq"])
            result = self.runner.run(
                ["apt-get", "install", "-y", *SSH_PACKAGES],
                timeout=900,
            )
            if result.returncode != 0:
                log.warning("[identity] openssh install returned rc=%s", result.returncode)
        self.runner.run(["systemctl", "enable", SSH_SERVICE])
        self.runner.run(["systemctl", "start", SSH_SERVICE])

    def reconcile_sshd(self) -> List[str]:
        cfg = self.paths.sshd_config
        existed = cfg.exists()
        original = cfg.read_text() if existed else ""

        patch = patch_directives(original, self.directives)
        backup = None
        if patch.is_changed:
            # taken from the untouched file, before the patched text lands
            backup = backup_file(cfg)
            if backup is not None:
                log.info("[identity] Backed up sshd_config to %s", backup)
            cfg.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(cfg, patch.text, mode=None if existed else 0o644)

        result = self.runner.run(["sshd", "-t", "-f", str(cfg)])
        if result.returncode != 0:
            log.error("[identity] sshd_config validation failed: %s", (result.stderr or "").strip())
            if backup is not None:
                log.warning("[identity] Restoring %s from %s", cfg, backup)
                restore_file(backup, cfg)
                self.runner.run(["systemctl", "reload", SSH_SERVICE])
            elif patch.is_changed and not existed:
                log.warning("[identity] Removing newly created %s", cfg)
                cfg.unlink(missing_ok=True)
            raise ServiceConfigError(f"{cfg} failed validation (sshd -t)")

        if patch.is_changed:
            log.info("[identity] sshd_config valid, reloading ssh")
            self.runner.run(["systemctl", "reload", SSH_SERVICE])
        return patch.changed

    # ------------------ hostname ------------------

    def reconcile_hostname(self, hostname: str) -> bool:
        current = self.runner.output(["hostname"]).strip()
        if current == hostname:
            log.info("[identity] Hostname already set: %s", hostname)
            return False
        log.info("[identity] Setting hostname: %s (was %s)", hostname, current or "unknown")
        self.runner.run(["hostnamectl", "set-hostname", hostname], check=True)
        return True

    # ------------------ public API ------------------

    def reconcile(self, role: Role | str, hostname: str, roster: ClusterRoster) -> IdentityReport:
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"role must be 'master' or 'worker', got {role!r}") from None
        validate_hostname(hostname)
        if not roster.nodes:
            raise ValidationError("Cluster roster is empty")

        log.info("[identity] Setting up SSH & hostname for role=%s", role.value)
        report = IdentityReport()

        self.ensure_ssh_service()
        report.sshd_changed = self.reconcile_sshd()
        report.hostname_changed = self.reconcile_hostname(hostname)
        report.hosts_changed = update_hosts_file(self.paths.hosts_file, hostname, roster)

        log.info("[identity] SSH & hostname setup completed for %s", role.value)
        return report
