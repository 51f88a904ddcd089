# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/trust/distributor.py
from __future__ import annotations

import logging
from typing import Optional

from clusterprep.config.models import ClusterNode, ClusterRoster, TrustConfig
from clusterprep.errors import ConnectivityError
from clusterprep.utils.execution import CommandRunner

from . import probes
from .keys import KeyStore, authorize_key, ensure_key_pair
from .models import KeyPair, SyncReport, TrustAttempt, TrustOutcome

log = logging.getLogger("clusterprep")


class FleetTrustDistributor:
    """
    Distributes the coordinator's public key to every roster peer.

    Peers are processed one at a time: ping -> ssh port -> host key ->
    key login -> ssh-copy-id. A peer that fails any step is recorded and the
    loop moves on; only the final SyncReport decides success.
    """

    def __init__(
        self,
        store: KeyStore,
        coordinator: str = "master",
        settings: Optional[TrustConfig] = None,
        runner: Optional[CommandRunner] = None,
        role: str = "master",
    ):
        self.store = store
        self.coordinator = coordinator
        self.settings = settings or TrustConfig()
        self.runner = runner or CommandRunner(label="trust")
        self.role = role

    # ------------------ setup ------------------

    def prepare(self, local_user: str) -> KeyPair:
        keys = ensure_key_pair(self.store, comment=f"{local_user}@{self.role}", bits=self.settings.key_bits)
        authorize_key(self.store, keys.public_line())
        return keys

    # ------------------ per node ------------------

    def _key_login(self, node: ClusterNode, local_user: str, keys: KeyPair, command: Optional[str] = None) -> bool:
        return probes.try_key_auth(
            node.ip,
            local_user,
            keys.private_key,
            port=self.settings.ssh_port,
            known_hosts=self.store.known_hosts,
            timeout=self.settings.auth_timeout,
            command=command,
        )

    def trust_node(self, node: ClusterNode, local_user: str, keys: KeyPair) -> TrustAttempt:
        try:
            return self._trust_node(node, local_user, keys)
        except ConnectivityError as exc:
            return TrustAttempt(node, TrustOutcome(exc.outcome), detail=exc.detail)

    def _trust_node(self, node: ClusterNode, local_user: str, keys: KeyPair) -> TrustAttempt:
        label = f"{node.hostname} ({node.ip})"

        if not probes.ping_host(self.runner, node.ip, timeout=self.settings.ping_timeout):
            log.warning("[trust] Cannot reach %s - skipping", label)
            raise ConnectivityError(f"{label} unreachable", TrustOutcome.SKIPPED_UNREACHABLE)
        log.info("[trust] %s is reachable", label)

        if not probes.port_open(node.ip, self.settings.ssh_port, timeout=self.settings.port_timeout):
            log.warning("[trust] SSH port (%d) is not open on %s - skipping", self.settings.ssh_port, label)
            raise ConnectivityError(f"{label} ssh port closed", TrustOutcome.SKIPPED_PORT_CLOSED)
        log.info("[trust] SSH port is open")

        probes.register_host_key(self.runner, self.store.known_hosts, node.ip)

        if self._key_login(node, local_user, keys):
            log.info("[trust] Passwordless SSH already configured for %s (skip)", label)
            return TrustAttempt(node, TrustOutcome.ALREADY_TRUSTED)

        log.info("[trust] Configuring passwordless SSH for %s", label)
        log.info("[trust] You may be prompted for the password of %s@%s", local_user, node.ip)
        result = probes.copy_public_key(
            node.ip,
            local_user,
            keys.public_key,
            port=self.settings.ssh_port,
            connect_timeout=self.settings.copy_timeout,
        )

        # exit status decides success; the marker only tells added vs present
        if not result.ok:
            log.error("[trust] Failed to copy SSH key to %s", label)
            detail = None
            if not result.auth_rejected:
                detail = result.tail() or None
                if detail:
                    log.error("[trust] Details: %s", detail)
            raise ConnectivityError(
                f"{label} key copy failed", TrustOutcome.FAILED, detail=detail or f"rc={result.returncode}"
            )

        if not result.key_added:
            log.info("[trust] SSH key was already present on %s", label)
            return TrustAttempt(node, TrustOutcome.ALREADY_TRUSTED)

        log.info("[trust] Successfully copied SSH key to %s", label)
        if self._key_login(node, local_user, keys, command="true"):
            log.info("[trust] Passwordless SSH verified for %s", label)
        else:
            log.warning("[trust] SSH key copied but passwordless login failed for %s", label)
            log.warning("[trust] This might indicate permission issues on remote authorized_keys")
        return TrustAttempt(node, TrustOutcome.SUCCEEDED)

    # ------------------ public API ------------------

    def distribute(self, roster: ClusterRoster, local_user: str) -> SyncReport:
        log.info("[trust] Starting SSH key synchronization (user=%s)", local_user)
        keys = self.prepare(local_user)

        report = SyncReport()
        peers = [n for n in roster.nodes if n.hostname != self.coordinator]
        for i, node in enumerate(peers, 1):
            log.info("[trust] Processing %s (%s) (%d/%d)", node.hostname, node.ip, i, len(peers))
            report.attempts.append(self.trust_node(node, local_user, keys))

        log_summary(report)
        return report


def log_summary(report: SyncReport) -> None:
    log.info("[trust] SSH key synchronization summary")
    log.info("[trust]   peers:      %d", report.peers)
    log.info("[trust]   attempted:  %d", report.total)
    log.info("[trust]   successful: %d", report.succeeded)
    log.info("[trust]   already:    %d", len(report.by_outcome(TrustOutcome.ALREADY_TRUSTED)))
    log.info("[trust]   failed:     %d", len(report.failures))
    for attempt in report.failures:
        log.warning("[trust]   - %s", attempt.describe())

    if report.peers == 0:
        log.info("[trust] No peers in roster besides the coordinator")
    elif report.succeeded == report.peers:
        log.info("[trust] All peers configured successfully")
    elif report.succeeded > 0:
        log.warning("[trust] Partial success: %d/%d peers configured", report.succeeded, report.peers)
    else:
        log.error("[trust] Failed to configure any peer")
