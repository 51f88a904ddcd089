# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/coordinator.py
from __future__ import annotations

import contextlib
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

import pydantic
from pydantic import BaseModel, model_validator

from clusterprep.config.models import (
    ClusterprepConfig,
    ClusterRoster,
    NetworkIntent,
    NetworkMode,
    Role,
    validate_hostname,
)
from clusterprep.errors import ClusterprepError, ValidationError
from clusterprep.identity.reconciler import IdentityReconciler, IdentityReport
from clusterprep.network.interfaces import resolve_interfaces
from clusterprep.network.reconciler import NetworkReconciler, ReconcileOutcome
from clusterprep.observers.dispatcher import EventBus
from clusterprep.observers.events import (
    CHANGED,
    FAILED,
    SKIPPED,
    STARTED,
    SUCCEEDED,
    stage_event,
    trust_summary,
)
from clusterprep.preflight import LocalUser, check_os, require_root, resolve_local_user
from clusterprep.trust.distributor import FleetTrustDistributor
from clusterprep.trust.keys import KeyStore
from clusterprep.trust.models import SyncReport
from clusterprep.tuning import SystemTuner, TuningReport
from clusterprep.utils.execution import CommandRunner

log = logging.getLogger("clusterprep")


class BootstrapRequest(BaseModel):
    """What a single `clusterprep bootstrap` invocation asks for."""

    role: Optional[Role] = None
    hostname: Optional[str] = None
    static_ip: Optional[str] = None
    gateway: Optional[str] = None
    mode: NetworkMode = NetworkMode.OFFLINE
    sync: bool = False
    skip_tuning: bool = False

    @model_validator(mode="after")
    def _check(self) -> "BootstrapRequest":
        if self.static_ip is not None and "/" not in self.static_ip:
            raise ValueError(
                f"--static-ip must be in CIDR form (e.g. 192.168.100.101/24): {self.static_ip}"
            )
        if self.static_ip is not None and not self.gateway:
            raise ValueError("--gateway is required when using --static-ip")
        if self.role is not None and not self.hostname:
            raise ValueError("--hostname is required when --role is specified")
        if self.sync and self.role != Role.MASTER:
            raise ValueError("--sync can only be used with --role master")
        return self

    @classmethod
    def build(cls, **kwargs) -> "BootstrapRequest":
        """Construct and convert pydantic errors into our ValidationError."""
        try:
            req = cls(**kwargs)
        except pydantic.ValidationError as exc:
            msgs = "; ".join(e["msg"].removeprefix("Value error, ") for e in exc.errors())
            raise ValidationError(msgs) from exc
        if req.hostname:
            validate_hostname(req.hostname)
        return req

    def network_intent(self) -> Optional[NetworkIntent]:
        if self.static_ip is None:
            return None
        return NetworkIntent(
            address_cidr=self.static_ip,
            gateway=self.gateway,
            mode=self.mode,
        )

    @property
    def is_empty(self) -> bool:
        return self.static_ip is None and self.role is None and not self.sync


@dataclass
class BootstrapResult:
    network: Optional[ReconcileOutcome] = None
    identity: Optional[IdentityReport] = None
    tuning: Optional[TuningReport] = None
    trust: Optional[SyncReport] = None

    @property
    def ran_anything(self) -> bool:
        return any(x is not None for x in (self.network, self.identity, self.tuning, self.trust))


@contextlib.contextmanager
def terminate_on_signals(signums=(signal.SIGTERM, signal.SIGHUP)) -> Iterator[None]:
    """
    Turn SIGTERM/SIGHUP into SystemExit while the block runs, so context
    managers (temp files, open clients) unwind normally. Previous handlers
    are restored on exit.
    """

    def _raise(signum, _frame):
        raise SystemExit(128 + signum)

    previous = {}
    for s in signums:
        try:
            previous[s] = signal.signal(s, _raise)
        except ValueError:
            # not the main thread
            pass
    try:
        yield
    finally:
        for s, handler in previous.items():
            signal.signal(s, handler)


class Bootstrap:
    """
    Runs the requested stages in order: network -> identity -> tuning -> trust.

    Each stage emits STARTED then CHANGED/SKIPPED/SUCCEEDED or FAILED on the
    event bus; the first fatal error stops the run.
    """

    def __init__(
        self,
        config: ClusterprepConfig,
        bus: Optional[EventBus] = None,
        run_id: str = "local",
        host: str = "localhost",
        runner: Optional[CommandRunner] = None,
        user_resolver: Callable[[], LocalUser] = resolve_local_user,
    ):
        self.config = config
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.host = host
        self.runner = runner
        self.user_resolver = user_resolver

    def _emit(self, stage: str, status: str, message: str = "", error: Optional[str] = None) -> None:
        self.bus.emit(stage_event(self.run_id, self.host, stage, status, message, error))

    @contextlib.contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        self._emit(name, STARTED)
        try:
            yield
        except ClusterprepError as exc:
            log.error("[%s] %s", name, exc)
            self._emit(name, FAILED, error=str(exc))
            raise

    # ------------------ stages ------------------

    def network(self, intent: NetworkIntent) -> ReconcileOutcome:
        with self._stage("network"):
            log.info("[network] Configuring static IP %s via %s (mode=%s)",
                     intent.address_cidr, intent.gateway, NetworkMode(intent.mode).value)
            intent.check_gateway()
            reconciler = NetworkReconciler(paths=self.config.paths, runner=self.runner)
            classification = resolve_interfaces(NetworkMode(intent.mode), reconciler.runner)
            outcome = reconciler.reconcile(intent, classification)
            self._emit("network", CHANGED if outcome == ReconcileOutcome.APPLIED else SKIPPED, outcome.value)
            return outcome

    def identity(self, role: Role, hostname: str) -> IdentityReport:
        with self._stage("identity"):
            reconciler = IdentityReconciler(
                paths=self.config.paths,
                runner=self.runner,
                directives=self.config.sorted_directives(),
            )
            report = reconciler.reconcile(role, hostname, self.config.cluster_roster())
            self._emit("identity", CHANGED if report.changed else SKIPPED)
            return report

    def tuning(self) -> TuningReport:
        with self._stage("tuning"):
            report = SystemTuner(paths=self.config.paths, runner=self.runner).apply()
            self._emit("tuning", CHANGED if report.changed else SKIPPED, ",".join(report.changed))
            return report

    def trust(self, role: Role, coordinator: str) -> SyncReport:
        with self._stage("trust"):
            user = self.user_resolver()
            ssh_dir = self.config.paths.ssh_dir or (user.home / ".ssh")
            store = KeyStore(ssh_dir=Path(ssh_dir), uid=user.uid, gid=user.gid)
            distributor = FleetTrustDistributor(
                store,
                coordinator=coordinator,
                settings=self.config.trust,
                runner=self.runner,
                role=role.value,
            )
            report = distributor.distribute(self.config.cluster_roster(), user.name)
            self.bus.emit(trust_summary(
                self.run_id, self.host,
                total=report.total, succeeded=report.succeeded,
                failed=len(report.failures), ok=report.ok,
            ))
            report.raise_for_outcome()
            self._emit("trust", SUCCEEDED, f"{report.succeeded}/{report.peers}")
            return report

    def resolve_coordinator(self, hostname: str, roster: ClusterRoster) -> str:
        """
        The roster hostname of this node, which trust distribution skips.
        A configured coordinator must name the same node as --hostname.
        """
        coordinator = self.config.coordinator or hostname
        if coordinator != hostname:
            raise ValidationError(
                f"Configured coordinator {coordinator!r} does not match --hostname {hostname!r}"
            )
        if coordinator not in roster.hostnames():
            raise ValidationError(f"Coordinator {coordinator!r} is not in the cluster roster")
        return coordinator

    # ------------------ public API ------------------

    def run(self, request: BootstrapRequest) -> BootstrapResult:
        result = BootstrapResult()
        intent = request.network_intent()

        # validation happens up front, before any stage has side effects
        if intent is not None:
            intent.check_gateway()
        coordinator = None
        if request.role is not None or request.sync:
            roster = self.config.cluster_roster()
            if not roster.nodes:
                raise ValidationError("Cluster roster is empty")
            if request.sync:
                coordinator = self.resolve_coordinator(request.hostname, roster)

        with terminate_on_signals():
            if intent is not None:
                result.network = self.network(intent)

            if request.role is not None and request.hostname:
                result.identity = self.identity(request.role, request.hostname)
                if request.skip_tuning:
                    self._emit("tuning", SKIPPED, "--skip-tuning")
                else:
                    result.tuning = self.tuning()

            if request.sync:
                result.trust = self.trust(request.role, coordinator)

        if not result.ran_anything:
            log.warning("No setup action executed")
        return result


def run_preflight(config: ClusterprepConfig) -> str:
    os_id = check_os(config.paths.os_release)
    require_root()
    log.debug("[preflight] os=%s", os_id)
    return os_id


def run_bootstrap(
    request: BootstrapRequest,
    config: ClusterprepConfig,
    *,
    bus: Optional[EventBus] = None,
    run_id: str = "local",
    preflight: bool = True,
) -> BootstrapResult:
    if preflight:
        run_preflight(config)
    host = request.hostname or "localhost"
    return Bootstrap(config, bus=bus, run_id=run_id, host=host).run(request)
