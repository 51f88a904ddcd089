import os
import signal
from pathlib import Path

import pytest

from clusterprep.config.models import ClusterprepConfig, NetworkMode, Role, TrustConfig
from clusterprep.coordinator import (
    Bootstrap,
    BootstrapRequest,
    run_bootstrap,
    terminate_on_signals,
)
from clusterprep.errors import AggregateFailure, SubnetMismatchError, ValidationError
from clusterprep.observers.dispatcher import EventBus
from clusterprep.observers.events import StageEvent, TrustSummary
from clusterprep.preflight import LocalUser
from clusterprep.trust import probes
from clusterprep.trust.distributor import FleetTrustDistributor
from clusterprep.trust.models import SyncReport, TrustAttempt, TrustOutcome

LINKS = "1: lo: <LOOPBACK,UP> mtu 65536\n2: enp0s8: <BROADCAST,UP> mtu 1500\n"


class ListObserver:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def stages(self):
        return [(e.stage, e.status) for e in self.events if isinstance(e, StageEvent)]


def _config(host_paths) -> ClusterprepConfig:
    return ClusterprepConfig(
        roster=["192.168.100.101 master", "192.168.100.102 worker1"],
        paths=host_paths,
    )


# ------------------ request validation ------------------

def test_request_requires_cidr():
    with pytest.raises(ValidationError, match="CIDR"):
        BootstrapRequest.build(static_ip="192.168.100.101")


def test_request_role_requires_hostname():
    with pytest.raises(ValidationError, match="--hostname"):
        BootstrapRequest.build(role="worker")


@pytest.mark.parametrize("role", [None, "worker"])
def test_sync_requires_master(role):
    with pytest.raises(ValidationError, match="--sync"):
        BootstrapRequest.build(role=role, hostname="n1", sync=True)


def test_request_rejects_bad_hostname():
    with pytest.raises(ValidationError):
        BootstrapRequest.build(role="master", hostname="bad_host")


def test_static_ip_requires_gateway():
    with pytest.raises(ValidationError, match="--gateway is required"):
        BootstrapRequest.build(static_ip="192.168.100.101/24")


def test_network_intent_carries_gateway_and_mode():
    req = BootstrapRequest.build(static_ip="192.168.100.101/24", gateway="192.168.100.1")
    intent = req.network_intent()
    assert intent.gateway == "192.168.100.1"
    assert intent.mode == NetworkMode.OFFLINE


def test_gateway_outside_subnet_fails_before_side_effects(spy, host_paths):
    req = BootstrapRequest.build(static_ip="10.5.0.20/24", gateway="10.9.0.1")
    with pytest.raises(SubnetMismatchError):
        run_bootstrap(req, _config(host_paths), preflight=False)
    assert spy.calls == []


def test_empty_request():
    req = BootstrapRequest.build()
    assert req.is_empty


# ------------------ stage ordering ------------------

def test_network_and_identity_stages(spy, host_paths):
    spy.when("ip", "-o", "link", "show", stdout=LINKS)
    spy.when("systemctl", "is-active", "--quiet", "NetworkManager", rc=3)
    host_paths.sshd_config.write_text("PasswordAuthentication no\n")

    obs = ListObserver()
    req = BootstrapRequest.build(
        role="master", hostname="master", static_ip="192.168.100.101/24",
        gateway="192.168.100.1", skip_tuning=True,
    )
    result = Bootstrap(_config(host_paths), bus=EventBus([obs])).run(req)

    assert result.network.value == "applied"
    assert result.identity.changed
    assert result.tuning is None and result.trust is None
    assert obs.stages() == [
        ("network", "STARTED"),
        ("network", "CHANGED"),
        ("identity", "STARTED"),
        ("identity", "CHANGED"),
        ("tuning", "SKIPPED"),
    ]
    assert host_paths.netplan_file.exists()
    assert "192.168.100.102 worker1" in host_paths.hosts_file.read_text()


def test_failed_stage_emits_failed_and_stops(spy, host_paths):
    spy.when("ip", "-o", "link", "show", stdout=LINKS)
    spy.when("netplan", "generate", rc=1)

    obs = ListObserver()
    req = BootstrapRequest.build(
        role="master", hostname="master", static_ip="192.168.100.101/24", gateway="192.168.100.1",
    )
    with pytest.raises(Exception):
        Bootstrap(_config(host_paths), bus=EventBus([obs])).run(req)

    assert obs.stages() == [("network", "STARTED"), ("network", "FAILED")]
    assert not spy.called("hostnamectl")


def _trust_bootstrap(host_paths, obs, tmp_path):
    user = LocalUser(name="ops", home=tmp_path, uid=os.getuid(), gid=os.getgid())
    return Bootstrap(_config(host_paths), bus=EventBus([obs]), user_resolver=lambda: user)


def test_trust_stage_reports_summary(monkeypatch, host_paths, tmp_path: Path):
    seen = {}

    def fake_distribute(self, roster, local_user):
        seen["store"] = self.store
        seen["user"] = local_user
        node = roster.nodes[1]
        return SyncReport([TrustAttempt(node, TrustOutcome.SUCCEEDED)])

    monkeypatch.setattr(FleetTrustDistributor, "distribute", fake_distribute)
    obs = ListObserver()
    req = BootstrapRequest.build(role="master", hostname="master", sync=True, skip_tuning=True)
    monkeypatch.setattr(Bootstrap, "identity", lambda self, role, hostname: None)

    result = _trust_bootstrap(host_paths, obs, tmp_path).run(req)

    assert result.trust.ok
    assert seen["user"] == "ops"
    assert seen["store"].ssh_dir == host_paths.ssh_dir
    summaries = [e for e in obs.events if isinstance(e, TrustSummary)]
    assert summaries and summaries[0].succeeded == 1
    assert ("trust", "SUCCEEDED") in obs.stages()


def test_trust_stage_aggregate_failure(monkeypatch, host_paths, tmp_path: Path):
    def fake_distribute(self, roster, local_user):
        node = roster.nodes[1]
        return SyncReport([TrustAttempt(node, TrustOutcome.SKIPPED_UNREACHABLE)])

    monkeypatch.setattr(FleetTrustDistributor, "distribute", fake_distribute)
    monkeypatch.setattr(Bootstrap, "identity", lambda self, role, hostname: None)
    obs = ListObserver()
    req = BootstrapRequest.build(role=Role.MASTER, hostname="master", sync=True, skip_tuning=True)

    with pytest.raises(AggregateFailure):
        _trust_bootstrap(host_paths, obs, tmp_path).run(req)
    assert ("trust", "FAILED") in obs.stages()


def test_master_skips_its_own_hostname_not_a_fixed_name(monkeypatch, host_paths, tmp_path: Path):
    # self-trust would make the local node look already_trusted and mask the failed peer
    pinged = []

    def ping_host(runner, ip, timeout=2):
        pinged.append(ip)
        return ip == "192.168.100.101"

    monkeypatch.setattr(probes, "ping_host", ping_host)
    monkeypatch.setattr(probes, "port_open", lambda ip, port=22, timeout=3.0: True)
    monkeypatch.setattr(probes, "register_host_key", lambda *a, **kw: True)
    monkeypatch.setattr(probes, "try_key_auth", lambda *a, **kw: True)
    monkeypatch.setattr(Bootstrap, "identity", lambda self, role, hostname: None)

    config = ClusterprepConfig(
        roster=["192.168.100.101 nn1", "192.168.100.102 w1"],
        paths=host_paths,
        trust=TrustConfig(key_bits=1024),
    )
    user = LocalUser(name="ops", home=tmp_path, uid=os.getuid(), gid=os.getgid())
    obs = ListObserver()
    req = BootstrapRequest.build(role="master", hostname="nn1", sync=True, skip_tuning=True)

    with pytest.raises(AggregateFailure):
        Bootstrap(config, bus=EventBus([obs]), user_resolver=lambda: user).run(req)
    assert pinged == ["192.168.100.102"]
    summary = [e for e in obs.events if isinstance(e, TrustSummary)][0]
    assert summary.succeeded == 0 and not summary.ok


@pytest.mark.parametrize("roster, coordinator, match", [
    (["192.168.100.101 master", "192.168.100.102 worker1"], None, "not in the cluster roster"),
    (["192.168.100.101 nn1", "192.168.100.102 w1"], "master", "does not match --hostname"),
])
def test_sync_rejects_bad_coordinator_before_side_effects(spy, host_paths, roster, coordinator, match):
    config = ClusterprepConfig(roster=roster, coordinator=coordinator, paths=host_paths)
    req = BootstrapRequest.build(
        role="master", hostname="nn1", static_ip="192.168.100.101/24",
        gateway="192.168.100.1", sync=True,
    )
    with pytest.raises(ValidationError, match=match):
        Bootstrap(config).run(req)
    assert spy.calls == []
    assert not host_paths.netplan_file.exists()


def test_empty_roster_fails_before_network_stage(spy, host_paths):
    config = ClusterprepConfig(roster=[], paths=host_paths)
    req = BootstrapRequest.build(
        role="worker", hostname="w1", static_ip="192.168.100.101/24", gateway="192.168.100.1",
    )
    obs = ListObserver()
    with pytest.raises(ValidationError, match="roster is empty"):
        Bootstrap(config, bus=EventBus([obs])).run(req)
    assert spy.calls == []
    assert obs.events == []
    assert not host_paths.netplan_file.exists()


# ------------------ signals ------------------

def test_sigterm_becomes_system_exit_and_handler_is_restored():
    before = signal.getsignal(signal.SIGTERM)
    with pytest.raises(SystemExit):
        with terminate_on_signals():
            os.kill(os.getpid(), signal.SIGTERM)
    assert signal.getsignal(signal.SIGTERM) == before
