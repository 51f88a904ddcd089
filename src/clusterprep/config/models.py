# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/config/models.py
from __future__ import annotations

import ipaddress
import re
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clusterprep.errors import SubnetMismatchError, ValidationError

HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")

DEFAULT_ROSTER = [
    "192.168.100.101 master",
    "192.168.100.102 worker1",
    "192.168.100.103 worker2",
    "192.168.100.104 worker3",
    "192.168.100.105 worker4",
]


class Role(str, Enum):
    MASTER = "master"
    WORKER = "worker"


class NetworkMode(str, Enum):
    OFFLINE = "offline"
    ONLINE = "online"


def validate_hostname(hostname: str) -> str:
    if not hostname:
        raise ValidationError("Hostname cannot be empty")
    if not HOSTNAME_RE.match(hostname):
        raise ValidationError(
            f"Invalid hostname: {hostname!r} (must be 1-63 characters, "
            "alphanumeric or hyphen, and not start or end with a hyphen)"
        )
    return hostname


class NetworkIntent(BaseModel):
    """Desired static address, gateway and mode for the cluster interface."""

    model_config = ConfigDict(frozen=True)

    address_cidr: str
    gateway: str
    mode: NetworkMode = NetworkMode.OFFLINE

    @property
    def interface(self) -> ipaddress.IPv4Interface | ipaddress.IPv6Interface:
        return ipaddress.ip_interface(self.address_cidr)

    @property
    def network(self) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
        return self.interface.network

    def check_gateway(self) -> None:
        """Raise SubnetMismatchError unless gateway is inside network(address_cidr)."""
        if "/" not in self.address_cidr:
            raise ValidationError(
                f"static address must include a prefix length (e.g. 192.168.100.101/24): "
                f"{self.address_cidr}"
            )
        try:
            net = self.network
            gw = ipaddress.ip_address(self.gateway)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if gw not in net:
            raise SubnetMismatchError(
                f"Gateway {self.gateway} is not in subnet {net} of {self.address_cidr}"
            )


class InterfaceClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    cluster_iface: str
    nat_iface: Optional[str] = None


class ClusterNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    ip: str
    hostname: str

    @field_validator("ip")
    @classmethod
    def _ip(cls, v: str) -> str:
        ipaddress.ip_address(v)
        return v

    @classmethod
    def parse(cls, entry: str) -> "ClusterNode":
        parts = entry.split()
        if len(parts) != 2:
            raise ValidationError(f"Roster entry must be 'ip hostname': {entry!r}")
        return cls(ip=parts[0], hostname=parts[1])

    def line(self) -> str:
        return f"{self.ip} {self.hostname}"


class ClusterRoster(BaseModel):
    """Ordered, immutable list of cluster members. Unique by hostname."""

    model_config = ConfigDict(frozen=True)

    nodes: Tuple[ClusterNode, ...] = ()

    @model_validator(mode="after")
    def _unique(self) -> "ClusterRoster":
        seen = set()
        for n in self.nodes:
            if n.hostname in seen:
                raise ValueError(f"duplicate hostname in roster: {n.hostname}")
            seen.add(n.hostname)
        return self

    @classmethod
    def from_entries(cls, entries: List[str]) -> "ClusterRoster":
        try:
            return cls(nodes=tuple(ClusterNode.parse(e) for e in entries))
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid roster: {exc}") from exc

    def hostnames(self) -> List[str]:
        return [n.hostname for n in self.nodes]

    def render(self) -> str:
        return "\n".join(n.line() for n in self.nodes)


class SecurityDirective(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str


DEFAULT_DIRECTIVES = [
    SecurityDirective(name="PubkeyAuthentication", value="yes"),
    SecurityDirective(name="PasswordAuthentication", value="yes"),
    SecurityDirective(name="PermitRootLogin", value="no"),
]


class PathsConfig(BaseModel):
    """Every file or directory touched on the host. Overridable for tests."""

    netplan_dir: Path = Path("/etc/netplan")
    netplan_file: Path = Path("/etc/netplan/99-static-ip.yaml")
    cloud_cfg_dir: Path = Path("/etc/cloud/cloud.cfg.d")
    sshd_config: Path = Path("/etc/ssh/sshd_config")
    hosts_file: Path = Path("/etc/hosts")
    os_release: Path = Path("/etc/os-release")
    fstab: Path = Path("/etc/fstab")
    limits_file: Path = Path("/etc/security/limits.d/99-clusterprep.conf")
    thp_enabled: Path = Path("/sys/kernel/mm/transparent_hugepage/enabled")
    ssh_dir: Optional[Path] = None  # defaults to ~<local user>/.ssh


class TrustConfig(BaseModel):
    ssh_port: int = 22
    ping_timeout: int = 2
    port_timeout: float = 3.0
    auth_timeout: float = 5.0
    copy_timeout: int = 10
    key_bits: int = 4096


class ClusterprepConfig(BaseModel):
    roster: List[str] = Field(default_factory=lambda: list(DEFAULT_ROSTER))
    # hostname that skips itself during trust distribution; defaults to --hostname
    coordinator: Optional[str] = None
    directives: List[SecurityDirective] = Field(default_factory=lambda: list(DEFAULT_DIRECTIVES))
    paths: PathsConfig = Field(default_factory=PathsConfig)
    trust: TrustConfig = Field(default_factory=TrustConfig)

    def cluster_roster(self) -> ClusterRoster:
        return ClusterRoster.from_entries(self.roster)

    def sorted_directives(self) -> List[Tuple[str, str]]:
        return sorted((d.name, d.value) for d in self.directives)
