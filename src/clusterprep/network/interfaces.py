# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/network/interfaces.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from clusterprep.config.models import InterfaceClassification, NetworkMode
from clusterprep.errors import NoInterfaceError
from clusterprep.utils.execution import CommandRunner

log = logging.getLogger("clusterprep")

# container / overlay / tunnel devices never carry the cluster address
VIRTUAL_PREFIXES = (
    "docker", "br-", "veth", "virbr", "tun", "tap",
    "cni", "flannel", "cali", "vxlan", "wg", "lxc",
)
# plain bridges such as br0, br1
BRIDGE_RE = re.compile(r"^br\d+$")


@dataclass(frozen=True)
class DefaultRoute:
    gateway: Optional[str]
    device: Optional[str]


def list_interfaces(runner: CommandRunner) -> List[str]:
    """
    Usable interface names from `ip -o link show`, in kernel order.
    Loopback and virtual devices are excluded; `eth0@if12` becomes `eth0`.
    """
    out = runner.output(["ip", "-o", "link", "show"])
    names: List[str] = []
    for line in out.splitlines():
        parts = line.split(": ", 2)
        if len(parts) < 2:
            continue
        name = parts[1].strip().split("@", 1)[0]
        if not name or name == "lo" or name.startswith(VIRTUAL_PREFIXES) or BRIDGE_RE.match(name):
            continue
        if name not in names:
            names.append(name)
    return names


def default_route(runner: CommandRunner) -> Optional[DefaultRoute]:
    """
    First route from `ip route show default`, e.g.
    ``default via 10.0.2.2 dev enp0s3 proto dhcp metric 100``.
    """
    out = runner.output(["ip", "route", "show", "default"])
    for line in out.splitlines():
        tokens = line.split()
        if not tokens or tokens[0] != "default":
            continue
        gw = tokens[tokens.index("via") + 1] if "via" in tokens[:-1] else None
        dev = tokens[tokens.index("dev") + 1] if "dev" in tokens[:-1] else None
        return DefaultRoute(gateway=gw, device=dev)
    return None


def current_address(runner: CommandRunner, iface: str) -> Optional[str]:
    """First IPv4 address (CIDR form) on *iface*, or None."""
    out = runner.output(["ip", "-o", "-4", "addr", "show", iface])
    for line in out.splitlines():
        tokens = line.split()
        if "inet" in tokens[:-1]:
            return tokens[tokens.index("inet") + 1]
    return None


def resolve_interfaces(mode: NetworkMode, runner: CommandRunner) -> InterfaceClassification:
    """
    Pick the cluster-facing interface and, in online mode, the NAT interface
    currently holding the default route.
    """
    mode = NetworkMode(mode)
    candidates = list_interfaces(runner)
    if not candidates:
        raise NoInterfaceError("No usable network interfaces found")

    if mode == NetworkMode.OFFLINE:
        return InterfaceClassification(cluster_iface=candidates[0])

    route = default_route(runner)
    if route is None or not route.device:
        raise NoInterfaceError("online mode requires a default route (NAT interface)")
    nat_iface = route.device

    cluster_iface = next((i for i in candidates if i != nat_iface), None)
    if cluster_iface is None:
        raise NoInterfaceError(
            f"Unable to determine cluster interface (only {nat_iface} is available)"
        )
    if nat_iface not in candidates:
        raise NoInterfaceError(
            f"NAT interface {nat_iface} not found in available interfaces: {', '.join(candidates)}"
        )
    return InterfaceClassification(cluster_iface=cluster_iface, nat_iface=nat_iface)
