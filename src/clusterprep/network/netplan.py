# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/network/netplan.py
from __future__ import annotations

import yaml

from clusterprep.config.models import InterfaceClassification, NetworkIntent, NetworkMode
from clusterprep.errors import ConfigGenerationError, ValidationError
from clusterprep.template_renderer import TemplateRenderer


def render_netplan(
    intent: NetworkIntent,
    classification: InterfaceClassification,
    renderer: str,
    templates: TemplateRenderer | None = None,
) -> str:
    """
    Render the netplan v2 document for *intent*.

    offline: the cluster interface is static with a default route via the gateway
    online:  the cluster interface is static, the NAT interface uses DHCP and
             owns the default route
    """
    templates = templates or TemplateRenderer()
    ctx = {
        "renderer": renderer,
        "cluster_iface": classification.cluster_iface,
        "address_cidr": intent.address_cidr,
        "gateway": intent.gateway,
    }
    if NetworkMode(intent.mode) == NetworkMode.ONLINE:
        if not classification.nat_iface:
            raise ValidationError("online mode requires a NAT interface")
        ctx["nat_iface"] = classification.nat_iface
        name = "netplan-online.yaml.j2"
    else:
        name = "netplan-offline.yaml.j2"

    text = templates.render(name, ctx)

    # interface names come from `ip link`; make sure they did not break the YAML
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigGenerationError(f"rendered netplan is not valid YAML: {exc}") from exc
    ethernets = (doc or {}).get("network", {}).get("ethernets", {})
    if classification.cluster_iface not in ethernets:
        raise ConfigGenerationError("rendered netplan is missing the cluster interface")
    return text
