# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/identity/hosts.py
from __future__ import annotations

import logging
import re
from pathlib import Path

from clusterprep.config.models import ClusterRoster
from clusterprep.utils.files import ManagedTextBlock, atomic_write_text, backup_file

log = logging.getLogger("clusterprep")

BLOCK_START = "# >>> Cluster IP List"
BLOCK_END = "# <<< Cluster IP List"


def comment_loopback_alias(text: str, hostname: str) -> str:
    """
    Comment out ``127.0.1.1 <hostname>`` so the node's own name resolves to
    its cluster address instead of loopback.
    """
    pattern = re.compile(rf"^\s*127\.0\.1\.1\s+{re.escape(hostname)}(?=\s|$)")
    out = []
    for line in text.splitlines(keepends=True):
        if pattern.match(line):
            line = pattern.sub(f"# 127.0.1.1 {hostname}", line, count=1)
        out.append(line)
    return "".join(out)


def roster_block(roster: ClusterRoster) -> ManagedTextBlock:
    return ManagedTextBlock(BLOCK_START, BLOCK_END, roster.render().rstrip("\n"))


def render_hosts(text: str, hostname: str, roster: ClusterRoster) -> str:
    return roster_block(roster).apply(comment_loopback_alias(text, hostname))


def update_hosts_file(hosts_file: Path, hostname: str, roster: ClusterRoster) -> bool:
    """
    Rewrite the managed roster block in *hosts_file*.
    Returns False when the file was already up to date.
    """
    text = hosts_file.read_text() if hosts_file.exists() else ""
    new_text = render_hosts(text, hostname, roster)
    if new_text == text:
        log.info("[identity] %s already up to date (skip)", hosts_file)
        return False

    backup = backup_file(hosts_file)
    if backup is not None:
        log.info("[identity] Backed up hosts file to %s", backup)
    atomic_write_text(hosts_file, new_text, mode=0o644 if backup is None else None)
    log.info("[identity] Updated cluster block in %s (%d nodes)", hosts_file, len(roster.nodes))
    return True
