# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/identity/sshd.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

log = logging.getLogger("clusterprep")


def _directive_re(name: str) -> re.Pattern:
    # matches "Key value", "#Key value" and "  # Key value"
    return re.compile(rf"^\s*#?\s*{re.escape(name)}\s+(\S+)")


def effective_value(lines: Sequence[str], name: str) -> Optional[str]:
    """Value on the last line matching *name*, commented or not."""
    pattern = _directive_re(name)
    value = None
    for line in lines:
        m = pattern.match(line)
        if m:
            value = m.group(1)
    return value


@dataclass
class PatchResult:
    text: str
    changed: List[str] = field(default_factory=list)

    @property
    def is_changed(self) -> bool:
        return bool(self.changed)


def patch_directives(text: str, directives: Sequence[Tuple[str, str]]) -> PatchResult:
    """
    Reconcile *directives* against an sshd_config body.

    For every (name, desired) pair, in sorted order: skip when the effective
    value already matches; otherwise rewrite every matching line to
    ``name desired`` or append it when no line mentions the directive.
    """
    lines = text.splitlines()
    changed: List[str] = []

    for name, desired in sorted(directives):
        current = effective_value(lines, name)
        if current == desired:
            log.info("[identity] sshd: %s already %s (skip)", name, desired)
            continue

        log.info("[identity] sshd: setting %s %s", name, desired)
        pattern = _directive_re(name)
        replaced = False
        for i, line in enumerate(lines):
            if pattern.match(line):
                lines[i] = f"{name} {desired}"
                replaced = True
        if not replaced:
            lines.append(f"{name} {desired}")
        changed.append(name)

    if not changed:
        return PatchResult(text=text)
    return PatchResult(text="\n".join(lines) + "\n", changed=changed)
