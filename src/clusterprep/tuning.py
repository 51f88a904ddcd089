# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/tuning.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from clusterprep.config.models import PathsConfig
from clusterprep.utils.execution import CommandRunner
from clusterprep.utils.files import ManagedTextBlock, atomic_write_text, backup_file

log = logging.getLogger("clusterprep")

LIMITS_BEGIN = "# >>> clusterprep limits"
LIMITS_END = "# <<< clusterprep limits"
LIMITS = [
    ("soft", "nofile", 65536),
    ("hard", "nofile", 65536),
    ("soft", "nproc", 32768),
    ("hard", "nproc", 32768),
]

THP_MODE = "madvise"
CHRONY = "chrony"

_SWAP_LINE = re.compile(r"^\s*[^#\s]\S*\s+\S+\s+swap\s")


def comment_swap_entries(text: str) -> str:
    """Comment out active swap entries in an fstab; commented lines are left alone."""
    out = []
    for line in text.splitlines():
        if _SWAP_LINE.match(line):
            line = "#" + line
        out.append(line)
    result = "\n".join(out)
    if text.endswith("\n"):
        result += "\n"
    return result


def limits_block() -> ManagedTextBlock:
    body = "\n".join(f"* {kind} {item} {value}" for kind, item, value in LIMITS)
    return ManagedTextBlock(LIMITS_BEGIN, LIMITS_END, body)


@dataclass
class TuningReport:
    changed: List[str] = field(default_factory=list)

    def note(self, step: str) -> None:
        self.changed.append(step)


class SystemTuner:
    """
    Base host tuning run after identity setup:
      - swap off (runtime and fstab)
      - open file / process limits
      - chrony time sync
      - ufw disabled
      - transparent huge pages = madvise
    """

    def __init__(self, paths: Optional[PathsConfig] = None, runner: Optional[CommandRunner] = None):
        self.paths = paths or PathsConfig()
        self.runner = runner or CommandRunner(label="tuning")

    def step_swap(self) -> bool:
        log.info("[tuning] Disabling swap...")
        self.runner.run(["swapoff", "-a"])

        fstab = self.paths.fstab
        if not fstab.exists():
            return False
        original = fstab.read_text()
        updated = comment_swap_entries(original)
        if updated == original:
            return False
        backup_file(fstab)
        atomic_write_text(fstab, updated)
        log.info("[tuning] Commented swap entries in %s", fstab)
        return True

    def step_limits(self) -> bool:
        target = self.paths.limits_file
        original = target.read_text() if target.exists() else ""
        updated = limits_block().apply(original)
        if updated == original:
            log.info("[tuning] System limits already configured (skip)")
            return False
        log.info("[tuning] Configuring system limits (%s)...", target)
        target.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(target, updated.lstrip("\n"), mode=None if target.exists() else 0o644)
        return True

    def step_chrony(self) -> bool:
        if self.runner.ok(["systemctl", "is-active", "--quiet", CHRONY]):
            log.info("[tuning] chrony already active (skip)")
            return False
        log.info("[tuning] Installing chrony for time sync...")
        self.runner.run(["apt-get", "update", "-y"], timeout=900)
        self.runner.run(["apt-get", "install", "-y", CHRONY], check=True, timeout=900)
        self.runner.run(["systemctl", "enable", CHRONY])
        self.runner.run(["systemctl", "start", CHRONY])
        return True

    def step_firewall(self) -> bool:
        log.info("[tuning] Disabling firewall (ufw)...")
        result = self.runner.run(["ufw", "disable"])
        if result.returncode != 0:
            log.debug("[tuning] ufw disable rc=%s (ignored)", result.returncode)
            return False
        return True

    def step_thp(self) -> bool:
        thp = self.paths.thp_enabled
        if not thp.exists():
            return False
        if f"[{THP_MODE}]" in thp.read_text():
            return False
        log.info("[tuning] Setting transparent huge pages to %s", THP_MODE)
        # sysfs files must be written in place
        thp.write_text(THP_MODE + "\n")
        return True

    def apply(self) -> TuningReport:
        log.info("[tuning] Applying system tuning...")
        report = TuningReport()
        for name, step in (
            ("swap", self.step_swap),
            ("limits", self.step_limits),
            ("chrony", self.step_chrony),
            ("firewall", self.step_firewall),
            ("thp", self.step_thp),
        ):
            if step():
                report.note(name)
        log.info("[tuning] System tuning completed")
        return report
