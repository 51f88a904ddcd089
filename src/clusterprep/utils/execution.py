# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/utils/execution.py
from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from clusterprep.errors import CommandError

log = logging.getLogger("clusterprep")

Cmd = Sequence[Union[str, Path]]

# rc reported for a command killed by its timeout, same as coreutils `timeout`
TIMEOUT_RC = 124


@dataclass
class CommandRunner:
    """
    Thin wrapper around subprocess.run used by every reconciler.

    - logs argv, outputs and exit code at DEBUG
    - converts a timeout into a non-zero CompletedProcess so probes can treat
      it like any other failure
    - raises CommandError when check=True and the command fails
    """

    label: Optional[str] = None
    timeout: Optional[float] = 300

    def run(
        self,
        cmd: Cmd,
        *,
        check: bool = False,
        timeout: Optional[float] = None,
        input: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        label = self.label or "cmd"
        argv = [str(c) for c in cmd]
        log.debug("[%s] $ %s", label, " ".join(argv))

        start = time.time()
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                input=input,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except subprocess.TimeoutExpired:
            log.debug("[%s] timed out: %s", label, " ".join(argv))
            result = subprocess.CompletedProcess(
                args=argv, returncode=TIMEOUT_RC, stdout="", stderr="timed out"
            )
        except FileNotFoundError as exc:
            result = subprocess.CompletedProcess(
                args=argv, returncode=127, stdout="", stderr=str(exc)
            )

        duration = time.time() - start
        if result.stdout:
            log.debug("[%s][stdout]\n%s", label, result.stdout.rstrip())
        if result.stderr:
            log.debug("[%s][stderr]\n%s", label, result.stderr.rstrip())
        log.debug("[%s][exit %s] (%.2fs)", label, result.returncode, duration)

        if check and result.returncode != 0:
            raise CommandError(argv, result.returncode, result.stderr)
        return result

    def ok(self, cmd: Cmd, *, timeout: Optional[float] = None) -> bool:
        return self.run(cmd, timeout=timeout).returncode == 0

    def output(self, cmd: Cmd, *, timeout: Optional[float] = None) -> str:
        """stdout of a successful command, empty string otherwise."""
        result = self.run(cmd, timeout=timeout)
        if result.returncode != 0:
            return ""
        return result.stdout or ""
