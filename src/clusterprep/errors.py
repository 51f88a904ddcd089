# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/errors.py
from __future__ import annotations

from typing import Optional, Sequence


class ClusterprepError(RuntimeError):
    """Base class for every failure surfaced to the CLI."""


class ValidationError(ClusterprepError):
    """Raised for bad input before any side effect happens."""


class SubnetMismatchError(ValidationError):
    """Raised when the gateway is not inside the static address' network."""


class PreflightError(ClusterprepError):
    """Raised when the host is not a supported target (OS, privileges)."""


class NoInterfaceError(ClusterprepError):
    """Raised when no usable cluster/NAT interface can be resolved."""


class ConfigGenerationError(ClusterprepError):
    """Raised when the generated netplan document fails `netplan generate`."""


class ApplyError(ClusterprepError):
    """Raised when the network backend fails to apply or verify."""


class ServiceConfigError(ClusterprepError):
    """Raised when the patched sshd_config fails `sshd -t`."""


class ConnectivityError(ClusterprepError):
    """Per-node failure during trust distribution. Never fatal on its own."""

    def __init__(self, message: str, outcome: str, detail: Optional[str] = None):
        self.outcome = outcome
        self.detail = detail
        super().__init__(message)


class AggregateFailure(ClusterprepError):
    """Raised when trust distribution had peers and none succeeded."""


class CommandError(ClusterprepError):
    def __init__(
        self,
        argv: Sequence[str],
        returncode: int,
        stderr: Optional[str] = None,
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        msg = f"command failed (rc={returncode}): {' '.join(self.argv)}"
        if self.stderr:
            msg += f"\n{self.stderr}"
        super().__init__(msg)
