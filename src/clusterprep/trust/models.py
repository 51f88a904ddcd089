# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/trust/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from clusterprep.config.models import ClusterNode
from clusterprep.errors import AggregateFailure


class TrustOutcome(str, Enum):
    SKIPPED_UNREACHABLE = "skipped_unreachable"
    SKIPPED_PORT_CLOSED = "skipped_port_closed"
    ALREADY_TRUSTED = "already_trusted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self in (TrustOutcome.ALREADY_TRUSTED, TrustOutcome.SUCCEEDED)

    @property
    def attempted(self) -> bool:
        return self not in (TrustOutcome.SKIPPED_UNREACHABLE, TrustOutcome.SKIPPED_PORT_CLOSED)


@dataclass(frozen=True)
class TrustAttempt:
    node: ClusterNode
    outcome: TrustOutcome
    detail: Optional[str] = None

    def describe(self) -> str:
        reason = {
            TrustOutcome.SKIPPED_UNREACHABLE: "unreachable",
            TrustOutcome.SKIPPED_PORT_CLOSED: "SSH port closed",
            TrustOutcome.FAILED: "copy failed",
        }.get(self.outcome, self.outcome.value)
        text = f"{self.node.hostname} ({self.node.ip}) - {reason}"
        if self.detail:
            text += f": {self.detail}"
        return text


@dataclass(frozen=True)
class KeyPair:
    private_key: Path
    public_key: Path

    def public_line(self) -> str:
        return self.public_key.read_text().strip()


@dataclass
class SyncReport:
    """Aggregate of one distribution run. Never persisted."""

    attempts: List[TrustAttempt] = field(default_factory=list)

    @property
    def peers(self) -> int:
        return len(self.attempts)

    @property
    def total(self) -> int:
        """Peers that passed both probes and got a trust attempt."""
        return sum(1 for a in self.attempts if a.outcome.attempted)

    @property
    def succeeded(self) -> int:
        return sum(1 for a in self.attempts if a.outcome.ok)

    @property
    def failures(self) -> List[TrustAttempt]:
        return [a for a in self.attempts if not a.outcome.ok]

    def by_outcome(self, outcome: TrustOutcome) -> List[TrustAttempt]:
        return [a for a in self.attempts if a.outcome == outcome]

    @property
    def ok(self) -> bool:
        # no eligible peers counts as success; otherwise one success is enough
        return self.peers == 0 or self.succeeded > 0

    def raise_for_outcome(self) -> None:
        if not self.ok:
            raise AggregateFailure(
                f"Failed to configure any of {self.peers} peers: "
                + "; ".join(a.describe() for a in self.failures)
            )
