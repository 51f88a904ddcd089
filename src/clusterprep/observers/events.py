# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from datetime import datetime, timezone


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------
# Base context
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single bootstrap invocation
    host: str         # hostname the run targets

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------
# Stage lifecycle (network / identity / tuning / trust)
# ---------------------------------------------------------------------
STARTED = "STARTED"
SKIPPED = "SKIPPED"
CHANGED = "CHANGED"
SUCCEEDED = "SUCCEEDED"
FAILED = "FAILED"


@dataclass(frozen=True)
class StageEvent(BaseEvent):
    stage: str
    status: str
    message: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class TrustSummary(BaseEvent):
    total: int
    succeeded: int
    failed: int
    ok: bool


def stage_event(
    run_id: str,
    host: str,
    stage: str,
    status: str,
    message: str = "",
    error: Optional[str] = None,
) -> StageEvent:
    return StageEvent(
        ts=_now(), run_id=run_id, host=host,
        stage=stage, status=status, message=message, error=error,
    )


def trust_summary(run_id: str, host: str, total: int, succeeded: int, failed: int, ok: bool) -> TrustSummary:
    return TrustSummary(
        ts=_now(), run_id=run_id, host=host,
        total=total, succeeded=succeeded, failed=failed, ok=ok,
    )
