# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/clusterprep/logging/log.py

from __future__ import annotations

import logging
import re
from pathlib import Path
from datetime import datetime, timezone
import uuid

# every module logs "[network] ...", "[trust] ..." etc.
STAGE_TAG = re.compile(r"^\[(?P<stage>[a-z][a-z0-9-]*)\] ?")

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(stage)-9s | %(message)s"
CONSOLE_FORMAT = "%(levelname)-7s %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"


class StageFormatter(logging.Formatter):
    """Moves the leading `[stage]` tag of a message into its own column."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        m = STAGE_TAG.match(record.message)
        record.stage = m.group("stage") if m else "-"
        if m:
            record.message = record.message[m.end():]
        return super().formatMessage(record)


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "clusterprep",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - full DEBUG trace in a per-run log file, one column per stage
      - console status lines keeping the `[stage]` tag (INFO, or the
        file layout at DEBUG with --verbose)
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    if base_dir is None:
        base_dir = Path.home() / ".clusterprep" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = False

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(StageFormatter(FILE_FORMAT, datefmt=DATEFMT))

    ch = logging.StreamHandler()
    if verbose:
        ch.setLevel(logging.DEBUG)
        ch.setFormatter(StageFormatter(FILE_FORMAT, datefmt=DATEFMT))
    else:
        ch.setLevel(logging.INFO)
        ch.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.debug("[run] === clusterprep run started ===")
    logger.debug(f"[run] run_id={run_id} verbose={verbose}")
    logger.info(f"[run] log_file={log_path}")

    return logger, run_id, log_path
