# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/logging/log.py

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

LOG_DIR_ENV = "NODEKEEPER_LOG_DIR"

# libraries whose INFO/DEBUG chatter drowns the controller's own lines
NOISY_LOGGERS = ("paramiko", "kubernetes", "urllib3")

FORMAT = "%(asctime)s | %(levelname)-7s | %(run_id)s | %(threadName)s | %(message)s"


class RunIdFilter(logging.Filter):
    """Stamps every record with the short form of the run id."""

    def __init__(self, run_id: str):
        super().__init__()
        self.short = run_id[:8]

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.short
        return True


def log_dir(base_dir: Path | None = None) -> Path:
    """*base_dir*, else $NODEKEEPER_LOG_DIR, else ~/.nodekeeper/logs."""
    if base_dir is not None:
        return Path(base_dir)
    env = os.environ.get(LOG_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".nodekeeper" / "logs"


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "nodekeeper",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per controller run, holding the full DEBUG trace; the
    console gets INFO, or DEBUG with --verbose.

    Returns (logger, run_id, log_path). The run id is shared with the
    event observers so log lines and JSON events can be joined.
    """
    run_id = str(uuid.uuid4())
    directory = log_dir(base_dir)
    directory.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = directory / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)
    logger.propagate = False

    formatter = logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    run_filter = RunIdFilter(run_id)

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in (fh, ch):
        handler.setFormatter(formatter)
        handler.addFilter(run_filter)
        logger.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)

    logger.info("nodekeeper run %s started, trace in %s", run_id, log_path)
    return logger, run_id, log_path
