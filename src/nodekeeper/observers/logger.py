# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/observers/logger.py
from __future__ import annotations
import logging
from .events import BaseEvent, InstanceUpgradeBlocked

# correlation fields already carried by the run log itself
_HIDDEN = ("ts", "run_id", "context")


def level_for(event: BaseEvent) -> int:
    name = type(event).__name__
    if name.endswith("Failed"):
        return logging.ERROR
    if isinstance(event, InstanceUpgradeBlocked):
        return logging.WARNING
    return logging.INFO


class LoggerObserver:
    """Writes each event as one line to the run log, at a level matching its outcome."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _HIDDEN)
        self.logger.log(level_for(event), "[EVENT] %s: %s", type(event).__name__, fields)
