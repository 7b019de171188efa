# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/utils/retry.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from nodekeeper.errors import ReconcileCancelled

log = logging.getLogger("nodekeeper")

T = TypeVar("T")


class PollTimeout(TimeoutError):
    """Raised when a poll loop exhausts its timeout. Carries the last error seen."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class PollSettings:
    """
    Fixed poll interval and overall timeout shared by every bounded loop
    in the process (connection establishment, CA bundle convergence, node
    registration).
    """

    interval: float = 60.0
    timeout: float = 600.0


DEFAULT_POLL = PollSettings()

# evaluate once, for loops nested inside another bounded loop
SINGLE_ATTEMPT = PollSettings(interval=0, timeout=0)


def _wait(seconds: float, cancel: Optional[threading.Event]) -> None:
    if seconds <= 0:
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled("cancelled while polling")
        return
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise ReconcileCancelled("cancelled while polling")


def poll(
    condition: Callable[[], Optional[T]],
    *,
    settings: PollSettings = DEFAULT_POLL,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    give_up: Optional[Callable[[BaseException], bool]] = None,
    cancel: Optional[threading.Event] = None,
    on_retry: Optional[Callable[[int, Optional[BaseException]], None]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call *condition* until it returns something other than None/False.

    condition: evaluated immediately, then once per settings.interval
    retry_on: exception types treated as "not yet"; anything else propagates
    give_up: predicate on a caught exception; True re-raises it at once
    cancel: event checked between attempts; raises ReconcileCancelled
    on_retry: callback(attempt, exception_or_None) after each failed attempt

    Raises PollTimeout once settings.timeout has elapsed.
    """
    deadline = clock() + settings.timeout
    attempt = 0
    last_exc: Optional[BaseException] = None

    while True:
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled("cancelled while polling")

        attempt += 1
        try:
            result = condition()
        except retry_on as exc:
            if give_up is not None and give_up(exc):
                raise
            last_exc = exc
            result = None
        else:
            if result is not None and result is not False:
                return result
            last_exc = None

        if on_retry:
            on_retry(attempt, last_exc)

        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeout(
                f"condition not met after {attempt} attempt(s) in {settings.timeout:g}s",
                attempts=attempt,
                last_error=last_exc,
            )
        _wait(min(settings.interval, remaining), cancel)
