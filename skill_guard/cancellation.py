"""Cooperative cancellation for long-running operations."""

from __future__ import annotations

import contextlib
import signal
import threading
from typing import TYPE_CHECKING, Any

from .errors import CancellationError
from .logger import logger

if TYPE_CHECKING:
    from collections.abc import Iterator


class CancellationToken:
    """A flag checked between steps. Setting it never interrupts a syscall."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "interrupted") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError(f"Operation cancelled ({self.reason})", details={"reason": self.reason})


def check_cancelled(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


@contextlib.contextmanager
def handle_signals(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route SIGINT/SIGTERM into ``token`` for the duration of the block.

    Previous handlers are restored on exit. Outside the main thread signal
    handlers cannot be installed, so the token is yielded untouched.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def handler(signum: int, _frame: Any) -> None:
        logger.warning("Received signal, finishing current step", signal=signal.Signals(signum).name)
        token.cancel("interrupted")

    previous: dict[int, Any] = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, handler)
    try:
        yield token
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)
