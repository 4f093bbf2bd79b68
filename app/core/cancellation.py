# app/core/cancellation.py
# -----------------------------------------------------------------------------
# Request-scoped cancellation flag
# - checked explicitly by CPU-bound scoring (runs in worker threads)
# - threading.Event so it can be set from the event loop and read anywhere
# -----------------------------------------------------------------------------
from __future__ import annotations

import threading

from app.core.errors import AnalysisCancelled


class CancellationToken:
    __slots__ = ("_event", "reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled(self.reason or "cancelled")


def check(token: CancellationToken | None) -> None:
    """No-op when no token was supplied."""
    if token is not None:
        token.raise_if_cancelled()
