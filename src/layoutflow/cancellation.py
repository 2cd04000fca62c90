"""
Cooperative cancellation for long layout runs.

The pipeline is synchronous and every loop in it is bounded, so cancellation
is never required. Callers laying out very large graphs from a worker thread
may still pass a CancellationToken and cancel it from another thread; the
pipeline checks it between phases and inside its iterative loops.
"""

import threading
from typing import Optional


class LayoutCancelled(Exception):
    """Raised inside a layout run when its cancellation token is cancelled."""

    pass


class CancellationToken:
    """Thread-safe cancellation flag."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise LayoutCancelled(self.reason or "layout run was cancelled")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Raise LayoutCancelled if ``token`` is set; a missing token never cancels."""
    if token is not None:
        token.raise_if_cancelled()
