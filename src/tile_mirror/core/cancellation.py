"""Cooperative cancellation shared by every level of a mirroring run"""
import threading
from typing import Optional

from tile_mirror.exceptions.tile_mirror_exceptions import TraversalCancelled


class CancellationToken:
    """Thread-safe cancel flag with a cancellable wait.

    Signal handlers call ``cancel()``; traversal loops poll ``is_cancelled``
    and backoff sleeps go through ``wait()`` so they end as soon as the token
    is cancelled.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile"""
        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TraversalCancelled(self._reason or "cancelled")
