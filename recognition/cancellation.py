"""
Cancellation signal shared by every stage of one recognition request.
"""

import threading
from typing import Callable, List, Optional

from .errors import Aborted


class CancelToken:
    """Thread-safe, one-shot cancellation flag with abort callbacks."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Raise the signal. Registered callbacks run once, in order."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def raise_if_cancelled(self, stage: str = "") -> None:
        if self._event.is_set():
            raise Aborted(stage)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns True when cancelled."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback run on cancel.

        Runs immediately when the token is already cancelled. Returns a
        function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return lambda: None

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


def check(token: Optional[CancelToken], stage: str = "") -> None:
    """raise_if_cancelled for an optional token."""
    if token is not None:
        token.raise_if_cancelled(stage)
