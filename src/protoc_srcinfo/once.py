"""One-time initialization barrier."""

from __future__ import annotations

import threading
from typing import Callable


class Once:
    """Runs a function exactly once, even when called from several threads.

    Callers that arrive while the function is running block until it
    finishes, so every caller observes the fully initialized state. If the
    function raises, the barrier stays open and the next caller retries.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def do(self, fn: Callable[[], None]) -> None:
        if self._done:
            return
        with self._lock:
            if not self._done:
                fn()
                self._done = True
