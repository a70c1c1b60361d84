"""
Cancellation tokens for automation runs.

A token is checked at step boundaries and is the only thing the engine ever
waits on, so a delay or retry backoff ends early when the run is cancelled.
An in-flight HTTP call is never interrupted.
"""

import threading


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)
