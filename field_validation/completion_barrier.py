"""Countdown barrier used to fan results back in after rule evaluation."""

import threading
from typing import Callable


class CompletionBarrier:
    """
    Runs a finalize callback exactly once, after ``total`` arrivals.

    Arrivals may come from any thread and in any order. Arriving after the
    barrier has already completed is a bug in a predicate (it reported twice)
    and raises RuntimeError.
    """

    def __init__(self, total: int, on_complete: Callable[[], None]):
        if total < 1:
            raise ValueError(f"Barrier total must be positive, got {total}")
        self.total = total
        self._remaining = total
        self._on_complete = on_complete
        self._lock = threading.Lock()

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def completed(self) -> bool:
        return self.remaining == 0

    def arrive(self) -> None:
        """Record one completion; the last arrival runs the finalize callback."""
        with self._lock:
            if self._remaining == 0:
                raise RuntimeError(
                    f"Completion barrier received more than {self.total} arrivals"
                )
            self._remaining -= 1
            finished = self._remaining == 0

        # Finalize outside the lock so the callback may inspect the barrier.
        if finished:
            self._on_complete()
