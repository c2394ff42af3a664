import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from rolegate.core.config import settings
from rolegate.core.locks import KeyedLocks


class RateLimiter:
    """
    Sliding window limit on challenge creation per subject.

    Each subject keeps the timestamps of its accepted attempts inside the
    trailing window. State lives in process memory only; a restart clears it.
    Subjects whose attempts have all left the window are dropped by sweep(),
    which allow() runs at most once per window.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts if max_attempts is not None else settings.RATE_LIMIT_MAX_ATTEMPTS
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.RATE_LIMIT_WINDOW_SECONDS
        )
        self._clock = clock
        self._attempts: Dict[str, Deque[float]] = {}
        self._locks = KeyedLocks()
        self._last_sweep = clock()

    def allow(self, subject_id: str) -> bool:
        """Record an attempt for ``subject_id`` if it is still under the limit."""
        now = self._clock()
        if now - self._last_sweep >= self.window_seconds:
            self.sweep(now)

        with self._locks.hold(subject_id):
            attempts = self._attempts.setdefault(subject_id, deque())
            cutoff = now - self.window_seconds
            while attempts and attempts[0] <= cutoff:
                attempts.popleft()

            if len(attempts) >= self.max_attempts:
                return False

            attempts.append(now)
            return True

    def sweep(self, now: Optional[float] = None) -> int:
        """Forget subjects with no attempt left in the window, returns how many."""
        now = self._clock() if now is None else now
        self._last_sweep = now
        cutoff = now - self.window_seconds
        removed = 0
        for subject_id in list(self._attempts):
            with self._locks.hold(subject_id):
                attempts = self._attempts.get(subject_id)
                if attempts is not None and (not attempts or attempts[-1] <= cutoff):
                    del self._attempts[subject_id]
                    removed += 1
        return removed

    def tracked(self) -> int:
        return len(self._attempts)

    def remaining(self, subject_id: str) -> int:
        with self._locks.hold(subject_id):
            attempts = self._attempts.get(subject_id)
            if not attempts:
                return self.max_attempts
            cutoff = self._clock() - self.window_seconds
            live = sum(1 for ts in attempts if ts > cutoff)
            return max(self.max_attempts - live, 0)

    def reset(self, subject_id: str) -> None:
        with self._locks.hold(subject_id):
            self._attempts.pop(subject_id, None)
