"""Rate-limited logging for failures that repeat on every check."""
import logging
import time
from collections import OrderedDict

FAILURE_LOG_COOLDOWN_SECONDS = 60.0
MAX_TRACKED_FAILURES = 16


class FailureLogThrottle:
    """
    Logs a failure at most once per key per cooldown.

    A watch loop that hits the same dead endpoint every cycle should not
    flood the log. Keys are tracked in insertion order and the oldest key is
    evicted once max_tracked keys are held.

    Args:
        logger: Logger to write to (defaults to this module's logger)
        cooldown_seconds: Minimum time between two logs for the same key
        max_tracked: Maximum number of keys remembered
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, logger=None, cooldown_seconds=FAILURE_LOG_COOLDOWN_SECONDS,
                 max_tracked=MAX_TRACKED_FAILURES, clock=time.monotonic):
        if max_tracked < 1:
            raise ValueError("max_tracked must be at least 1")
        self.logger = logger or logging.getLogger(__name__)
        self.cooldown_seconds = cooldown_seconds
        self.max_tracked = max_tracked
        self._clock = clock
        self._last_logged = OrderedDict()

    def __len__(self):
        return len(self._last_logged)

    def __contains__(self, key):
        return key in self._last_logged

    def should_log(self, key: str) -> bool:
        now = self._clock()
        last = self._last_logged.get(key)
        if last is not None and now - last < self.cooldown_seconds:
            return False
        self._stamp(key, now)
        return True

    def _stamp(self, key, timestamp):
        if key not in self._last_logged and len(self._last_logged) >= self.max_tracked:
            self._last_logged.popitem(last=False)
        self._last_logged[key] = timestamp

    def clear(self, key: str):
        """Forget a key, so its next failure is logged right away."""
        self._last_logged.pop(key, None)

    def warning(self, key: str, message: str, *args, **kwargs) -> bool:
        if not self.should_log(key):
            return False
        self.logger.warning(message, *args, **kwargs)
        return True

    def error(self, key: str, message: str, *args, **kwargs) -> bool:
        if not self.should_log(key):
            return False
        self.logger.error(message, *args, **kwargs)
        return True
