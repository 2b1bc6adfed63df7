import os
import threading
from datetime import timedelta

from ..config import RETENTION_WINDOW_SECONDS


class RetentionWindow:
    """Process-wide retention duration shared by the sweeper and the view builder.

    Both components read through the same instance, so a reload is seen by
    both at once.
    """

    def __init__(self, seconds=RETENTION_WINDOW_SECONDS):
        self._lock = threading.Lock()
        self._window = self._validate(seconds)

    @staticmethod
    def _validate(seconds) -> timedelta:
        seconds = float(seconds)
        if not seconds > 0:
            raise ValueError(f"Retention window must be positive, got {seconds}")
        return timedelta(seconds=seconds)

    def get(self) -> timedelta:
        with self._lock:
            return self._window

    @property
    def seconds(self) -> float:
        return self.get().total_seconds()

    def set(self, seconds) -> timedelta:
        window = self._validate(seconds)
        with self._lock:
            self._window = window
        return window

    def reload_from_env(self, name="HEATMAP_RETENTION_SECONDS") -> timedelta:
        """Re-read the window from the environment; keeps the current value if unset."""
        value = os.getenv(name)
        if value in (None, ""):
            return self.get()
        return self.set(value)

    def threshold(self, now):
        """Oldest `reportedAt` still inside the window at `now`."""
        return now - self.get()
