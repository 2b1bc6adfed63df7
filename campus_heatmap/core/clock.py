import logging
import threading
import time
from datetime import datetime, timedelta, timezone

from .errors import StoreIOError

logger = logging.getLogger(__name__)


class StoreClock:
    """Local UTC clock corrected by the store's offset.

    Reports are stamped with the store's clock, so ages must be measured
    against it too. The offset is re-read every ``resync_seconds``; if the
    store can't be reached the last known offset is kept.
    """

    def __init__(self, store, resync_seconds=60.0):
        self.store = store
        self.resync_seconds = resync_seconds
        self._offset = timedelta(0)
        self._synced_at = None
        self._lock = threading.Lock()

    def sync(self):
        before = datetime.now(timezone.utc)
        try:
            server = self.store.server_time()
        except StoreIOError as e:
            logger.warning(f"Could not sync with store clock, keeping offset {self._offset}: {e}")
        else:
            after = datetime.now(timezone.utc)
            midpoint = before + (after - before) / 2
            self._offset = server - midpoint
        self._synced_at = time.monotonic()
        return self._offset

    def __call__(self):
        with self._lock:
            if self._synced_at is None or time.monotonic() - self._synced_at >= self.resync_seconds:
                self.sync()
            offset = self._offset
        return datetime.now(timezone.utc) + offset
