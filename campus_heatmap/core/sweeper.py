import logging
from datetime import datetime, timezone

from .errors import StoreIOError
from .retention import RetentionWindow

logger = logging.getLogger(__name__)


def sweep(store, now, retention_window) -> int:
    """Delete every report with ``reportedAt < now - retention_window``.

    The threshold is fixed before the first read, so reports written while
    the sweep runs are never touched. A failed delete is logged and the
    sweep moves on to the next record. Returns the number of deleted records.
    """
    threshold = now - retention_window
    try:
        expired = store.find_expired_ids(threshold)
    except StoreIOError as e:
        logger.error(f"[✗] Sweep aborted, could not list reports older than {threshold.isoformat()}: {e}")
        return 0

    deleted = 0
    for report_id in expired:
        try:
            if store.delete_report(report_id):
                deleted += 1
        except StoreIOError as e:
            logger.warning(f"[✗] Could not delete expired report {report_id}: {e}")
    if expired:
        logger.info(f"[✓] Swept {deleted}/{len(expired)} reports older than {threshold.isoformat()}")
    return deleted


class EvictionSweeper:
    """Runs :func:`sweep` against one store with a shared retention window."""

    def __init__(self, store, retention: RetentionWindow, clock=None):
        self.store = store
        self.retention = retention
        self.clock = clock
        self.last_deleted = 0

    def now(self):
        if self.clock is not None:
            return self.clock()
        try:
            return self.store.server_time()
        except StoreIOError as e:
            logger.warning(f"Falling back to local clock for sweep: {e}")
            return datetime.now(timezone.utc)

    def tick(self) -> int:
        self.last_deleted = sweep(self.store, self.now(), self.retention.get())
        return self.last_deleted
