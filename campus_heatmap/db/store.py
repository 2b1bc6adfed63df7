"""
Contract between the pipeline and the shared report store.

Stores hand out raw records (``dict`` documents shaped like
``{_id, location: {lat, lng}, weight, reportedAt, accuracy?}``); turning them
into reports or features is the caller's job so that unusable records can be
skipped where they are consumed.
"""

import threading
from typing import Callable, List, Optional

SnapshotCallback = Callable[[List[dict]], None]


class Subscription:
    """A live query over the store.

    Delivers the current record set to ``callback``: once on start, again after
    every change, and whenever :meth:`refresh` is called. Deliveries never
    overlap, and none happen once :meth:`close` has returned.
    """

    def __init__(self, store, callback: SnapshotCallback, since_fn: Optional[Callable] = None):
        self._store = store
        self._callback = callback
        self._since_fn = since_fn
        self._lock = threading.RLock()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def refresh(self):
        """Read a fresh snapshot and hand it to the callback.

        Raises StoreIOError if the read fails.
        """
        with self._lock:
            if self.closed:
                return
            since = self._since_fn() if self._since_fn else None
            docs = self._store.find_reports(since=since)
            self._callback(docs)

    def close(self):
        self._closed.set()
        # wait for an in-flight delivery to finish
        with self._lock:
            pass
        self._on_close()

    def _on_close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ReportStore:
    """Interface every report store implements."""

    def server_time(self):
        raise NotImplementedError

    def insert_report(self, latitude, longitude, weight, accuracy=None):
        """Create one record; the store assigns ``_id`` and ``reportedAt``."""
        raise NotImplementedError

    def find_reports(self, since=None) -> List[dict]:
        """All records, or only those with ``reportedAt >= since``."""
        raise NotImplementedError

    def find_expired_ids(self, threshold) -> List[str]:
        """Ids of records with ``reportedAt < threshold``."""
        raise NotImplementedError

    def delete_report(self, report_id) -> bool:
        raise NotImplementedError

    def subscribe(self, callback: SnapshotCallback, since_fn=None) -> Subscription:
        raise NotImplementedError

    def close(self):
        pass
