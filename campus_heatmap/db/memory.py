import copy
import logging
import threading
import uuid
from datetime import datetime, timezone

from ..schemas.schemas import LocationReport, report_fields
from .store import ReportStore, Subscription

logger = logging.getLogger(__name__)


def utc_now():
    return datetime.now(timezone.utc)


class InMemoryReportStore(ReportStore):
    """In-process report store with snapshot-listener semantics.

    Subscribers are refreshed synchronously, in the writer's thread, after
    each insert or delete.
    """

    def __init__(self, clock=utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._docs = {}
        self._subscriptions = []

    def server_time(self):
        return self._clock()

    def insert_report(self, latitude, longitude, weight, accuracy=None):
        doc = {"_id": str(uuid.uuid4()), "reportedAt": self._clock()}
        doc.update(report_fields(latitude, longitude, weight, accuracy))
        with self._lock:
            self._docs[doc["_id"]] = doc
        self._notify()
        return LocationReport.from_document(doc)

    def put_document(self, doc):
        """Store a raw record as-is, bypassing validation."""
        with self._lock:
            self._docs[str(doc["_id"])] = copy.deepcopy(doc)
        self._notify()

    def find_reports(self, since=None):
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._docs.values()]
        if since is not None:
            docs = [d for d in docs if _reported_at(d) is None or _reported_at(d) >= since]
        return docs

    def find_expired_ids(self, threshold):
        with self._lock:
            return [
                doc_id for doc_id, doc in self._docs.items()
                if _reported_at(doc) is not None and _reported_at(doc) < threshold
            ]

    def delete_report(self, report_id):
        with self._lock:
            removed = self._docs.pop(str(report_id), None) is not None
        if removed:
            self._notify()
        return removed

    def count(self):
        with self._lock:
            return len(self._docs)

    def subscribe(self, callback, since_fn=None):
        subscription = _MemorySubscription(self, callback, since_fn)
        with self._lock:
            self._subscriptions.append(subscription)
        subscription.refresh()
        return subscription

    def _detach(self, subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _notify(self):
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            try:
                subscription.refresh()
            except Exception:
                logger.exception("Subscriber refresh failed")


class _MemorySubscription(Subscription):
    def _on_close(self):
        self._store._detach(self)


def _reported_at(doc):
    ts = doc.get("reportedAt")
    if not isinstance(ts, datetime):
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts
