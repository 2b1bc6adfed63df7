"""
Aggregation view: turns the live report set into the heat layer dataset.

Every snapshot from the store is rebuilt into a complete list of
AggregatedFeatures and handed to the publisher as a whole; nothing is diffed
between snapshots.
"""

import logging
import threading
from enum import Enum
from typing import Iterable, List, Optional

from ..schemas.schemas import AggregatedFeature, LocationReport
from .clock import StoreClock
from .errors import PublishError, StoreIOError
from .retention import RetentionWindow

logger = logging.getLogger(__name__)


class BuilderState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SUBSCRIBED = "subscribed"
    PUBLISHING = "publishing"
    ERROR = "error"
    UNSUBSCRIBED = "unsubscribed"


def build_features(docs: Iterable[dict], now, retention_window) -> List[AggregatedFeature]:
    """Features for every usable record with ``reportedAt >= now - retention_window``."""
    features = []
    for doc in docs:
        report = LocationReport.from_document(doc)
        if report is None:
            continue
        if report.reported_at >= now - retention_window:
            features.append(
                AggregatedFeature(
                    latitude=report.latitude,
                    longitude=report.longitude,
                    magnitude=report.weight,
                )
            )
    return features
class AggregationViewBuilder:
    """Keeps one live subscription on the store and republishes on every snapshot.

    Use as a context manager, or call :meth:`start` and :meth:`close`; once
    closed no further store reads or publishes happen.
    """

    def __init__(self, store, publisher, retention: RetentionWindow, clock=None):
        self.store = store
        self.publisher = publisher
        self.retention = retention
        self.clock = clock or StoreClock(store)
        self.state = BuilderState.UNINITIALIZED
        self.features: List[AggregatedFeature] = []
        self.last_error: Optional[Exception] = None
        self._subscription = None
        # guards _subscription and the move to UNSUBSCRIBED
        self._lock = threading.Lock()

    def _since(self):
        return self.retention.threshold(self.clock())

    def _set_state(self, state, error=None):
        if self.state == BuilderState.UNSUBSCRIBED:
            return
        self.state = state
        if state == BuilderState.ERROR:
            self.last_error = error
        elif state == BuilderState.SUBSCRIBED:
            self.last_error = None

    def start(self):
        """Open the live subscription; the initial snapshot is published before returning.

        Raises StoreIOError if the subscription can't be established.
        """
        with self._lock:
            if self.state == BuilderState.UNSUBSCRIBED:
                raise RuntimeError("AggregationViewBuilder has been closed")
            self._subscribe()
        return self

    def _subscribe(self):
        if self._subscription is not None:
            return
        try:
            self._subscription = self.store.subscribe(self._on_snapshot, since_fn=self._since)
        except StoreIOError as e:
            self._set_state(BuilderState.ERROR, e)
            logger.error(f"[✗] Could not subscribe to report store: {e}")
            raise
        if self.state == BuilderState.UNINITIALIZED:
            self._set_state(BuilderState.SUBSCRIBED)
        logger.info("[✓] Aggregation view subscribed to report store")

    def refresh(self):
        """Rebuild from a fresh snapshot, re-subscribing first if needed.

        Store failures are logged; the next notification or refresh retries.
        """
        try:
            with self._lock:
                if self.state == BuilderState.UNSUBSCRIBED:
                    return
                if self._subscription is None:
                    # a fresh subscription delivers its own snapshot
                    self._subscribe()
                    return
                subscription = self._subscription
            # a closed subscription ignores this
            subscription.refresh()
        except StoreIOError as e:
            self._set_state(BuilderState.ERROR, e)
            logger.warning(f"[✗] Heat map refresh failed: {e}")

    def _on_snapshot(self, docs):
        self._set_state(BuilderState.PUBLISHING)
        features = build_features(docs, self.clock(), self.retention.get())
        try:
            self.publisher.replace(features)
        except PublishError as e:
            self._set_state(BuilderState.ERROR, e)
            logger.error(f"[✗] Publishing {len(features)} features failed: {e}")
            return
        except Exception as e:
            self._set_state(BuilderState.ERROR, e)
            logger.exception(f"[✗] Unexpected error publishing {len(features)} features")
            return
        self.features = features
        self._set_state(BuilderState.SUBSCRIBED)
        logger.debug(f"Published {len(features)} features from {len(docs)} records")

    def close(self):
        with self._lock:
            self.state = BuilderState.UNSUBSCRIBED
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()
        logger.info("Aggregation view unsubscribed")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.close()
