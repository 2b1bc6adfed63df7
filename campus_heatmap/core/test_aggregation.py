from datetime import datetime, timedelta, timezone

import pytest

from campus_heatmap.core.aggregation import AggregationViewBuilder, BuilderState, build_features
from campus_heatmap.core.errors import PublishError, StoreIOError
from campus_heatmap.core.retention import RetentionWindow
from campus_heatmap.core.sweeper import EvictionSweeper

START = datetime(2025, 1, 25, 18, 0, 0, tzinfo=timezone.utc)


def _doc(doc_id, lat, lng, seconds, weight=1.0):
    return {
        "_id": doc_id,
        "location": {"lat": lat, "lng": lng},
        "weight": weight,
        "reportedAt": START + timedelta(seconds=seconds),
    }


def _coords(features):
    return sorted((f.latitude, f.longitude, f.magnitude) for f in features)


def test_build_features_keeps_only_live_reports():
    docs = [
        _doc("a", 34.4140, -119.8489, 0, weight=1.0),
        _doc("b", 34.4150, -119.8500, 5, weight=2.0),
    ]
    now = START + timedelta(seconds=12)

    features = build_features(docs, now, timedelta(seconds=10))

    assert _coords(features) == [(34.4150, -119.8500, 2.0)]


@pytest.mark.parametrize(
    "doc",
    [
        {"_id": "no-location", "weight": 1.0, "reportedAt": START},
        {"_id": "bad-lat", "location": {"lat": 95.0, "lng": 0.0}, "reportedAt": START},
        {"_id": "null-lng", "location": {"lat": 10.0, "lng": None}, "reportedAt": START},
        {"_id": "no-time", "location": {"lat": 10.0, "lng": 10.0}},
        {"_id": "list-location", "location": [34.4, -119.8], "reportedAt": START},
        {"_id": "text-accuracy", "location": {"lat": 10.0, "lng": 10.0}, "accuracy": "n/a", "reportedAt": START},
        {"_id": "inf-accuracy", "location": {"lat": 10.0, "lng": 10.0}, "accuracy": float("inf"), "reportedAt": START},
        {"_id": "bool-weight", "location": {"lat": 10.0, "lng": 10.0}, "weight": True, "reportedAt": START},
        {"_id": "inf-weight", "location": {"lat": 10.0, "lng": 10.0}, "weight": float("inf"), "reportedAt": START},
        {"location": {"lat": 10.0, "lng": 10.0}, "reportedAt": START},
    ],
)
def test_build_features_skips_unusable_records(doc):
    good = _doc("good", 34.4, -119.8, 0)

    features = build_features([doc, good], START, timedelta(seconds=10))

    assert _coords(features) == [(34.4, -119.8, 1.0)]


def test_missing_weight_defaults_to_one():
    doc = _doc("a", 34.4, -119.8, 0)
    del doc["weight"]

    [feature] = build_features([doc], START, timedelta(seconds=10))
    assert feature.magnitude == 1.0


def test_empty_store_publishes_empty_collection(store, publisher, clock):
    builder = AggregationViewBuilder(store, publisher, RetentionWindow(10), clock=clock)

    with builder:
        assert publisher.calls == [[]]
        assert builder.state == BuilderState.SUBSCRIBED


def test_every_change_republishes_full_set(store, publisher, clock):
    with AggregationViewBuilder(store, publisher, RetentionWindow(10), clock=clock):
        store.insert_report(34.4140, -119.8489, 1.0)
        store.insert_report(34.4150, -119.8500, 2.0)

    assert [len(call) for call in publisher.calls] == [0, 1, 2]
    assert _coords(publisher.latest) == [(34.4140, -119.8489, 1.0), (34.4150, -119.8500, 2.0)]


def test_subscription_filters_on_retention_threshold(store, publisher, clock):
    retention = RetentionWindow(10)
    builder = AggregationViewBuilder(store, publisher, retention, clock=clock)
    clock.at(25)

    assert builder._since() == clock.start + timedelta(seconds=15)


class FailingOncePublisher:
    def __init__(self):
        self.fail_next = True
        self.calls = []

    def replace(self, features):
        if self.fail_next:
            self.fail_next = False
            raise PublishError("layer source rejected update")
        self.calls.append(list(features))


def test_publish_failure_recovers_on_next_notification(store, clock):
    publisher = FailingOncePublisher()
    builder = AggregationViewBuilder(store, publisher, RetentionWindow(10), clock=clock).start()

    assert builder.state == BuilderState.ERROR
    assert isinstance(builder.last_error, PublishError)

    store.insert_report(34.4, -119.8, 1.0)

    assert builder.state == BuilderState.SUBSCRIBED
    assert builder.last_error is None
    assert len(publisher.calls) == 1
    builder.close()


def test_close_cancels_subscription(store, publisher, clock):
    builder = AggregationViewBuilder(store, publisher, RetentionWindow(10), clock=clock).start()
    builder.close()
    store.insert_report(34.4, -119.8, 1.0)
    builder.refresh()

    assert publisher.calls == [[]]
    assert builder.state == BuilderState.UNSUBSCRIBED
    with pytest.raises(RuntimeError):
        builder.start()


def test_failed_subscribe_is_retried_by_refresh(store, publisher, clock):
    calls = {"n": 0}
    subscribe = store.subscribe

    def flaky_subscribe(callback, since_fn=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StoreIOError("connection refused")
        return subscribe(callback, since_fn)

    store.subscribe = flaky_subscribe
    builder = AggregationViewBuilder(store, publisher, RetentionWindow(10), clock=clock)

    with pytest.raises(StoreIOError):
        builder.start()
    assert builder.state == BuilderState.ERROR

    builder.refresh()
    assert builder.state == BuilderState.SUBSCRIBED
    assert publisher.calls == [[]]
    builder.close()


def test_heat_map_decays_over_time(store, publisher, clock):
    retention = RetentionWindow(10)
    sweeper = EvictionSweeper(store, retention, clock=clock)

    with AggregationViewBuilder(store, publisher, retention, clock=clock) as builder:
        clock.at(0)
        store.insert_report(34.4140, -119.8489, 1.0)
        clock.at(5)
        store.insert_report(34.4150, -119.8500, 2.0)

        clock.at(8)
        builder.refresh()
        assert _coords(publisher.latest) == [(34.4140, -119.8489, 1.0), (34.4150, -119.8500, 2.0)]

        clock.at(12)
        assert sweeper.tick() == 1
        assert _coords(publisher.latest) == [(34.4150, -119.8500, 2.0)]

        clock.at(16)
        builder.refresh()
        assert publisher.latest == []
        assert builder.features == []


def test_malformed_stored_record_is_skipped(store, publisher, clock):
    with AggregationViewBuilder(store, publisher, RetentionWindow(10), clock=clock):
        store.put_document({"_id": "legacy", "location": {"lat": "n/a"}, "reportedAt": clock()})
        store.insert_report(34.4140, -119.8489, 1.0)

    assert _coords(publisher.latest) == [(34.4140, -119.8489, 1.0)]


def test_refresh_racing_close_does_not_resubscribe(store, publisher, clock):
    builder = AggregationViewBuilder(store, publisher, RetentionWindow(10), clock=clock).start()
    subscription = builder._subscription
    close_subscription = subscription.close

    def close_while_scheduler_refreshes():
        builder.refresh()
        close_subscription()

    subscription.close = close_while_scheduler_refreshes
    builder.close()
    store.insert_report(34.4, -119.8, 1.0)

    assert publisher.calls == [[]]
    assert builder.state == BuilderState.UNSUBSCRIBED
