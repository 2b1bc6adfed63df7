from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from campus_heatmap.core.clock import StoreClock
from campus_heatmap.core.errors import StoreIOError
from campus_heatmap.core.retention import RetentionWindow


def test_reload_from_env(monkeypatch):
    retention = RetentionWindow(300)

    monkeypatch.setenv("HEATMAP_RETENTION_SECONDS", "10")
    assert retention.reload_from_env() == timedelta(seconds=10)

    monkeypatch.delenv("HEATMAP_RETENTION_SECONDS")
    assert retention.reload_from_env() == timedelta(seconds=10)


def test_reload_rejects_bad_value(monkeypatch):
    retention = RetentionWindow(60)
    monkeypatch.setenv("HEATMAP_RETENTION_SECONDS", "-1")

    with pytest.raises(ValueError):
        retention.reload_from_env()
    assert retention.seconds == 60


def test_threshold():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert RetentionWindow(3600).threshold(now) == now - timedelta(hours=1)


def test_store_clock_applies_server_offset():
    store = MagicMock()
    store.server_time.return_value = datetime.now(timezone.utc) + timedelta(hours=2)
    clock = StoreClock(store)

    skew = clock() - datetime.now(timezone.utc)

    assert timedelta(hours=2) - timedelta(seconds=5) < skew < timedelta(hours=2) + timedelta(seconds=5)
    clock()
    store.server_time.assert_called_once()


def test_store_clock_keeps_offset_when_store_unreachable():
    store = MagicMock()
    store.server_time.side_effect = StoreIOError("no primary")
    clock = StoreClock(store, resync_seconds=0)

    assert abs(clock() - datetime.now(timezone.utc)) < timedelta(seconds=5)
