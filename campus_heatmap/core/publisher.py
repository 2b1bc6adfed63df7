"""
Heat layer publishers.

A publisher receives the complete feature set on every rebuild and replaces
whatever it held before; there is no incremental update path.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from ..schemas.schemas import AggregatedFeature
from .errors import PublishError

logger = logging.getLogger(__name__)


def feature_collection(features: Iterable[AggregatedFeature]) -> Dict:
    """Convert features to a GeoJSON FeatureCollection ([lon, lat] order)."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [f.longitude, f.latitude]},
                "properties": {"magnitude": f.magnitude},
            }
            for f in features
        ],
    }


class HeatLayerPublisher:
    def replace(self, features: Sequence[AggregatedFeature]) -> None:
        raise NotImplementedError


class LatestDatasetPublisher(HeatLayerPublisher):
    """Holds the last published dataset for readers such as the HTTP API."""

    def __init__(self):
        self._lock = threading.Lock()
        self._features: List[AggregatedFeature] = []
        self._published_at = None
        self.version = 0

    def replace(self, features):
        with self._lock:
            self._features = list(features)
            self._published_at = datetime.now(timezone.utc)
            self.version += 1

    @property
    def features(self) -> List[AggregatedFeature]:
        with self._lock:
            return list(self._features)

    @property
    def published_at(self):
        return self._published_at

    def geojson(self) -> Dict:
        return feature_collection(self.features)


class GeoJSONFilePublisher(HeatLayerPublisher):
    """Rewrites a GeoJSON file on every publish (write to temp, then rename)."""

    def __init__(self, path):
        self.path = Path(path)

    def replace(self, features):
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(feature_collection(features)), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise PublishError(f"Could not write heat layer to {self.path}: {e}") from e


class CompositePublisher(HeatLayerPublisher):
    """Publishes to every target; failures are collected and raised together."""

    def __init__(self, *publishers: HeatLayerPublisher):
        self.publishers = list(publishers)

    def replace(self, features):
        features = list(features)
        failures = []
        for publisher in self.publishers:
            try:
                publisher.replace(features)
            except PublishError as e:
                failures.append(str(e))
        if failures:
            raise PublishError("; ".join(failures))
