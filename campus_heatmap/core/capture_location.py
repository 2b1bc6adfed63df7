import argparse
import logging
import random
import time
from datetime import datetime, timedelta, timezone

import httpx

from ..config import API_PORT, MAP_CENTER
from ..utils.logging_utils import setup_logging
from .ingestion import SensorChannel

logger = logging.getLogger(__name__)


def simulate_positions(channel: SensorChannel, count, center=MAP_CENTER, spread=0.002, interval_seconds=0.0):
    """Emit ``count`` jittered positions around ``center`` into ``channel``."""
    base_lat, base_lon = center
    for _ in range(count):
        channel.emit(
            latitude=base_lat + random.uniform(-spread, spread),
            longitude=base_lon + random.uniform(-spread, spread),
            accuracy=random.uniform(3.0, 25.0),
            timestamp=datetime.now(timezone.utc),
        )
        if interval_seconds:
            time.sleep(interval_seconds)


def post_positions_periodically(base_url, duration_minutes=5, interval_seconds=2.0, center=MAP_CENTER, spread=0.002):
    """Post simulated reports to a running service's /reports endpoint."""
    base_lat, base_lon = center
    end_time = datetime.now(timezone.utc) + timedelta(minutes=duration_minutes)
    with httpx.Client(base_url=base_url, timeout=5.0) as client:
        while datetime.now(timezone.utc) < end_time:
            payload = {
                "latitude": base_lat + random.uniform(-spread, spread),
                "longitude": base_lon + random.uniform(-spread, spread),
                "weight": float(random.randint(1, 4)),
            }
            try:
                response = client.post("/reports", json=payload)
                response.raise_for_status()
                logger.info(f"[✓] Reported {response.json()['id']} at ({payload['latitude']:.5f}, {payload['longitude']:.5f})")
            except httpx.HTTPError as e:
                logger.error(f"[✗] Failed to post report: {e}")
            time.sleep(interval_seconds)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate location reports around the campus.")
    parser.add_argument("--url", default=f"http://localhost:{API_PORT}", help="Heat map service base URL")
    parser.add_argument("--duration", type=float, default=5, help="Duration in minutes")
    parser.add_argument("--interval", type=float, default=2.0, help="Interval in seconds")
    parser.add_argument("--spread", type=float, default=0.002, help="Jitter in degrees")
    args = parser.parse_args()

    setup_logging()
    post_positions_periodically(args.url, args.duration, args.interval, spread=args.spread)
