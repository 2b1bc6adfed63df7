import logging

from ..config import HEATMAP_OUTPUT_PATH, RETENTION_WINDOW_SECONDS, SWEEP_INTERVAL_SECONDS
from ..utils.scheduler import reschedule, start_scheduler
from .aggregation import AggregationViewBuilder
from .clock import StoreClock
from .errors import StoreIOError
from .ingestion import IngestWorker, LocationIngestor, SensorChannel
from .publisher import CompositePublisher, GeoJSONFilePublisher, LatestDatasetPublisher
from .retention import RetentionWindow
from .sweeper import EvictionSweeper

logger = logging.getLogger(__name__)


class HeatmapService:
    """Wires ingestor, sweeper and aggregation view around one report store."""

    def __init__(
        self,
        store,
        retention_seconds=RETENTION_WINDOW_SECONDS,
        sweep_interval_seconds=SWEEP_INTERVAL_SECONDS,
        output_path=HEATMAP_OUTPUT_PATH,
        clock=None,
        schedule=True,
    ):
        self.store = store
        self.retention = RetentionWindow(retention_seconds)
        self.sweep_interval_seconds = sweep_interval_seconds
        self.clock = clock or StoreClock(store)
        self.schedule = schedule

        self.dataset = LatestDatasetPublisher()
        publisher = self.dataset
        if output_path:
            publisher = CompositePublisher(self.dataset, GeoJSONFilePublisher(output_path))

        self.ingestor = LocationIngestor(store)
        self.sweeper = EvictionSweeper(store, self.retention, clock=self.clock)
        self.builder = AggregationViewBuilder(store, publisher, self.retention, clock=self.clock)
        self.channel = SensorChannel()
        self.worker = IngestWorker(self.ingestor, self.channel)
        self.scheduler = None

    def start(self):
        try:
            self.builder.start()
        except StoreIOError:
            # the refresh job keeps retrying the subscription
            logger.warning("Starting without a live subscription")
        self.worker.start()
        if self.schedule:
            self.scheduler = start_scheduler(
                self.sweeper, self.builder, self.sweep_interval_seconds
            )
        logger.info(
            f"[✓] Heat map service started (retention={self.retention.seconds}s, "
            f"sweep every {self.sweep_interval_seconds}s)"
        )
        return self

    def stop(self):
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
            self.scheduler = None
        self.worker.stop()
        self.builder.close()
        self.store.close()
        logger.info("Heat map service stopped")

    def set_retention(self, seconds):
        window = self.retention.set(seconds)
        logger.info(f"Retention window set to {window.total_seconds()}s")
        self.builder.refresh()
        return window

    def set_sweep_interval(self, seconds):
        seconds = float(seconds)
        if not seconds > 0:
            raise ValueError(f"Sweep interval must be positive, got {seconds}")
        self.sweep_interval_seconds = seconds
        if self.scheduler is not None:
            reschedule(self.scheduler, seconds)

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
