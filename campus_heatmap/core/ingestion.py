import logging
import math
import queue
import threading

from ..config import DEFAULT_WEIGHT
from ..schemas.schemas import LocationReport, SensorEvent, validate_coordinate
from .errors import StoreIOError

logger = logging.getLogger(__name__)


class LocationIngestor:
    """Validates location reports and writes them to the shared store.

    ``reportedAt`` always comes from the store's clock (``$currentDate`` on
    MongoDB), never from the reporting client.
    """

    def __init__(self, store):
        self.store = store

    def ingest(self, latitude, longitude, weight=None, accuracy=None) -> str:
        """Persist one report and return its id.

        Every call creates a new record, even for a repeated coordinate.
        Raises InvalidCoordinate before touching the store, StoreIOError if
        the write fails.
        """
        report = self.ingest_report(latitude, longitude, weight=weight, accuracy=accuracy)
        return report.id

    def ingest_report(self, latitude, longitude, weight=None, accuracy=None) -> LocationReport:
        lat, lon = validate_coordinate(latitude, longitude)
        if weight is None:
            weight = DEFAULT_WEIGHT
        weight = float(weight)
        if not (math.isfinite(weight) and weight > 0):
            raise ValueError(f"Report weight must be a positive number, got {weight}")
        if accuracy is not None:
            accuracy = float(accuracy)
            if not (math.isfinite(accuracy) and accuracy >= 0):
                raise ValueError(f"Report accuracy must be a non-negative number, got {accuracy}")
        report = self.store.insert_report(lat, lon, weight, accuracy)
        logger.debug(f"[✓] Ingested report {report.id} at ({lat:.5f}, {lon:.5f}) weight={weight}")
        return report


class SensorChannel:
    """Queue of SensorEvents from a location source to the ingest worker."""

    def __init__(self, maxsize=0):
        self._queue = queue.Queue(maxsize=maxsize)

    def emit(self, latitude, longitude, accuracy=None, timestamp=None):
        fields = {"latitude": latitude, "longitude": longitude, "accuracy": accuracy}
        if timestamp is not None:
            fields["timestamp"] = timestamp
        self.put(SensorEvent(**fields))

    def put(self, event: SensorEvent):
        self._queue.put(event)

    def get(self, timeout=None) -> SensorEvent:
        return self._queue.get(timeout=timeout)

    def task_done(self):
        self._queue.task_done()

    def join(self):
        self._queue.join()


class IngestWorker:
    """Drains a SensorChannel into a LocationIngestor on a background thread."""

    def __init__(self, ingestor: LocationIngestor, channel: SensorChannel, poll_seconds=0.5):
        self.ingestor = ingestor
        self.channel = channel
        self.poll_seconds = poll_seconds
        self._stop = threading.Event()
        self._thread = None

    def handle(self, event: SensorEvent):
        """Ingest one event; returns the report id or None if it was dropped."""
        try:
            return self.ingestor.ingest(
                event.latitude, event.longitude, accuracy=event.accuracy
            )
        except ValueError as e:
            logger.warning(f"[✗] Dropped sensor event from {event.timestamp.isoformat()}: {e}")
        except StoreIOError as e:
            logger.error(f"[✗] Store write failed for sensor event from {event.timestamp.isoformat()}: {e}")
        return None

    def _run(self):
        while not self._stop.is_set():
            try:
                event = self.channel.get(timeout=self.poll_seconds)
            except queue.Empty:
                continue
            try:
                self.handle(event)
            finally:
                self.channel.task_done()

    def start(self):
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="ingest-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout=5.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
