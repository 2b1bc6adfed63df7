import logging
import threading
import uuid
from datetime import datetime, timezone

from pymongo import ASCENDING, GEOSPHERE, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from ..config import DB_NAME, MONGO_URI, REPORTS_COLLECTION, STORE_TIMEOUT_MS
from ..core.errors import StoreIOError
from ..schemas.schemas import LocationReport, as_utc, report_fields
from .store import ReportStore, Subscription

logger = logging.getLogger(__name__)


def get_client(uri=MONGO_URI, timeout_ms=STORE_TIMEOUT_MS):
    """MongoClient with bounded timeouts on every call."""
    return MongoClient(
        uri,
        tz_aware=True,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )


def setup_reports_collection(client, db_name=DB_NAME, collection_name=REPORTS_COLLECTION):
    """Create the reports collection with its reportedAt and 2dsphere indexes."""
    try:
        db = client[db_name]
        if collection_name not in db.list_collection_names():
            db.create_collection(collection_name)
        collection = db[collection_name]
        collection.create_index([("reportedAt", ASCENDING)])
        collection.create_index([("geo", GEOSPHERE)])
        logger.info(f"[✓] Initialized {db_name}.{collection_name}")
        return collection
    except PyMongoError as e:
        logger.error(f"[✗] Error setting up {db_name}.{collection_name}: {e}")
        raise StoreIOError(f"Could not set up {collection_name}: {e}") from e


class MongoReportStore(ReportStore):
    """Report store backed by a MongoDB collection.

    Live subscriptions use change streams, so the deployment must be a
    replica set (a single-node replica set is enough).
    """

    def __init__(self, collection: Collection, client=None, retry_seconds=1.0, max_await_ms=1000):
        self.collection = collection
        self._client = client
        self.retry_seconds = retry_seconds
        self.max_await_ms = max_await_ms

    @classmethod
    def connect(cls, uri=MONGO_URI, db_name=DB_NAME, collection_name=REPORTS_COLLECTION):
        client = get_client(uri)
        return cls(setup_reports_collection(client, db_name, collection_name), client=client)

    def server_time(self):
        try:
            info = self.collection.database.command("hello")
        except PyMongoError as e:
            raise StoreIOError(f"Could not read server time: {e}") from e
        local_time = info.get("localTime")
        if local_time is None:
            return datetime.now(timezone.utc)
        return as_utc(local_time)

    def insert_report(self, latitude, longitude, weight, accuracy=None):
        report_id = str(uuid.uuid4())
        fields = report_fields(latitude, longitude, weight, accuracy)
        try:
            # upsert on a fresh id so $currentDate stamps the server's clock
            self.collection.update_one(
                {"_id": report_id},
                {"$setOnInsert": fields, "$currentDate": {"reportedAt": True}},
                upsert=True,
            )
            doc = self.collection.find_one({"_id": report_id})
        except PyMongoError as e:
            raise StoreIOError(f"Could not insert report: {e}") from e
        if doc is None:
            raise StoreIOError(f"Report {report_id} not found after insert")
        return LocationReport.from_document(doc)

    def find_reports(self, since=None):
        query = {"reportedAt": {"$gte": since}} if since is not None else {}
        try:
            return list(self.collection.find(query))
        except PyMongoError as e:
            raise StoreIOError(f"Could not read reports: {e}") from e

    def find_expired_ids(self, threshold):
        try:
            cursor = self.collection.find({"reportedAt": {"$lt": threshold}}, {"_id": 1})
            return [str(doc["_id"]) for doc in cursor]
        except PyMongoError as e:
            raise StoreIOError(f"Could not query expired reports: {e}") from e

    def delete_report(self, report_id):
        try:
            result = self.collection.delete_one({"_id": report_id})
        except PyMongoError as e:
            raise StoreIOError(f"Could not delete report {report_id}: {e}") from e
        return result.deleted_count > 0

    def subscribe(self, callback, since_fn=None):
        subscription = ChangeStreamSubscription(self, callback, since_fn)
        subscription.start()
        return subscription

    def close(self):
        if self._client is not None:
            self._client.close()


class ChangeStreamSubscription(Subscription):
    """Re-reads the filtered record set every time the change stream fires."""

    def __init__(self, store: MongoReportStore, callback, since_fn=None):
        super().__init__(store, callback, since_fn)
        self._stream = None
        self._thread = None

    def start(self):
        # open the stream before the first read so no change falls in between
        self._stream = self._open_stream()
        try:
            self.refresh()
        except StoreIOError:
            self._drop_stream()
            raise
        self._thread = threading.Thread(
            target=self._run, name="report-change-stream", daemon=True
        )
        self._thread.start()

    def _open_stream(self):
        try:
            return self._store.collection.watch(max_await_time_ms=self._store.max_await_ms)
        except PyMongoError as e:
            raise StoreIOError(f"Could not open change stream: {e}") from e

    def _run(self):
        while not self.closed:
            try:
                if self._stream is None:
                    self._stream = self._open_stream()
                    # changes may have been missed while the stream was down
                    self.refresh()
                stream = self._stream
                if stream is None:
                    continue
                change = stream.try_next()
                if change is None:
                    continue
                logger.debug(f"Change stream event: {change.get('operationType')}")
                self.refresh()
            except (PyMongoError, StoreIOError) as e:
                if self.closed:
                    break
                logger.warning(f"[✗] Change stream interrupted, retrying in {self._store.retry_seconds}s: {e}")
                self._drop_stream()
                self._closed.wait(self._store.retry_seconds)
            except Exception:
                logger.exception("Snapshot callback failed")
        self._drop_stream()

    def _drop_stream(self):
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.close()
            except PyMongoError as e:
                logger.debug(f"Error closing change stream: {e}")

    def _on_close(self):
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=(self._store.max_await_ms / 1000.0) + 5)
        self._drop_stream()
