import argparse
import logging

import uvicorn

from .api.routes import create_app
from .config import (
    API_HOST,
    API_PORT,
    DEBUG_MODE,
    HEATMAP_OUTPUT_PATH,
    RETENTION_WINDOW_SECONDS,
    SWEEP_INTERVAL_SECONDS,
)
from .core.service import HeatmapService
from .db.memory import InMemoryReportStore
from .db.mongo import MongoReportStore
from .utils.logging_utils import setup_logging

logger = logging.getLogger(__name__)


def build_store(kind):
    if kind == "memory":
        logger.warning("Using the in-memory store; reports are lost on restart")
        return InMemoryReportStore()
    return MongoReportStore.connect()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Serve the live location heat map.")
    parser.add_argument("--store", choices=["mongo", "memory"], default="mongo", help="Report store backend")
    parser.add_argument("--host", default=API_HOST)
    parser.add_argument("--port", type=int, default=API_PORT)
    parser.add_argument("--retention", type=float, default=RETENTION_WINDOW_SECONDS, help="Retention window in seconds")
    parser.add_argument("--sweep-interval", type=float, default=SWEEP_INTERVAL_SECONDS, help="Sweep interval in seconds")
    parser.add_argument("--output", default=HEATMAP_OUTPUT_PATH, help="Also write the heat layer to this GeoJSON file")
    parser.add_argument("--debug", action="store_true", default=DEBUG_MODE)
    args = parser.parse_args(argv)

    setup_logging(args.debug)
    service = HeatmapService(
        build_store(args.store),
        retention_seconds=args.retention,
        sweep_interval_seconds=args.sweep_interval,
        output_path=args.output,
    )
    uvicorn.run(create_app(service), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
