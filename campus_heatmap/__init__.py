"""Location report ingestion, decay and heat-map aggregation service."""

__version__ = "0.1.0"
