from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..config import MAP_CENTER, MAP_ZOOM
from ..core.errors import StoreIOError
from ..core.service import HeatmapService
from ..schemas.schemas import ReportRequest


class RetentionUpdate(BaseModel):
    seconds: float = Field(gt=0, allow_inf_nan=False)


class SweepIntervalUpdate(BaseModel):
    seconds: float = Field(gt=0, allow_inf_nan=False)


def create_app(service: HeatmapService, manage_lifecycle=True) -> FastAPI:
    """FastAPI app around ``service``; starts and stops it with the app if asked."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            service.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                service.stop()

    app = FastAPI(title="Campus heat map", lifespan=lifespan)
    app.state.service = service

    @app.post("/reports", status_code=201)
    def create_report(payload: ReportRequest):
        try:
            report = service.ingestor.ingest_report(
                payload.latitude,
                payload.longitude,
                weight=payload.weight,
                accuracy=payload.accuracy,
            )
        except ValueError as e:
            # InvalidCoordinate is a ValueError
            raise HTTPException(status_code=422, detail=str(e))
        except StoreIOError as e:
            raise HTTPException(status_code=503, detail=f"Report store unavailable: {e}")
        return {"id": report.id, "reported_at": report.reported_at.isoformat()}

    @app.get("/heatmap")
    def get_heatmap():
        return service.dataset.geojson()

    @app.post("/sweep")
    def run_sweep():
        return {"deleted": service.sweeper.tick()}

    @app.get("/config")
    def get_config():
        return {
            "retention_seconds": service.retention.seconds,
            "sweep_interval_seconds": service.sweep_interval_seconds,
            "map_center": {"latitude": MAP_CENTER[0], "longitude": MAP_CENTER[1]},
            "map_zoom": MAP_ZOOM,
        }

    @app.put("/config/retention")
    def update_retention(payload: RetentionUpdate):
        window = service.set_retention(payload.seconds)
        return {"retention_seconds": window.total_seconds()}

    @app.put("/config/sweep-interval")
    def update_sweep_interval(payload: SweepIntervalUpdate):
        service.set_sweep_interval(payload.seconds)
        return {"sweep_interval_seconds": service.sweep_interval_seconds}

    @app.get("/healthz")
    def healthz():
        builder = service.builder
        return {
            "state": builder.state.value,
            "features": len(service.dataset.features),
            "last_error": str(builder.last_error) if builder.last_error else None,
        }

    return app
