"""
Crowd API Endpoints.

POST /api/v1/crowd/points           — push points and run one cycle
GET  /api/v1/crowd/grid             — current grid snapshot
GET  /api/v1/crowd/metrics          — current movement metrics
GET  /api/v1/crowd/forecast         — density forecast from current metrics
GET  /api/v1/crowd/forecast/status  — forecasting model status
GET  /api/v1/crowd/history          — recent stored time-series and spatial batches
GET  /api/v1/crowd/training-data    — stored time-series rows as training rows
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from crowdcast.aggregation.schemas import CellSnapshot, MovementMetrics
from crowdcast.api.deps import get_pipeline
from crowdcast.forecasting.schemas import ModelStatus, Prediction
from crowdcast.pipeline import CrowdPipeline

router = APIRouter(prefix="/api/v1/crowd", tags=["crowd"])


class IngestRequest(BaseModel):
    points: list[dict[str, Any]]


class CycleSummary(BaseModel):
    timestamp: datetime
    point_count: int
    skipped_count: int
    metrics: MovementMetrics
    prediction: Prediction
    alert_ids: list[str]


@router.post("/points", response_model=CycleSummary)
async def ingest_points(
    body: IngestRequest,
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    """Run one aggregation cycle; malformed points are skipped, not rejected."""
    report = await pipeline.run_cycle(body.points)
    return CycleSummary(
        timestamp=report.cycle.timestamp,
        point_count=report.cycle.point_count,
        skipped_count=report.cycle.skipped_count,
        metrics=report.cycle.metrics,
        prediction=report.prediction,
        alert_ids=[a.id for a in report.alerts],
    )


@router.get("/grid", response_model=dict[str, CellSnapshot])
async def grid_snapshot(
    active_only: bool = Query(default=True),
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    snapshot = pipeline.aggregator.get_grid_snapshot()
    if active_only:
        return {k: cell for k, cell in snapshot.items() if cell.person_count > 0}
    return snapshot


@router.get("/metrics", response_model=MovementMetrics)
async def movement_metrics(pipeline: CrowdPipeline = Depends(get_pipeline)):
    return pipeline.aggregator.calculate_movement_metrics()


@router.get("/forecast", response_model=Prediction)
async def forecast(
    horizon: Optional[int] = Query(default=None, ge=1, le=120),
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    metrics = pipeline.aggregator.calculate_movement_metrics()
    return await pipeline.forecaster.generate_forecast(metrics, horizon)


@router.get("/forecast/status", response_model=ModelStatus)
async def forecast_status(pipeline: CrowdPipeline = Depends(get_pipeline)):
    return pipeline.forecaster.get_model_status()


@router.get("/history")
async def historical_data(
    hours: float = Query(default=24, gt=0, le=24 * 30),
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return await pipeline.aggregator.get_historical_data(hours)


@router.get("/training-data")
async def training_data(
    hours: float = Query(default=24, gt=0, le=24 * 30),
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return await pipeline.training_data(hours)
