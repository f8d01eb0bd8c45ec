"""
Alert API Endpoints.

GET  /api/v1/alerts                        — active alerts
GET  /api/v1/alerts/history                — closed alerts
GET  /api/v1/alerts/stats                  — alert statistics
POST /api/v1/alerts/capacity               — raise a capacity alert for a zone
POST /api/v1/alerts/{alert_id}/acknowledge — acknowledge an active alert
POST /api/v1/alerts/{alert_id}/resolve     — resolve an active alert
POST /api/v1/alerts/{alert_id}/abort       — abort an active alert
GET  /api/v1/alerts/{alert_id}/events      — persisted lifecycle events of an alert
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from crowdcast.alerting.schemas import Alert, AlertStatistics, ZoneOccupancy
from crowdcast.api.deps import get_pipeline
from crowdcast.pipeline import CrowdPipeline

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


class AcknowledgeRequest(BaseModel):
    actor: str = Field(min_length=1)


class ResolveRequest(BaseModel):
    actor: str = Field(min_length=1)
    resolution: str = ""


class AbortRequest(BaseModel):
    actor: str = Field(min_length=1)
    reason: str = ""


@router.get("", response_model=list[Alert])
async def list_active_alerts(pipeline: CrowdPipeline = Depends(get_pipeline)):
    return pipeline.alerts.get_active_alerts()


@router.get("/history", response_model=list[Alert])
async def list_alert_history(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return pipeline.alerts.get_alert_history(limit)


@router.get("/stats", response_model=AlertStatistics)
async def alert_statistics(pipeline: CrowdPipeline = Depends(get_pipeline)):
    return pipeline.alerts.get_alert_statistics()


@router.post("/capacity", response_model=Alert, status_code=201)
async def raise_capacity_alert(
    body: ZoneOccupancy,
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return await pipeline.alerts.create_capacity_alert(body)


@router.post("/{alert_id}/acknowledge", response_model=Alert)
async def acknowledge_alert(
    alert_id: str,
    body: AcknowledgeRequest,
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return await pipeline.alerts.acknowledge_alert(alert_id, body.actor)


@router.post("/{alert_id}/resolve", response_model=Alert)
async def resolve_alert(
    alert_id: str,
    body: ResolveRequest,
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return await pipeline.alerts.resolve_alert(alert_id, body.actor, body.resolution)


@router.post("/{alert_id}/abort", response_model=Alert)
async def abort_alert(
    alert_id: str,
    body: AbortRequest,
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return await pipeline.alerts.abort_alert(alert_id, body.actor, body.reason)


@router.get("/{alert_id}/events")
async def alert_events(
    alert_id: str,
    pipeline: CrowdPipeline = Depends(get_pipeline),
):
    return await pipeline.alerts.get_alert_events(alert_id)
