"""FastAPI dependencies."""

from fastapi import HTTPException, Request

from crowdcast.pipeline import CrowdPipeline


def get_pipeline(request: Request) -> CrowdPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return pipeline
