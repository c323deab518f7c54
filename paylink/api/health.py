"""Liveness and Prometheus endpoints."""

from fastapi import APIRouter, Response

from paylink.metrics import CONTENT_TYPE, metrics

router = APIRouter(tags=["system"])


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/metrics")
async def prometheus_metrics():
    return Response(content=metrics.render(), media_type=CONTENT_TYPE)
