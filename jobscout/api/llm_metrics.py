"""
LLM call metrics endpoints.
"""
from dataclasses import asdict

from fastapi import APIRouter, Query, Request

router = APIRouter()


@router.get("/")
async def list_llm_metrics(request: Request, limit: int = Query(100, ge=1, le=1000)):
    """Most recent tracked model calls, oldest first."""
    buffer = request.app.state.llm_metrics
    return {"metrics": [asdict(metric) for metric in buffer.recent(limit)]}


@router.get("/summary")
async def llm_metrics_summary(request: Request):
    """Totals and per-model breakdown over the buffered calls."""
    return request.app.state.llm_metrics.summary()
