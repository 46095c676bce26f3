"""Health endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Liveness check. The sanitizer has no external dependencies."""
    return {
        "status": "healthy",
        "pipeline_preset": request.app.state.settings.pipeline_preset,
    }
