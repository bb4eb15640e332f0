"""Health Check 엔드포인트."""

import time

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])

_start_time = time.time()


@router.get("/health")
async def health_check(request: Request):
    settings = request.app.state.settings
    return {
        "status": "ok",
        "speech_backend": settings.speech_backend.value,
        "stages": request.app.state.orchestrator.stage_names,
        "uptime": round(time.time() - _start_time),
    }
