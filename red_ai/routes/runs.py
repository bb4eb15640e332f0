"""Pipeline trigger 엔드포인트.

  POST /pipeline/runs { user_id, prompt } → { user_id, completion, audio_ref, audio_url }

실패 시 실패한 스테이지 하나를 지목하는 에러를 반환한다 (부분 응답 없음):
  StageTimeout      → 504
  그 외 PipelineError → 502
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from red_ai.errors import PipelineError, StageTimeout
from red_ai.pipeline.orchestrator import PipelineOrchestrator
from red_ai.types import PipelineInput, PipelineResult

router = APIRouter(tags=["pipeline"])
logger = logging.getLogger(__name__)


@router.post("/runs", response_model=PipelineResult)
async def create_run(req: PipelineInput, request: Request):
    orchestrator: PipelineOrchestrator = request.app.state.orchestrator
    try:
        return await orchestrator.execute(req)
    except PipelineError as e:
        status_code = 504 if isinstance(e, StageTimeout) else 502
        logger.info("Run failed for user_id=%s: %s (HTTP %d)", req.user_id, e, status_code)
        return JSONResponse(status_code=status_code, content=e.to_dict())
