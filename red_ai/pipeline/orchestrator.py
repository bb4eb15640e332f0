"""PipelineOrchestrator — Transcript → Completion → Speech 순차 실행기.

실행 규칙:
  - 스테이지는 항상 고정 순서로, 한 번에 하나씩 실행된다 (run 내부 병렬 없음).
  - 각 스테이지 입력은 mapping 테이블로 누적 필드에서 골라낸다.
  - 스테이지별 타임아웃 초과 → StageTimeout(stage), 그 외 실패 → 해당 스테이지의 PipelineError.
  - 재시도도, 롤백도 없다. 뒤 스테이지가 실패해도 TranscriptStage가 기록한 턴은 남는다
    (completion / audio 없는 턴). 재제출 여부는 호출자가 결정한다.
  - 오케스트레이터 인스턴스에는 run별 상태를 두지 않는다. 동시 run은 store만 공유한다.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Sequence
from typing import Any

from red_ai.config import Settings
from red_ai.errors import PipelineError, StageTimeout, StoreError, stage_failure
from red_ai.pipeline.mapping import DEFAULT_MAPPING, RUN_ID, StageMapping, select_fields, validate_mapping
from red_ai.pipeline.stages import Stage
from red_ai.stores.conversation import ConversationStore
from red_ai.types import ConversationTurn, PipelineInput, PipelineResult, StageName

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    def __init__(
        self,
        stages: Sequence[Stage],
        store: ConversationStore,
        settings: Settings,
        mapping: Sequence[StageMapping] = DEFAULT_MAPPING,
    ):
        # MappingError는 여기서 (첫 run 이전에) 발생해야 한다
        validate_mapping(stages, mapping)
        self._steps: tuple[tuple[Stage, StageMapping, float], ...] = tuple(
            (stage, stage_mapping, settings.stage_timeout(stage.name))
            for stage, stage_mapping in zip(stages, mapping)
        )
        self._store = store
        # 턴 보강 쓰기는 TranscriptStage와 같은 store 쓰기 예산을 쓴다
        self._enrich_timeout_s = settings.stage_timeout(StageName.TRANSCRIPT)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name.value for stage, _, _ in self._steps]

    async def execute(self, request: PipelineInput) -> PipelineResult:
        """한 번의 run을 끝까지 실행한다.

        Returns:
            user_id / completion / audio_ref가 채워진 PipelineResult

        Raises:
            PipelineError: 실패한 스테이지 하나를 지목하는 에러 (StageTimeout 포함)
        """
        run_id = uuid.uuid4().hex
        accumulated: dict[str, Any] = {**request.model_dump(), RUN_ID: run_id}
        started = time.monotonic()
        logger.info("Run %s started: user_id=%s", run_id, request.user_id, extra={"run_id": run_id})

        for stage, stage_mapping, timeout_s in self._steps:
            output = await self._run_stage(stage, stage_mapping, timeout_s, accumulated, run_id)
            produced = output.model_dump()
            if produced.get("user_id", request.user_id) != request.user_id:
                raise stage_failure(
                    stage.name,
                    f"user_id changed from {request.user_id!r} to {produced['user_id']!r}",
                )
            accumulated.update(produced)

        await self._enrich_turn(accumulated, run_id)

        logger.info(
            "Run %s completed in %.0fms: audio_ref=%s",
            run_id,
            (time.monotonic() - started) * 1000,
            accumulated["audio_ref"],
            extra={"run_id": run_id},
        )
        return PipelineResult(
            user_id=request.user_id,
            completion=accumulated["completion"],
            audio_ref=accumulated["audio_ref"],
            audio_url=accumulated.get("audio_url", ""),
        )

    async def _run_stage(
        self,
        stage: Stage,
        stage_mapping: StageMapping,
        timeout_s: float,
        accumulated: dict[str, Any],
        run_id: str,
    ):
        payload = select_fields(stage_mapping, stage.input_model, accumulated)
        start = time.monotonic()
        try:
            # 타임아웃 시 스테이지 코루틴은 취소된다. 이미 나간 원격 호출은 버린 것으로 간주.
            output = await asyncio.wait_for(stage.run(payload), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Run %s: stage %s timed out after %.1fs",
                run_id,
                stage.name.value,
                timeout_s,
                extra={"run_id": run_id},
            )
            raise StageTimeout(stage.name, timeout_s) from None
        except PipelineError as e:
            logger.warning("Run %s aborted: %s", run_id, e, extra={"run_id": run_id})
            raise
        except Exception as e:
            logger.exception(
                "Run %s: unexpected error in stage %s", run_id, stage.name.value, extra={"run_id": run_id}
            )
            raise stage_failure(stage.name, f"{type(e).__name__}: {e}") from e

        logger.debug(
            "Run %s: stage %s done (%.0fms)",
            run_id,
            stage.name.value,
            (time.monotonic() - start) * 1000,
            extra={"run_id": run_id},
        )
        return output

    async def _enrich_turn(self, accumulated: dict[str, Any], run_id: str) -> None:
        """기록된 턴에 completion / audio_ref를 채운다. 실패해도 run은 성공으로 끝난다."""
        turn = ConversationTurn(
            user_id=accumulated["user_id"],
            timestamp=accumulated["timestamp"],
            prompt=accumulated["prompt"],
            completion=accumulated["completion"],
            audio_ref=accumulated["audio_ref"],
        )
        try:
            await asyncio.wait_for(self._store.put_turn(turn, overwrite=True), timeout=self._enrich_timeout_s)
        except (StoreError, asyncio.TimeoutError):
            logger.warning(
                "Run %s: failed to enrich turn %s/%s",
                run_id,
                turn.user_id,
                turn.timestamp,
                exc_info=True,
                extra={"run_id": run_id},
            )
