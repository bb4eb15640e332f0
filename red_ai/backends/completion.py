"""Completion backend: OpenAI Chat Completions.

Model / max_tokens / temperature는 Settings에서 주입된다 (기본: gpt-3.5-turbo, 100, 0.7).
타임아웃은 오케스트레이터가 스테이지 단위로 건다.
"""

from __future__ import annotations

import logging
import time
from typing import Protocol

from openai import AsyncOpenAI

from red_ai.config import Settings
from red_ai.errors import BackendError

logger = logging.getLogger(__name__)


class CompletionBackend(Protocol):
    async def complete(self, messages: list[dict[str, str]]) -> str:
        ...


class OpenAICompletionBackend:
    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self._client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self._model = settings.openai_chat_model
        self._max_tokens = settings.completion_max_tokens
        self._temperature = settings.completion_temperature

    async def complete(self, messages: list[dict[str, str]]) -> str:
        """대화 메시지 목록으로 응답 텍스트를 생성한다.

        Raises:
            BackendError: API 에러 또는 비어 있는 응답
        """
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                messages=messages,
            )
        except Exception as e:
            raise BackendError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            raise BackendError("OpenAI response contained no choices")
        completion = (response.choices[0].message.content or "").strip()
        if not completion:
            raise BackendError("OpenAI returned an empty completion")

        logger.info(
            "Completion received (%s, %.0fms, %d messages): '%s'",
            self._model,
            (time.monotonic() - start) * 1000,
            len(messages),
            completion[:60],
        )
        return completion
