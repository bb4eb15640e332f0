"""Pipeline stages: 오케스트레이터가 순서대로 실행하는 작업 단위.

각 스테이지는 입력/출력 모델을 선언하고, 자기 백엔드 에러를 자기 실패 종류로 변환한다.
  TranscriptStage → TranscriptFailed
  CompletionStage → CompletionFailed
  SpeechStage     → SpeechFailed
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import ClassVar

from pydantic import BaseModel

from red_ai.backends.completion import CompletionBackend
from red_ai.backends.speech import SpeechBackend
from red_ai.errors import (
    AudioStoreError,
    BackendError,
    CompletionFailed,
    SpeechFailed,
    StoreError,
    TranscriptFailed,
)
from red_ai.stores.audio import AudioStore, audio_storage_key
from red_ai.stores.conversation import ConversationStore, new_timestamp
from red_ai.types import (
    AudioArtifact,
    CompletionInput,
    CompletionOutput,
    ConversationTurn,
    SpeechInput,
    SpeechOutput,
    StageName,
    TranscriptInput,
    TranscriptOutput,
)

logger = logging.getLogger(__name__)


class Stage(ABC):
    """스테이지 공통 인터페이스.

    ``input_model`` 의 필드가 곧 스테이지가 요구하는 입력이고,
    ``output_model`` 의 필드가 다음 스테이지로 넘길 수 있는 출력이다.
    """

    name: ClassVar[StageName]
    input_model: ClassVar[type[BaseModel]]
    output_model: ClassVar[type[BaseModel]]

    @abstractmethod
    async def run(self, payload: BaseModel) -> BaseModel:
        """스테이지를 실행한다. 실패 시 해당 스테이지의 PipelineError를 raise한다."""


class TranscriptStage(Stage):
    name = StageName.TRANSCRIPT
    input_model = TranscriptInput
    output_model = TranscriptOutput

    def __init__(self, store: ConversationStore):
        self._store = store

    async def run(self, payload: TranscriptInput) -> TranscriptOutput:
        turn = ConversationTurn(
            user_id=payload.user_id,
            timestamp=new_timestamp(payload.run_id),
            prompt=payload.prompt,
        )
        logger.info("Recording turn: user_id=%s timestamp=%s", turn.user_id, turn.timestamp)
        try:
            await self._store.put_turn(turn)
        except StoreError as e:
            raise TranscriptFailed(str(e)) from e
        return TranscriptOutput(user_id=turn.user_id, timestamp=turn.timestamp, prompt=turn.prompt)


class CompletionStage(Stage):
    """히스토리를 읽어 응답을 생성한다. store에 쓰지 않는다."""

    name = StageName.COMPLETION
    input_model = CompletionInput
    output_model = CompletionOutput

    def __init__(self, backend: CompletionBackend, store: ConversationStore, history_max_turns: int = 20):
        self._backend = backend
        self._store = store
        self._history_max_turns = history_max_turns

    async def _build_messages(self, user_id: str, prompt: str) -> list[dict[str, str]]:
        try:
            history = await self._store.list_turns(user_id, self._history_max_turns)
        except StoreError as e:
            raise CompletionFailed(f"History query failed: {e}") from e

        # completion 없는 턴 (진행 중이거나 실패한 run, 이 run 자신의 턴 포함)은 제외
        messages: list[dict[str, str]] = []
        for turn in history:
            if turn.completion:
                messages.extend(turn.to_messages())
        messages.append({"role": "user", "content": prompt})
        return messages

    async def run(self, payload: CompletionInput) -> CompletionOutput:
        messages = await self._build_messages(payload.user_id, payload.prompt)
        try:
            completion = await self._backend.complete(messages)
        except BackendError as e:
            raise CompletionFailed(str(e)) from e
        return CompletionOutput(user_id=payload.user_id, completion=completion)


class SpeechStage(Stage):
    name = StageName.SPEECH
    input_model = SpeechInput
    output_model = SpeechOutput

    def __init__(self, backend: SpeechBackend, audio_store: AudioStore):
        self._backend = backend
        self._audio_store = audio_store

    async def run(self, payload: SpeechInput) -> SpeechOutput:
        artifact = AudioArtifact(
            storage_key=audio_storage_key(payload.user_id, payload.run_id),
            user_id=payload.user_id,
        )
        try:
            audio = await self._backend.synthesize(payload.text)
        except BackendError as e:
            raise SpeechFailed(str(e)) from e

        try:
            await self._audio_store.put(artifact, audio, self._backend.content_type)
        except AudioStoreError as e:
            raise SpeechFailed(str(e)) from e

        logger.info("Audio stored: key=%s backend=%s", artifact.storage_key, self._backend.name)
        return SpeechOutput(
            audio_ref=artifact.storage_key,
            audio_url=self._audio_store.url_for(artifact.storage_key),
        )
