"""Test fixtures for the red-ai pipeline."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from red_ai.config import Settings
from red_ai.pipeline.orchestrator import PipelineOrchestrator
from red_ai.pipeline.stages import CompletionStage, SpeechStage, TranscriptStage
from red_ai.stores.audio import InMemoryAudioStore
from red_ai.stores.conversation import InMemoryConversationStore
from red_ai.types import AudioStoreKind, ConversationStoreKind


@pytest.fixture
def settings() -> Settings:
    """In-memory stores, short timeouts."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        conversation_store=ConversationStoreKind.MEMORY,
        audio_store=AudioStoreKind.MEMORY,
        transcript_timeout_s=1.0,
        completion_timeout_s=1.0,
        speech_timeout_s=1.0,
    )


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def audio_store() -> InMemoryAudioStore:
    return InMemoryAudioStore()


@pytest.fixture
def completion_backend() -> MagicMock:
    """Mock CompletionBackend: 항상 "hi there"를 반환."""
    backend = MagicMock()
    backend.complete = AsyncMock(return_value="hi there")
    return backend


@pytest.fixture
def speech_backend() -> MagicMock:
    """Mock SpeechBackend: mp3 바이트를 반환."""
    backend = MagicMock()
    backend.name = "mock"
    backend.content_type = "audio/mpeg"
    backend.synthesize = AsyncMock(return_value=b"ID3fake-mp3")
    return backend


@pytest.fixture
def orchestrator(settings, store, audio_store, completion_backend, speech_backend) -> PipelineOrchestrator:
    stages = [
        TranscriptStage(store),
        CompletionStage(completion_backend, store, settings.history_max_turns),
        SpeechStage(speech_backend, audio_store),
    ]
    return PipelineOrchestrator(stages, store, settings)
