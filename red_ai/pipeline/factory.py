"""설정으로부터 오케스트레이터를 조립한다 (프로세스 시작 시 1회)."""

from red_ai.backends.completion import OpenAICompletionBackend
from red_ai.backends.speech import build_speech_backend
from red_ai.config import Settings
from red_ai.pipeline.orchestrator import PipelineOrchestrator
from red_ai.pipeline.stages import CompletionStage, SpeechStage, TranscriptStage
from red_ai.stores.audio import build_audio_store
from red_ai.stores.conversation import build_conversation_store


def build_orchestrator(settings: Settings) -> PipelineOrchestrator:
    store = build_conversation_store(settings)
    stages = [
        TranscriptStage(store),
        CompletionStage(OpenAICompletionBackend(settings), store, settings.history_max_turns),
        SpeechStage(build_speech_backend(settings), build_audio_store(settings)),
    ]
    return PipelineOrchestrator(stages, store, settings)
