"""Speech synthesis backends.

Two interchangeable implementations of ``SpeechBackend``:
  openai → OpenAISpeechBackend (OpenAI TTS, model tts-1 / voice nova)
  polly  → PollySpeechBackend  (Amazon Polly, voice Joanna)

Which one runs is decided once by ``build_speech_backend`` from settings.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import boto3
from openai import AsyncOpenAI

from red_ai.config import Settings
from red_ai.errors import BackendError
from red_ai.types import SpeechBackendKind

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "ogg_vorbis": "audio/ogg",
    "pcm": "audio/pcm",
}


class SpeechBackend(Protocol):
    name: str
    content_type: str

    async def synthesize(self, text: str) -> bytes:
        ...


class OpenAISpeechBackend:
    name = "openai"
    content_type = "audio/mpeg"

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self._client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self._model = settings.openai_tts_model
        self._voice = settings.openai_tts_voice

    async def synthesize(self, text: str) -> bytes:
        try:
            response = await self._client.audio.speech.create(
                model=self._model,
                voice=self._voice,
                input=text,
                response_format="mp3",
            )
            audio = response.content
        except Exception as e:
            raise BackendError(f"OpenAI TTS request failed: {e}") from e
        if not audio:
            raise BackendError("OpenAI TTS returned no audio")
        logger.debug("OpenAI TTS produced %d bytes", len(audio))
        return audio


class PollySpeechBackend:
    name = "polly"

    def __init__(self, settings: Settings, client: Any | None = None):
        self._client = client or boto3.client("polly", region_name=settings.aws_region)
        self._voice_id = settings.polly_voice_id
        self._output_format = settings.polly_output_format
        self.content_type = _CONTENT_TYPES.get(self._output_format, "application/octet-stream")

    async def synthesize(self, text: str) -> bytes:
        def _synthesize() -> bytes:
            response = self._client.synthesize_speech(
                Text=text,
                OutputFormat=self._output_format,
                VoiceId=self._voice_id,
            )
            stream = response["AudioStream"]
            try:
                return stream.read()
            finally:
                stream.close()

        try:
            audio = await asyncio.to_thread(_synthesize)
        except Exception as e:
            raise BackendError(f"Polly request failed: {e}") from e
        if not audio:
            raise BackendError("Polly returned no audio")
        logger.debug("Polly produced %d bytes (voice=%s)", len(audio), self._voice_id)
        return audio


def build_speech_backend(settings: Settings) -> SpeechBackend:
    if settings.speech_backend == SpeechBackendKind.POLLY:
        return PollySpeechBackend(settings)
    return OpenAISpeechBackend(settings)
