from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


# --- Enums ---


class StageName(str, Enum):
    TRANSCRIPT = "transcript"
    COMPLETION = "completion"
    SPEECH = "speech"


class SpeechBackendKind(str, Enum):
    OPENAI = "openai"
    POLLY = "polly"


class ConversationStoreKind(str, Enum):
    SUPABASE = "supabase"
    MEMORY = "memory"


class AudioStoreKind(str, Enum):
    S3 = "s3"
    MEMORY = "memory"


# --- Conversation state ---


class ConversationTurn(BaseModel):
    """대화 한 턴 (partition key: user_id, sort key: timestamp).

    TranscriptStage가 생성하고, 같은 run 안에서 completion / audio_ref로 보강된다.
    """

    user_id: str
    timestamp: str
    prompt: str
    completion: str = ""
    audio_ref: str = ""

    def to_messages(self) -> list[dict[str, str]]:
        """Chat Completions 포맷의 메시지 목록으로 변환한다."""
        messages = [{"role": "user", "content": self.prompt}]
        if self.completion:
            messages.append({"role": "assistant", "content": self.completion})
        return messages


class AudioArtifact(BaseModel):
    model_config = {"frozen": True}

    storage_key: str
    user_id: str


# --- Trigger payload / result ---


class PipelineInput(BaseModel):
    model_config = {"frozen": True}

    user_id: str = Field(min_length=1)
    prompt: str = Field(min_length=1)

    @field_validator("user_id", "prompt")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class PipelineResult(BaseModel):
    user_id: str
    completion: str
    audio_ref: str
    audio_url: str = ""


# --- Stage payloads ---
# 각 스테이지는 자기 필드 이름만 알고, 필드 연결은 pipeline.mapping 테이블이 담당한다.


class TranscriptInput(BaseModel):
    model_config = {"frozen": True}

    user_id: str
    prompt: str
    run_id: str


class TranscriptOutput(BaseModel):
    model_config = {"frozen": True}

    user_id: str
    timestamp: str
    prompt: str


class CompletionInput(BaseModel):
    model_config = {"frozen": True}

    user_id: str
    prompt: str


class CompletionOutput(BaseModel):
    model_config = {"frozen": True}

    user_id: str
    completion: str


class SpeechInput(BaseModel):
    model_config = {"frozen": True}

    text: str
    user_id: str
    run_id: str


class SpeechOutput(BaseModel):
    model_config = {"frozen": True}

    audio_ref: str
    audio_url: str = ""
