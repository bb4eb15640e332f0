from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

from red_ai.types import AudioStoreKind, ConversationStoreKind, SpeechBackendKind, StageName

# 저장소 루트의 .env (config.py → red_ai → root)
_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    # OpenAI
    openai_api_key: str = ""
    openai_chat_model: str = "gpt-3.5-turbo"
    completion_max_tokens: int = 100
    completion_temperature: float = 0.7
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "nova"

    # AWS (Polly + S3)
    aws_region: str = "us-east-1"
    polly_voice_id: str = "Joanna"
    polly_output_format: str = "mp3"
    audio_bucket: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_service_key: str = ""
    chat_table: str = "chat_turns"

    # Backend selection (deployment-time, never per request)
    speech_backend: SpeechBackendKind = SpeechBackendKind.OPENAI
    conversation_store: ConversationStoreKind = ConversationStoreKind.SUPABASE
    audio_store: AudioStoreKind = AudioStoreKind.S3

    # Stage timeouts
    transcript_timeout_s: float = 15.0
    completion_timeout_s: float = 15.0
    speech_timeout_s: float = 15.0

    # 모델에 전달할 최근 대화 턴 수
    history_max_turns: int = 20

    # HTTP trigger
    server_host: str = "0.0.0.0"
    server_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_max_bytes: int = 10_485_760  # 10MB
    log_backup_count: int = 5
    log_json: bool = False

    @field_validator("transcript_timeout_s", "completion_timeout_s", "speech_timeout_s")
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Stage timeouts must be positive")
        return v

    @field_validator("history_max_turns")
    @classmethod
    def positive_history(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_max_turns must be at least 1")
        return v

    def stage_timeout(self, stage: StageName) -> float:
        """Return the configured budget (seconds) for a pipeline stage."""
        return {
            StageName.TRANSCRIPT: self.transcript_timeout_s,
            StageName.COMPLETION: self.completion_timeout_s,
            StageName.SPEECH: self.speech_timeout_s,
        }[stage]

    model_config = {
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """프로세스 시작 시 한 번만 로드되는 설정."""
    return Settings()
