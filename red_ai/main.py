import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from red_ai import __version__
from red_ai.config import Settings, get_settings
from red_ai.logging_config import setup_logging
from red_ai.pipeline.factory import build_orchestrator
from red_ai.pipeline.orchestrator import PipelineOrchestrator
from red_ai.routes.health import router as health_router
from red_ai.routes.runs import router as runs_router

logger = logging.getLogger("red-ai")


def create_app(
    settings: Settings | None = None,
    orchestrator: PipelineOrchestrator | None = None,
) -> FastAPI:
    """FastAPI 앱을 만든다. 오케스트레이터(와 매핑 검증)는 요청 처리 전에 준비된다."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            log_level=settings.log_level,
            log_dir=settings.log_dir,
            max_bytes=settings.log_max_bytes,
            backup_count=settings.log_backup_count,
            json_output=settings.log_json,
        )
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = build_orchestrator(settings)
        logger.info(
            "red-ai pipeline ready on %s:%s (speech=%s, conversation_store=%s, audio_store=%s)",
            settings.server_host,
            settings.server_port,
            settings.speech_backend.value,
            settings.conversation_store.value,
            settings.audio_store.value,
        )
        yield

    app = FastAPI(title="red-ai Pipeline", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.include_router(health_router)
    app.include_router(runs_router, prefix="/pipeline")
    return app
