"""Pipeline error taxonomy.

Runtime failures are ``PipelineError`` subclasses and always name exactly one
stage. ``MappingError`` is raised while wiring the pipeline, before any run.
"""

from __future__ import annotations

from typing import Any

from red_ai.types import StageName


class StoreError(Exception):
    """Conversation store unavailable or write conflict."""


class AudioStoreError(Exception):
    """Audio object could not be written."""


class BackendError(Exception):
    """Completion or speech backend returned an error or unusable response."""


class MappingError(Exception):
    """A stage's declared input cannot be satisfied by upstream fields."""


class PipelineError(Exception):
    """A run aborted in ``stage``."""

    kind = "PipelineError"

    def __init__(self, stage: StageName, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(f"{self.kind}({stage.value}): {reason}")

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "stage": self.stage.value, "message": self.reason}


class TranscriptFailed(PipelineError):
    kind = "TranscriptFailed"

    def __init__(self, reason: str):
        super().__init__(StageName.TRANSCRIPT, reason)


class CompletionFailed(PipelineError):
    kind = "CompletionFailed"

    def __init__(self, reason: str):
        super().__init__(StageName.COMPLETION, reason)


class SpeechFailed(PipelineError):
    kind = "SpeechFailed"

    def __init__(self, reason: str):
        super().__init__(StageName.SPEECH, reason)


class StageTimeout(PipelineError):
    kind = "StageTimeout"

    def __init__(self, stage: StageName, timeout_s: float | None = None):
        self.timeout_s = timeout_s
        reason = f"exceeded {timeout_s:.1f}s" if timeout_s is not None else "timed out"
        super().__init__(stage, reason)


STAGE_FAILURES: dict[StageName, type[PipelineError]] = {
    StageName.TRANSCRIPT: TranscriptFailed,
    StageName.COMPLETION: CompletionFailed,
    StageName.SPEECH: SpeechFailed,
}


def stage_failure(stage: StageName, reason: str) -> PipelineError:
    """Build the failure kind bound to ``stage``."""
    return STAGE_FAILURES[stage](reason)
