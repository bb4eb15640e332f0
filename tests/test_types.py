"""Types / Pydantic model tests."""

import pytest
from pydantic import ValidationError

from red_ai.types import AudioArtifact, ConversationTurn, PipelineInput, PipelineResult


class TestPipelineInput:
    def test_valid_input(self):
        req = PipelineInput(user_id="u1", prompt="hello")
        assert req.user_id == "u1"
        assert req.prompt == "hello"

    @pytest.mark.parametrize("field", ["user_id", "prompt"])
    def test_empty_field_rejected(self, field):
        data = {"user_id": "u1", "prompt": "hello", field: ""}
        with pytest.raises(ValidationError):
            PipelineInput(**data)

    def test_blank_prompt_rejected(self):
        with pytest.raises(ValidationError):
            PipelineInput(user_id="u1", prompt="   ")

    def test_immutable(self):
        """run이 시작된 뒤 입력은 바뀌지 않는다."""
        req = PipelineInput(user_id="u1", prompt="hello")
        with pytest.raises(ValidationError):
            req.prompt = "changed"


class TestConversationTurn:
    def test_defaults_empty_enrichment(self):
        turn = ConversationTurn(user_id="u1", timestamp="t1", prompt="hello")
        assert turn.completion == ""
        assert turn.audio_ref == ""

    def test_to_messages_prompt_only(self):
        turn = ConversationTurn(user_id="u1", timestamp="t1", prompt="hello")
        assert turn.to_messages() == [{"role": "user", "content": "hello"}]

    def test_to_messages_with_completion(self):
        turn = ConversationTurn(user_id="u1", timestamp="t1", prompt="hello", completion="hi there")
        assert turn.to_messages() == [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi there"},
        ]


class TestAudioArtifact:
    def test_write_once(self):
        artifact = AudioArtifact(storage_key="u1/run", user_id="u1")
        with pytest.raises(ValidationError):
            artifact.storage_key = "u1/other"


class TestPipelineResult:
    def test_audio_url_optional(self):
        result = PipelineResult(user_id="u1", completion="hi", audio_ref="u1/run")
        assert result.audio_url == ""
