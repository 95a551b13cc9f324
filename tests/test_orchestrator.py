"""Tests for the dynamic block orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from storyloom.story.errors import LLMProviderError, PersistenceError
from storyloom.story.model_provider import GenerationResult
from storyloom.story.models import ContextRef
from storyloom.story.orchestrator import (
    ERROR_TITLE,
    NO_DETAILS,
    DynamicBlockOrchestrator,
    DynamicBlockRequest,
    OrchestratorState,
    build_error_payload,
)
from storyloom.story.prompt_builder import SYSTEM_PROMPT


def _provider(text=None, error=None):
    provider = MagicMock()
    provider.provider_name = "mock"
    result = GenerationResult(text=text, usage=None, provider="mock", model="m") if text is not None else None
    provider.generate = AsyncMock(return_value=result, side_effect=error)
    return provider


@pytest.fixture
def make_orchestrator(story_store, ledger):
    def _make(provider):
        return DynamicBlockOrchestrator(story_store, ledger, provider=provider, llm_config={})
    return _make


class TestBuildErrorPayload:
    """Tests for build_error_payload."""

    def test_provider_detail(self):
        try:
            raise LLMProviderError("HTTP 500", provider="mock", provider_detail={"error": "overloaded"})
        except LLMProviderError as e:
            payload = build_error_payload(e)

        assert payload["error"] == ERROR_TITLE
        assert payload["message"] == "HTTP 500"
        assert payload["details"] == {"error": "overloaded"}
        assert "LLMProviderError" in payload["stack"]

    def test_no_detail(self):
        payload = build_error_payload(RuntimeError("x"))
        assert payload["details"] == NO_DETAILS


class TestGenerate:
    """Tests for DynamicBlockOrchestrator.generate."""

    @pytest.mark.asyncio
    async def test_option_block_full_pipeline(self, make_orchestrator, ledger):
        """Should assemble, call, parse and record options."""
        await ledger.record_choice("p1", "q1", 1, ["X", "Y"])
        provider = _provider('```json\n{"reasoning": "r", "deliverable": ["Run", "Hide", "Wait"]}\n```')
        orchestrator = make_orchestrator(provider)

        outcome = await orchestrator.generate(DynamicBlockRequest(
            player_id="p1", block_id="dyn-opt", generate_options=True, story_id=1,
        ))

        assert outcome.ok
        assert outcome.content == ["Run", "Hide", "Wait"]
        assert outcome.persisted is True
        assert outcome.trace == [
            OrchestratorState.IDLE,
            OrchestratorState.INSTRUCTION_BUILT,
            OrchestratorState.CONTEXT_RESOLVED,
            OrchestratorState.PROMPT_ASSEMBLED,
            OrchestratorState.AWAITING_LLM,
            OrchestratorState.RESPONSE_PARSED,
            OrchestratorState.LEDGER_WRITTEN,
            OrchestratorState.DONE,
        ]

        system_prompt, prompt, _ = provider.generate.call_args.args
        assert system_prompt == SYSTEM_PROMPT
        # Authored prompt with the answer placeholder resolved
        assert prompt.startswith("You picked Y. What next?")
        assert '玩家从多个选项中选择了 "Y"' in prompt

        stored = await ledger.get_dynamic_content("p1", "dyn-opt")
        assert stored.content == ["Run", "Hide", "Wait"]

    @pytest.mark.asyncio
    async def test_text_block_with_garbage_reply(self, make_orchestrator, ledger):
        """Should return fallback text without storing it."""
        orchestrator = make_orchestrator(_provider("{}"))

        outcome = await orchestrator.generate(DynamicBlockRequest(player_id="p1", block_id="dyn-text", story_id=1))

        assert outcome.ok
        assert outcome.content == "无法生成有效内容。"
        assert outcome.degraded is True
        assert outcome.persisted is False
        assert OrchestratorState.LEDGER_WRITTEN not in outcome.trace
        assert await ledger.get_dynamic_content("p1", "dyn-text") is None

    @pytest.mark.asyncio
    async def test_retry_after_garbage_reply(self, make_orchestrator, ledger):
        """Should call the LLM again after a fallback and store the real content."""
        provider = MagicMock()
        provider.provider_name = "mock"
        provider.generate = AsyncMock(side_effect=[
            GenerationResult(text="{}", usage=None, provider="mock", model="m"),
            GenerationResult(text='{"deliverable": "A real passage."}', usage=None, provider="mock", model="m"),
        ])
        orchestrator = make_orchestrator(provider)
        request = DynamicBlockRequest(player_id="p1", block_id="dyn-text")

        first = await orchestrator.generate(request)
        retry = await orchestrator.generate(request)

        assert first.content == "无法生成有效内容。"
        assert retry.content == "A real passage."
        assert retry.reused is False
        assert retry.persisted is True
        assert provider.generate.await_count == 2
        stored = await ledger.get_dynamic_content("p1", "dyn-text")
        assert stored.content == "A real passage."

    @pytest.mark.asyncio
    async def test_option_fallback_not_stored(self, make_orchestrator, ledger):
        orchestrator = make_orchestrator(_provider("no options here at all, just one long rambling sentence"))

        outcome = await orchestrator.generate(DynamicBlockRequest(
            player_id="p1", block_id="dyn-opt", generate_options=True,
        ))

        assert outcome.content == ["选项 1", "选项 2", "选项 3", "选项 4"]
        assert outcome.degraded is True
        assert await ledger.get_dynamic_content("p1", "dyn-opt") is None

    @pytest.mark.asyncio
    async def test_stored_content_reused(self, make_orchestrator, ledger):
        """Should return stored content without calling the LLM."""
        await ledger.record_dynamic_content("p1", "dyn-text", "already here")
        provider = _provider("new")
        orchestrator = make_orchestrator(provider)

        outcome = await orchestrator.generate(DynamicBlockRequest(player_id="p1", block_id="dyn-text"))

        assert outcome.ok
        assert outcome.reused is True
        assert outcome.content == "already here"
        provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_failure(self, make_orchestrator, ledger):
        """Should fail with a structured error and write nothing."""
        error = LLMProviderError("HTTP 401", provider="mock", provider_detail={"code": "InvalidApiKey"})
        orchestrator = make_orchestrator(_provider(error=error))

        outcome = await orchestrator.generate(DynamicBlockRequest(player_id="p1", block_id="dyn-text"))

        assert outcome.state is OrchestratorState.FAILED
        assert outcome.trace[-2:] == [OrchestratorState.AWAITING_LLM, OrchestratorState.FAILED]
        assert outcome.error["error"] == "AI API Error"
        assert outcome.error["message"] == "HTTP 401"
        assert outcome.error["details"] == {"code": "InvalidApiKey"}
        assert outcome.error["stack"]
        assert await ledger.get_dynamic_content("p1", "dyn-text") is None

    @pytest.mark.asyncio
    async def test_ledger_write_failure_still_returns_content(self, make_orchestrator, ledger):
        """Should log a failed write and return the parsed content."""
        orchestrator = make_orchestrator(_provider('{"deliverable": "月光"}'))

        with patch.object(ledger, "record_dynamic_content", new_callable=AsyncMock) as mock_record:
            mock_record.side_effect = PersistenceError("disk full")
            outcome = await orchestrator.generate(DynamicBlockRequest(player_id="p1", block_id="dyn-text"))

        assert outcome.ok
        assert outcome.content == "月光"
        assert outcome.persisted is False
        assert OrchestratorState.LEDGER_WRITTEN not in outcome.trace

    @pytest.mark.asyncio
    async def test_concurrent_requests_first_content_wins(self, make_orchestrator, ledger):
        """Should return the same stored content to racing requests."""
        replies = iter(['{"deliverable": "first"}', '{"deliverable": "second"}'])

        async def _generate(system_prompt, user_prompt, config):
            await asyncio.sleep(0)
            return GenerationResult(text=next(replies), usage=None, provider="mock", model="m")

        provider = MagicMock()
        provider.provider_name = "mock"
        provider.generate = AsyncMock(side_effect=_generate)
        orchestrator = make_orchestrator(provider)
        request = DynamicBlockRequest(player_id="p1", block_id="dyn-text")

        first, second = await asyncio.gather(orchestrator.generate(request), orchestrator.generate(request))

        stored = await ledger.get_dynamic_content("p1", "dyn-text")
        assert first.content == stored.content
        assert second.content == stored.content

    @pytest.mark.asyncio
    async def test_word_variant(self, make_orchestrator):
        provider = _provider("思考：略\n最终词语：幽暗")
        orchestrator = make_orchestrator(provider)

        outcome = await orchestrator.generate(DynamicBlockRequest(
            player_id="p1", block_id="dyn-text", lexicon_category="adjective",
        ))

        assert outcome.content == "幽暗"
        assert "a single adjective" in provider.generate.call_args.args[1]


class TestAssemblePrompt:
    """Tests for prompt assembly and preview."""

    @pytest.mark.asyncio
    async def test_preview_does_not_call_llm(self, make_orchestrator, ledger):
        provider = _provider("unused")
        orchestrator = make_orchestrator(provider)

        prompt = await orchestrator.preview_prompt(DynamicBlockRequest(
            player_id="p1", block_id="dyn-text", message="Write {get codename}.",
            context_refs=[], sentence_count=2,
        ))

        assert prompt.startswith("Write .")
        assert "approximately 2 sentences" in prompt
        provider.generate.assert_not_awaited()
        assert await ledger.get_dynamic_content("p1", "dyn-text") is None

    @pytest.mark.asyncio
    async def test_include_all_context(self, make_orchestrator, ledger):
        """Should fold every player's choice into the context section."""
        await ledger.record_choice("p1", "q1", 0, ["X", "Y"])
        await ledger.record_choice("p2", "q1", 1, ["X", "Y"])
        orchestrator = make_orchestrator(_provider("unused"))

        prompt = await orchestrator.preview_prompt(DynamicBlockRequest(player_id="p1", block_id="dyn-text"))

        assert prompt.startswith("Continue the story.")
        assert '"X"' in prompt and '"Y"' in prompt
        assert "第一站:" in prompt

    @pytest.mark.asyncio
    async def test_explicit_context_refs_override_block(self, make_orchestrator, ledger):
        await ledger.record_choice("p1", "q2", 0, ["A", "B"])
        orchestrator = make_orchestrator(_provider("unused"))

        prompt = await orchestrator.preview_prompt(DynamicBlockRequest(
            player_id="p1", block_id="dyn-text", context_refs=[ContextRef(value="q2")],
        ))

        assert "第二站:" in prompt
        assert "第一站:" not in prompt

    @pytest.mark.asyncio
    async def test_passage_text(self, make_orchestrator, ledger):
        """Should embed the current passage before the dynamic block."""
        orchestrator = make_orchestrator(_provider("unused"))

        prompt = await orchestrator.preview_prompt(DynamicBlockRequest(
            player_id="p1", block_id="dyn-opt", story_id=1, include_passage_text=True,
        ))

        assert "动态内容之前的故事文本:\nForest\nThe path splits. \n\n" in prompt
        assert "Hello " not in prompt
