"""
Dynamic Block Orchestrator - one coroutine per dynamic block request.

Pipeline:
    IDLE -> INSTRUCTION_BUILT -> CONTEXT_RESOLVED -> PROMPT_ASSEMBLED
         -> AWAITING_LLM -> RESPONSE_PARSED -> LEDGER_WRITTEN -> DONE

Any stage may fail into FAILED, which carries a structured error payload.
There is no automatic retry. Content is written once per (player, block):
if content is already stored it is returned without calling the LLM, and a
ledger write that fails after a successful parse is logged while the parsed
content is still returned. Fixed fallback content from an unusable reply is
returned but not written, so calling again retries.
"""

import logging
import traceback
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from ..ledger.choice_ledger import ChoiceLedger
from .api_client import call_llm_api
from .errors import LLMProviderError, PersistenceError
from .interpreter import InterpretContext, PlaceholderInterpreter
from .model_provider import ModelProvider
from .models import Content, ContextRef
from .prompt_builder import (
    PassageContext,
    block_variant,
    build_block_instructions,
    build_system_prompt,
    craft_prompt,
    fetch_context_info,
    format_context_string,
    hydrate_message,
)
from .renderer import compile_story_text, split_passages
from .response_parser import FALLBACK_STRATEGY, parse_response_with_strategy
from .story_store import StoryIdSpec, StoryStore

logger = logging.getLogger(__name__)

ERROR_TITLE = "AI API Error"
NO_DETAILS = "No additional details available"


class OrchestratorState(str, Enum):
    """Stages of a dynamic block request."""
    IDLE = "idle"
    INSTRUCTION_BUILT = "instruction_built"
    CONTEXT_RESOLVED = "context_resolved"
    PROMPT_ASSEMBLED = "prompt_assembled"
    AWAITING_LLM = "awaiting_llm"
    RESPONSE_PARSED = "response_parsed"
    LEDGER_WRITTEN = "ledger_written"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DynamicBlockRequest:
    """
    A request to generate content for one dynamic block.

    message and context_refs fall back to the authored block's prompt and
    context when not supplied.
    """
    player_id: str
    block_id: str
    message: Optional[str] = None
    block_type: str = "dynamic"
    generate_options: bool = False
    story_id: StoryIdSpec = None
    context_refs: Optional[List[ContextRef]] = None
    option_count: Optional[int] = None
    sentence_count: Optional[int] = None
    lexicon_category: Optional[str] = None
    include_passage_text: bool = False


@dataclass
class GenerationOutcome:
    """Result of a dynamic block request."""
    state: OrchestratorState
    content: Optional[Content] = None
    prompt: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    reused: bool = False
    persisted: bool = False
    degraded: bool = False
    trace: List[OrchestratorState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is OrchestratorState.DONE


def build_error_payload(error: BaseException) -> Dict[str, Any]:
    """
    Build the structured error returned to callers.

    Returns:
        dict with error, message, stack and details (provider response body when known)
    """
    details: Any = NO_DETAILS
    if isinstance(error, LLMProviderError) and error.provider_detail is not None:
        details = error.provider_detail

    return {
        "error": ERROR_TITLE,
        "message": str(error),
        "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        "details": details,
    }


class DynamicBlockOrchestrator:
    """Sequences prompt assembly, the LLM call, parsing and the ledger write."""

    def __init__(
        self,
        story_store: StoryStore,
        ledger: ChoiceLedger,
        interpreter: Optional[PlaceholderInterpreter] = None,
        provider: Optional[ModelProvider] = None,
        model_spec: Optional[str] = None,
        llm_config: Optional[Dict[str, Any]] = None,
    ):
        self.story_store = story_store
        self.ledger = ledger
        self.interpreter = interpreter or PlaceholderInterpreter(story_store, ledger)
        self.provider = provider
        self.model_spec = model_spec
        self.llm_config = llm_config

    async def _complete_request(self, request: DynamicBlockRequest) -> DynamicBlockRequest:
        """Fill message and context refs from the authored block when missing."""
        if request.message is not None and request.context_refs is not None:
            return request

        block = await self.story_store.find_block(request.block_id, request.story_id)
        message = request.message
        context_refs = request.context_refs
        if message is None and block is not None:
            message = block.prompt
        if context_refs is None:
            context_refs = list(block.context) if block is not None else []
        return replace(request, message=message, context_refs=context_refs)

    async def _passage_text(self, request: DynamicBlockRequest) -> str:
        """Compile the current passage up to (not including) the dynamic block."""
        views = await self.interpreter.story_views(
            request.player_id, request.block_id, request.story_id
        )
        passages = split_passages(views)
        return compile_story_text(passages[-1]) if passages else ""

    async def assemble_prompt(
        self,
        request: DynamicBlockRequest,
        trace: Optional[List[OrchestratorState]] = None,
    ) -> str:
        """
        Build the final prompt for a request.

        Raises:
            PromptTemplateError: If an instruction template is misconfigured
        """
        trace = trace if trace is not None else []
        request = await self._complete_request(request)

        variant = block_variant(request.generate_options, request.lexicon_category)
        instructions = build_block_instructions(
            variant,
            option_count=request.option_count,
            sentence_count=request.sentence_count,
            lexicon_category=request.lexicon_category,
        )
        trace.append(OrchestratorState.INSTRUCTION_BUILT)

        context_entries = await fetch_context_info(
            request.context_refs or [], request.player_id, self.ledger, self.story_store
        )
        context_string = format_context_string(context_entries)
        message = await hydrate_message(
            self.interpreter,
            request.message,
            InterpretContext(
                player_id=request.player_id,
                block_id=request.block_id,
                story_ids=request.story_id,
            ),
        )
        passage_context = None
        if request.include_passage_text:
            passage_context = PassageContext(text_before_dynamic=await self._passage_text(request))
        trace.append(OrchestratorState.CONTEXT_RESOLVED)

        prompt = craft_prompt(message, context_string, instructions, passage_context)
        trace.append(OrchestratorState.PROMPT_ASSEMBLED)
        return prompt

    async def preview_prompt(self, request: DynamicBlockRequest) -> str:
        """Assemble the prompt without calling the LLM or writing anything."""
        return await self.assemble_prompt(request)

    async def generate(self, request: DynamicBlockRequest) -> GenerationOutcome:
        """
        Run the full pipeline for a dynamic block.

        Returns:
            GenerationOutcome: DONE with content, or FAILED with an error payload
        """
        trace: List[OrchestratorState] = [OrchestratorState.IDLE]
        logger.info(f"[Orchestrator] Dynamic block {request.block_id} for player {request.player_id}")

        existing = await self.ledger.get_dynamic_content(request.player_id, request.block_id)
        if existing is not None:
            logger.info(f"[Orchestrator] Returning stored content for block {request.block_id}")
            trace.append(OrchestratorState.DONE)
            return GenerationOutcome(
                state=OrchestratorState.DONE,
                content=existing.content,
                reused=True,
                persisted=True,
                trace=trace,
            )

        prompt: Optional[str] = None
        try:
            prompt = await self.assemble_prompt(request, trace)

            trace.append(OrchestratorState.AWAITING_LLM)
            result = await call_llm_api(
                build_system_prompt(),
                prompt,
                config=self.llm_config,
                model_spec=self.model_spec,
                provider=self.provider,
            )

            variant = block_variant(request.generate_options, request.lexicon_category)
            content, strategy = parse_response_with_strategy(
                result["text"], request.generate_options, variant
            )
            trace.append(OrchestratorState.RESPONSE_PARSED)
        except Exception as e:
            logger.error(f"[Orchestrator] Failed for block {request.block_id}: {e}", exc_info=True)
            trace.append(OrchestratorState.FAILED)
            return GenerationOutcome(
                state=OrchestratorState.FAILED,
                prompt=prompt,
                error=build_error_payload(e),
                trace=trace,
            )

        if strategy == FALLBACK_STRATEGY:
            # Fallback placeholders are never stored; the next request calls the LLM again
            logger.warning(f"[Orchestrator] Unusable reply for block {request.block_id}, not storing fallback content")
            trace.append(OrchestratorState.DONE)
            return GenerationOutcome(
                state=OrchestratorState.DONE,
                content=content,
                prompt=prompt,
                degraded=True,
                trace=trace,
            )

        persisted = False
        try:
            written = await self.ledger.record_dynamic_content(
                request.player_id, request.block_id, content, request.block_type
            )
            persisted = True
            if not written:
                # Another request stored content first; that content wins
                stored = await self.ledger.get_dynamic_content(request.player_id, request.block_id)
                if stored is not None:
                    content = stored.content
            trace.append(OrchestratorState.LEDGER_WRITTEN)
        except PersistenceError as e:
            logger.error(f"[Orchestrator] Ledger write failed for block {request.block_id}, returning content anyway: {e}")

        trace.append(OrchestratorState.DONE)
        return GenerationOutcome(
            state=OrchestratorState.DONE,
            content=content,
            prompt=prompt,
            persisted=persisted,
            trace=trace,
        )
