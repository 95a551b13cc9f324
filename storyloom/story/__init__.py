"""
Story module - dynamic content resolution pipeline.

- story_store: authored story files
- placeholders / interpreter: {get ...} query grammar and evaluation
- renderer: block-to-text compilation
- prompt_builder / response_parser: LLM prompt assembly and output recovery
- model_provider / api_client: LLM backends
- orchestrator: per-block generation pipeline

Only leaf modules are re-exported here; the ledger package imports them.
"""

from .errors import (
    StoryEngineError,
    PromptTemplateError,
    LLMProviderError,
    PersistenceError,
    ChoiceAlreadyRecordedError,
    InvalidChoiceError,
)

from .models import (
    BlockType,
    StoryBlock,
    ContextRef,
    PlayerChoice,
    DynamicContent,
    BlockView,
    ContextEntry,
)

__all__ = [
    # errors
    "StoryEngineError",
    "PromptTemplateError",
    "LLMProviderError",
    "PersistenceError",
    "ChoiceAlreadyRecordedError",
    "InvalidChoiceError",
    # models
    "BlockType",
    "StoryBlock",
    "ContextRef",
    "PlayerChoice",
    "DynamicContent",
    "BlockView",
    "ContextEntry",
]
