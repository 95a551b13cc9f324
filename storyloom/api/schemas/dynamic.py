"""
Dynamic block schemas.

Request bodies use the camelCase field names sent by the story player.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ...story.models import ContextRef
from ...story.orchestrator import DynamicBlockRequest


class ContextRefSchema(BaseModel):
    """Reference to an earlier block whose choice feeds the prompt."""

    model_config = ConfigDict(populate_by_name=True)

    value: str
    include_all: bool = Field(default=False, alias="includeAll")


class DynamicGenerateRequest(BaseModel):
    """Request to generate (or preview the prompt of) a dynamic block."""

    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = Field(
        default=None,
        description="Authoring instruction, may contain {get ...} placeholders. Defaults to the block's prompt.",
        json_schema_extra={"examples": ["根据以下故事续写: {get story so far for this player}"]}
    )
    player_id: str = Field(..., alias="playerID")
    block_id: str = Field(..., alias="blockId")
    block_type: str = Field(default="dynamic", alias="blockType")
    story_id: Optional[Union[int, str]] = Field(
        default=None,
        alias="storyId",
        description="Story id, comma-separated ids, or 0 for every configured story"
    )
    generate_options: bool = Field(default=False, alias="generateOptions")
    context_refs: Optional[List[ContextRefSchema]] = Field(
        default=None,
        alias="contextRefs",
        description="Context references. Defaults to the block's authored context."
    )
    option_count: Optional[int] = Field(default=None, ge=1, le=10, alias="optionCount")
    sentence_count: Optional[int] = Field(default=None, ge=1, le=50, alias="sentenceCount")
    lexicon_category: Optional[str] = Field(default=None, alias="lexiconCategory")
    include_passage_text: bool = Field(
        default=False,
        alias="includePassageText",
        description="Embed the current passage's text before the dynamic block in the prompt"
    )

    def to_domain(self) -> DynamicBlockRequest:
        context_refs = None
        if self.context_refs is not None:
            context_refs = [
                ContextRef(value=ref.value, include_all=ref.include_all)
                for ref in self.context_refs
            ]
        return DynamicBlockRequest(
            player_id=self.player_id,
            block_id=self.block_id,
            message=self.message,
            block_type=self.block_type,
            generate_options=self.generate_options,
            story_id=self.story_id,
            context_refs=context_refs,
            option_count=self.option_count,
            sentence_count=self.sentence_count,
            lexicon_category=self.lexicon_category,
            include_passage_text=self.include_passage_text,
        )


class PromptPreviewResponse(BaseModel):
    """Prompt that would be sent to the LLM."""

    preview: str
    message: str = "这是将发送给AI的提示预览，供创作者参考"


class GenerationErrorResponse(BaseModel):
    """Structured error returned when generation fails."""

    error: str
    message: str
    stack: str
    details: Union[str, dict, list, None] = None
