"""
Story retrieval schemas.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class BlockListResponse(BaseModel):
    """Blocks before a given block, enriched with a player's records."""

    success: bool = True
    blocks: List[Dict[str, Any]] = Field(default=[])


class BlockDetailResponse(BaseModel):
    success: bool = True
    block: Dict[str, Any]


class CompiledStoryResponse(BaseModel):
    """Compiled story text."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    compiled_text: str = Field(..., alias="compiledText")


class ChoiceSummaryResponse(BaseModel):
    """Tally of players' choices on a block."""

    success: bool = True
    summary: str
