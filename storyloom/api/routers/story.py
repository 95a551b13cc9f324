"""
Story router for story retrieval and compilation.

Endpoints:
- GET /story/blocks - Blocks before a block, with a player's records
- GET /story/block/{block_id} - One block, with a player's records
- GET /story/compile - Compiled story text for a player
- GET /story/choices/{block_id} - Choice tally for a block
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import Services, get_services
from ..schemas.story import (
    BlockDetailResponse,
    BlockListResponse,
    ChoiceSummaryResponse,
    CompiledStoryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/blocks", response_model=BlockListResponse)
async def list_blocks(
    player_id: Optional[str] = Query(default=None, alias="playerId"),
    block_id: Optional[str] = Query(default=None, alias="blockId", description="Stop before this block"),
    story_id: str = Query(default="1", alias="storyId", description="Story id(s), 0 for all"),
    block_type: Optional[str] = Query(default=None, alias="blockType"),
    services: Services = Depends(get_services),
):
    """Get the blocks before blockId (all when omitted), enriched with the player's records."""
    if block_type and not block_id:
        blocks = await services.story_store.blocks_of_type(block_type, story_id)
    else:
        blocks = await services.story_store.blocks_before(block_id, story_id, block_type)
    views = await services.ledger.enrich_blocks(blocks, player_id)
    return BlockListResponse(blocks=[view.to_dict() for view in views])


@router.get("/block/{block_id}", response_model=BlockDetailResponse)
async def get_block(
    block_id: str,
    player_id: Optional[str] = Query(default=None, alias="playerId"),
    services: Services = Depends(get_services),
):
    """Get a single block with the player's records."""
    block = await services.story_store.find_block(block_id)
    if block is None:
        raise HTTPException(status_code=404, detail="Block not found")

    views = await services.ledger.enrich_blocks([block], player_id)
    return BlockDetailResponse(block=views[0].to_dict())


@router.get("/compile", response_model=CompiledStoryResponse)
async def compile_story(
    player_id: Optional[str] = Query(default=None, alias="playerId"),
    story_id: str = Query(default="1", alias="storyId"),
    block_id: Optional[str] = Query(default=None, alias="blockId"),
    services: Services = Depends(get_services),
):
    """Compile the story for a player (up to blockId when given)."""
    compiled = await services.interpreter.compile_story(player_id, block_id, story_id)
    return CompiledStoryResponse(compiled_text=compiled)


@router.get("/choices/{block_id}", response_model=ChoiceSummaryResponse)
async def choice_summary(
    block_id: str,
    services: Services = Depends(get_services),
):
    """Tally every player's choice on a block."""
    block = await services.story_store.find_block(block_id)
    options = block.options if block else ()
    summary = await services.ledger.choice_summary(block_id, options)
    return ChoiceSummaryResponse(summary=summary)
