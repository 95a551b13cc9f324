"""
Choice router.

Endpoints:
- POST /record-choice - Record a player's choice on a block
- POST /save-codename - Store a player's codename
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...story.errors import ChoiceAlreadyRecordedError, InvalidChoiceError, PersistenceError
from ..dependencies import Services, get_services
from ..schemas.choices import (
    RecordChoiceRequest,
    RecordChoiceResponse,
    SaveCodenameRequest,
    SaveCodenameResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/record-choice", response_model=RecordChoiceResponse)
async def record_choice(
    request: RecordChoiceRequest,
    services: Services = Depends(get_services),
):
    """
    Record a player's choice.

    A block can be answered once per player: re-selection returns 409 and
    the stored choice is kept.
    """
    if (
        not request.player_id
        or not request.block_id
        or request.chosen_index is None
        or request.available_options is None
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    try:
        choice = await services.ledger.record_choice(
            request.player_id,
            request.block_id,
            request.chosen_index,
            request.available_options,
            chosen_text=request.chosen_text,
            block_type=request.block_type,
            instruction=request.instruction,
            context_blocks=request.context_blocks,
        )
    except ChoiceAlreadyRecordedError as e:
        logger.warning(f"[ChoiceAPI] {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidChoiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceError as e:
        logger.error(f"[ChoiceAPI] Failed to record choice: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return RecordChoiceResponse(data=choice.to_dict())


@router.post("/save-codename", response_model=SaveCodenameResponse)
async def save_codename(
    request: SaveCodenameRequest,
    services: Services = Depends(get_services),
):
    """Store a codename, used by {get codename} placeholders."""
    if not request.player_id or not request.codename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: playerId, codename",
        )

    try:
        await services.ledger.set_codename(request.player_id, request.codename)
    except PersistenceError as e:
        logger.error(f"[ChoiceAPI] Failed to save codename: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return SaveCodenameResponse(codename=request.codename)
