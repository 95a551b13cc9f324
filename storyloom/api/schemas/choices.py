"""
Choice and codename schemas.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordChoiceRequest(BaseModel):
    """
    Request to record a player's choice.

    Required fields are validated by the router so missing ones yield 400.
    """

    model_config = ConfigDict(populate_by_name=True)

    player_id: Optional[str] = Field(default=None, alias="playerID")
    block_id: Optional[str] = Field(default=None, alias="blockUUID")
    block_type: Optional[str] = Field(default=None, alias="blockType")
    available_options: Optional[List[str]] = Field(default=None, alias="availableOptions")
    chosen_index: Optional[int] = Field(default=None, alias="chosenIndex")
    chosen_text: Optional[str] = Field(default=None, alias="chosenText")
    instruction: Optional[str] = None
    context_blocks: Optional[List[Any]] = Field(default=None, alias="contextBlocks")


class RecordChoiceResponse(BaseModel):
    """Recorded choice."""

    status: str = "success"
    data: Dict[str, Any]


class SaveCodenameRequest(BaseModel):
    """Request to store a player's codename."""

    model_config = ConfigDict(populate_by_name=True)

    player_id: Optional[str] = Field(default=None, alias="playerId")
    codename: Optional[str] = None


class SaveCodenameResponse(BaseModel):
    status: str = "success"
    codename: str
