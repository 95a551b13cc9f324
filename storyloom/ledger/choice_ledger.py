"""
Choice Ledger - per-player record of choices and generated content.

Persisted document shape:
- players[playerId].choices[blockId] =
    {blockType, availableOptions, chosenIndex, chosenText, instruction, contextBlocks, timestamp}
- players[playerId].dynamicContent[blockId] = {blockType, content, timestamp}

Policies:
- A choice is recorded once per (player, block). Re-selection raises
  ChoiceAlreadyRecordedError; the stored choice is never overwritten.
- Dynamic content is written once. Later writes for the same block are ignored.
- Reads never raise: a failed read is logged and treated as an empty document.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..story.errors import ChoiceAlreadyRecordedError, InvalidChoiceError, PersistenceError
from ..story.models import (
    BlockView,
    Content,
    DynamicContent,
    PlayerChoice,
    StoryBlock,
)
from .document_store import DocumentStore, default_document

logger = logging.getLogger(__name__)


def _ensure_player(document: Dict[str, Any], player_id: str) -> Dict[str, Any]:
    """Create the player entry lazily and return it."""
    players = document.setdefault("players", {})
    player = players.get(player_id)
    if not isinstance(player, dict):
        player = {"choices": {}, "dynamicContent": {}}
        players[player_id] = player
    player.setdefault("choices", {})
    player.setdefault("dynamicContent", {})
    return player


def format_choice_summary(
    block_id: str,
    choices: Sequence[PlayerChoice],
    options: Sequence[str] = (),
) -> str:
    """
    Format a tally of how many players chose each option.

    Choices are grouped by their literal chosen text. Authored options come
    first, in authored order, followed by any other chosen text in the order
    first seen. Options nobody chose are omitted.

    Args:
        block_id: Block being summarized
        choices: Every recorded choice for the block
        options: Authored options of the block, if any

    Returns:
        str: Summary text ending with a newline
    """
    counts: Dict[str, int] = {option: 0 for option in options}
    total = 0

    for choice in choices:
        chosen_text = choice.chosen_text
        if not chosen_text and choice.chosen_index is not None:
            if 0 <= choice.chosen_index < len(options):
                chosen_text = options[choice.chosen_index]
        if chosen_text:
            counts[chosen_text] = counts.get(chosen_text, 0) + 1
            total += 1

    lines = [f"For blockId={block_id}, total choices made so far: {total}."]
    for option, count in counts.items():
        if count > 0:
            lines.append(f'- {count} player(s) chose "{option}"')
    return "\n".join(lines) + "\n"


class ChoiceLedger:
    """Reads and writes players' choices and generated content."""

    def __init__(self, document_store: DocumentStore):
        self.document_store = document_store

    async def _read_document(self) -> Dict[str, Any]:
        try:
            return await self.document_store.read()
        except PersistenceError as e:
            logger.error(f"[Ledger] Read failed, using empty document: {e}")
            return default_document()

    async def _read_player(self, player_id: Optional[str]) -> Dict[str, Any]:
        if not player_id:
            return {}
        document = await self._read_document()
        player = document.get("players", {}).get(player_id)
        return player if isinstance(player, dict) else {}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def player_exists(self, player_id: str) -> bool:
        document = await self._read_document()
        return player_id in document.get("players", {})

    async def get_choice(self, player_id: str, block_id: str) -> Optional[PlayerChoice]:
        """Get a player's recorded choice for a block, or None."""
        player = await self._read_player(player_id)
        raw = player.get("choices", {}).get(block_id)
        return PlayerChoice.from_dict(raw) if isinstance(raw, dict) else None

    async def get_dynamic_content(self, player_id: str, block_id: str) -> Optional[DynamicContent]:
        """Get a player's generated content for a block, or None."""
        player = await self._read_player(player_id)
        raw = player.get("dynamicContent", {}).get(block_id)
        return DynamicContent.from_dict(raw) if isinstance(raw, dict) else None

    async def get_player_records(
        self, player_id: Optional[str]
    ) -> Tuple[Dict[str, PlayerChoice], Dict[str, DynamicContent]]:
        """
        Get all of a player's choices and dynamic content in one read.

        Returns:
            (choices by block id, dynamic content by block id)
        """
        player = await self._read_player(player_id)
        choices = {
            block_id: PlayerChoice.from_dict(raw)
            for block_id, raw in player.get("choices", {}).items()
            if isinstance(raw, dict)
        }
        contents = {
            block_id: DynamicContent.from_dict(raw)
            for block_id, raw in player.get("dynamicContent", {}).items()
            if isinstance(raw, dict)
        }
        return choices, contents

    async def enrich_blocks(
        self, blocks: Sequence[StoryBlock], player_id: Optional[str]
    ) -> List[BlockView]:
        """
        Attach a player's recorded choice and dynamic content to each block.

        Without a player id the blocks are returned bare.
        """
        if not player_id:
            return [BlockView(block=block) for block in blocks]

        choices, contents = await self.get_player_records(player_id)
        views = []
        for block in blocks:
            content = contents.get(block.id)
            views.append(BlockView(
                block=block,
                player_choice=choices.get(block.id),
                dynamic_content=content.content if content else None,
            ))
        return views

    async def choices_for_block(self, block_id: str) -> List[PlayerChoice]:
        """Get every player's recorded choice for a block."""
        document = await self._read_document()
        choices = []
        for player in document.get("players", {}).values():
            if not isinstance(player, dict):
                continue
            raw = (player.get("choices") or {}).get(block_id)
            if isinstance(raw, dict):
                choices.append(PlayerChoice.from_dict(raw))
        return choices

    async def choice_summary(self, block_id: str, options: Sequence[str] = ()) -> str:
        """Tally how many players chose each option of a block."""
        choices = await self.choices_for_block(block_id)
        return format_choice_summary(block_id, choices, options)

    async def get_codename(self, player_id: str) -> str:
        """Get a player's codename ("" when the player or codename is missing)."""
        player = await self._read_player(player_id)
        if not player:
            logger.warning(f"[Ledger] No player found with ID: {player_id}")
        return player.get("codename") or ""

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def record_choice(
        self,
        player_id: str,
        block_id: str,
        chosen_index: int,
        available_options: Sequence[str],
        chosen_text: Optional[str] = None,
        block_type: Optional[str] = None,
        instruction: Optional[str] = None,
        context_blocks: Optional[Sequence[Any]] = None,
    ) -> PlayerChoice:
        """
        Record a player's choice on a block.

        The offered options are snapshotted alongside the index.

        Raises:
            InvalidChoiceError: If chosen_index is not an index into available_options
            ChoiceAlreadyRecordedError: If the player already chose on this block
            PersistenceError: If the document cannot be written
        """
        options = [str(option) for option in available_options]
        if (
            isinstance(chosen_index, bool)
            or not isinstance(chosen_index, int)
            or not 0 <= chosen_index < len(options)
        ):
            raise InvalidChoiceError(block_id, chosen_index, len(options))

        choice = PlayerChoice(
            chosen_text=chosen_text or options[chosen_index],
            available_options=options,
            chosen_index=chosen_index,
            block_type=block_type,
            instruction=instruction,
            context_blocks=list(context_blocks or []),
        )

        def _mutate(document: Dict[str, Any]) -> None:
            player = _ensure_player(document, player_id)
            if block_id in player["choices"]:
                raise ChoiceAlreadyRecordedError(player_id, block_id)
            player["choices"][block_id] = choice.to_dict()

        await self.document_store.update(_mutate)
        logger.info(f"[Ledger] Recorded choice for player {player_id} on block {block_id}: {choice.chosen_text}")
        return choice

    async def record_dynamic_content(
        self,
        player_id: str,
        block_id: str,
        content: Content,
        block_type: str = "dynamic",
    ) -> bool:
        """
        Record generated content for a block.

        Returns:
            True if written, False if content already existed (kept unchanged)

        Raises:
            PersistenceError: If the document cannot be written
        """
        entry = DynamicContent(content=content, block_type=block_type)

        def _mutate(document: Dict[str, Any]) -> bool:
            player = _ensure_player(document, player_id)
            if block_id in player["dynamicContent"]:
                return False
            player["dynamicContent"][block_id] = entry.to_dict()
            return True

        written = await self.document_store.update(_mutate)
        if written:
            logger.info(f"[Ledger] Recorded dynamic content for player {player_id} on block {block_id}")
        else:
            logger.warning(f"[Ledger] Dynamic content already recorded for player {player_id} on block {block_id}, keeping existing")
        return written

    async def set_codename(self, player_id: str, codename: str) -> None:
        """Store a player's codename (creating the player if needed)."""

        def _mutate(document: Dict[str, Any]) -> None:
            player = _ensure_player(document, player_id)
            player["codename"] = codename

        await self.document_store.update(_mutate)
        logger.info(f"[Ledger] Saved codename for player {player_id}")
