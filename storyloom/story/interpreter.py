"""
Placeholder Interpreter - resolves {get ...} queries into literal text.

Each placeholder found in the text is parsed into a query, resolved against
the StoryStore and ChoiceLedger, and spliced back into the text. Unknown
placeholders are kept verbatim (fail-open). Resolution errors are logged
and replaced by a short bracketed error message; surrounding text is never
altered.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..ledger.choice_ledger import ChoiceLedger
from .models import BlockView
from .placeholders import (
    TARGET_NOBODY,
    TARGET_THIS_PLAYER,
    AnswerQuery,
    CodenameQuery,
    CompiledStoryQuery,
    DecisionsQuery,
    Placeholder,
    PlaceholderQuery,
    UnknownQuery,
    find_placeholders,
    parse_placeholder,
)
from .renderer import compile_story_text
from .story_store import StoryIdSpec, StoryStore

logger = logging.getLogger(__name__)

NO_STORY_TEXT = "No story compiled yet."

Replacement = Tuple[int, int, str]


@dataclass
class InterpretContext:
    """Who and where a text is being interpreted for."""

    player_id: Optional[str] = None
    block_id: Optional[str] = None
    story_ids: StoryIdSpec = None


def apply_replacements(text: str, replacements: Sequence[Replacement]) -> str:
    """
    Splice replacements into text back-to-front.

    Sorting by start offset descending means earlier replacements never
    shift the offsets of those not yet applied.

    Args:
        text: Original text
        replacements: (start, end, replacement) triples on the original offsets

    Returns:
        str: Text with every span replaced
    """
    result = text
    for start, end, replacement in sorted(replacements, key=lambda r: r[0], reverse=True):
        result = result[:start] + replacement + result[end:]
    return result


class PlaceholderInterpreter:
    """Evaluates placeholder queries against story content and player state."""

    def __init__(self, story_store: StoryStore, ledger: ChoiceLedger):
        self.story_store = story_store
        self.ledger = ledger

    async def interpret(self, text: str, context: Optional[InterpretContext] = None) -> str:
        """
        Replace every {get ...} placeholder in text.

        Args:
            text: Text with placeholders
            context: Player, current block and story ids

        Returns:
            str: Text with recognized placeholders resolved
        """
        if not isinstance(text, str):
            return text

        context = context or InterpretContext()
        placeholders = find_placeholders(text)
        if not placeholders:
            return text

        logger.info(
            f"[Interpreter] Resolving {len(placeholders)} placeholder(s) for "
            f"player={context.player_id}, block={context.block_id or 'not provided'}"
        )

        replacements: List[Replacement] = []
        for placeholder in placeholders:
            query = parse_placeholder(placeholder.inner_content)
            replacement = await self._resolve(placeholder, query, context)
            replacements.append((placeholder.start, placeholder.end, replacement))

        return apply_replacements(text, replacements)

    async def _resolve(
        self,
        placeholder: Placeholder,
        query: PlaceholderQuery,
        context: InterpretContext,
    ) -> str:
        if isinstance(query, UnknownQuery):
            logger.error(f"[Interpreter] Placeholder parsing error: {query.error}")
            return placeholder.full_match

        try:
            if isinstance(query, CompiledStoryQuery):
                include_player = query.target != TARGET_NOBODY
                compiled = await self.compile_story(
                    context.player_id if include_player else None,
                    context.block_id,
                    context.story_ids,
                )
                return compiled or NO_STORY_TEXT
            elif isinstance(query, AnswerQuery):
                return await self.get_answer(query.question_id, context.player_id)
            elif isinstance(query, DecisionsQuery):
                return await self.get_decisions(query, context)
            elif isinstance(query, CodenameQuery):
                return await self.get_codename(context.player_id)
        except Exception as e:
            logger.error(f"[Interpreter] Error resolving {placeholder.full_match}: {e}", exc_info=True)
            return f"[Error resolving placeholder: {e}]"

        logger.error(f"[Interpreter] Unhandled query type: {type(query).__name__}")
        return placeholder.full_match

    # -------------------------------------------------------------------------
    # Query handlers
    # -------------------------------------------------------------------------

    async def story_views(
        self,
        player_id: Optional[str],
        block_id: Optional[str],
        story_ids: StoryIdSpec,
    ) -> List[BlockView]:
        """Blocks before block_id (exclusive), enriched with the player's records."""
        blocks = await self.story_store.blocks_before(block_id, story_ids)
        return await self.ledger.enrich_blocks(blocks, player_id)

    async def compile_story(
        self,
        player_id: Optional[str],
        block_id: Optional[str] = None,
        story_ids: StoryIdSpec = None,
    ) -> str:
        """
        Compile the story text for a player.

        With a block id, only blocks strictly before it are compiled; without
        one, the whole of the requested stories. A None player compiles the
        bare authored story.

        Returns:
            str: Compiled text ("" when there are no blocks)
        """
        views = await self.story_views(player_id, block_id, story_ids)
        return compile_story_text(views)

    async def get_answer(self, question_id: str, player_id: Optional[str]) -> str:
        """Get the chosen text of a player's answer ("" when missing)."""
        if not player_id:
            return ""
        choice = await self.ledger.get_choice(player_id, question_id)
        return choice.chosen_text if choice and choice.chosen_text else ""

    async def get_codename(self, player_id: Optional[str]) -> str:
        if not player_id:
            return ""
        return await self.ledger.get_codename(player_id)

    async def resolve_question_ids(
        self, query: DecisionsQuery, block_id: Optional[str]
    ) -> List[str]:
        """
        Expand the query's question ids.

        "all" becomes every static block and option-generating dynamic block
        before block_id in the query's stories.
        """
        if not query.is_all:
            return list(query.question_ids)

        blocks = await self.story_store.blocks_before(block_id, list(query.story_ids))
        return [block.id for block in blocks if block.is_question]

    async def get_decisions(self, query: DecisionsQuery, context: InterpretContext) -> str:
        """
        Format decisions for the query's questions.

        - this player: one entry per answered question with the offered options
        - all: a per-question tally across every player

        Returns:
            str: Formatted decisions ("" when no question applies)
        """
        question_ids = await self.resolve_question_ids(query, context.block_id)
        parts: List[str] = []

        if query.target == TARGET_THIS_PLAYER:
            if not context.player_id:
                return ""
            choices, _ = await self.ledger.get_player_records(context.player_id)
            for question_id in question_ids:
                choice = choices.get(question_id)
                if choice is None:
                    continue
                entry = f"问题 {question_id}: {choice.chosen_text}\n"
                if choice.available_options:
                    entry += f"(可选项: {' | '.join(choice.available_options)})\n"
                parts.append(entry + "\n")
        else:
            for question_id in question_ids:
                block = await self.story_store.find_block(question_id, list(query.story_ids))
                options = block.options if block else ()
                summary = await self.ledger.choice_summary(question_id, options)
                parts.append(summary + "\n")

        return "".join(parts)
