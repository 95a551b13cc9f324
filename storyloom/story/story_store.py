"""
Story Store - loading and caching authored story files.

Each story id maps to one JSON file of shape {"blocks": [...]}.
Stories are read once and cached in memory keyed by story id. Load
failures are logged and resolve to an empty block list (not cached, so a
later request re-reads the file).

Story id 0 means "every configured story" (STORY_IDS, default 1,2).
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from ..infra.data_paths import (
    get_default_story_ids,
    get_story_file_pattern,
    get_story_root,
)
from .models import StoryBlock

logger = logging.getLogger(__name__)

StoryIdSpec = Union[int, str, Sequence[Union[int, str]], None]


def normalize_story_ids(story_ids: StoryIdSpec, default_ids: Sequence[int]) -> List[int]:
    """
    Normalize a story id specification into a list of story ids.

    Accepts an int, a numeric string, a comma-separated string, a sequence of
    those, or None. 0 (or None) expands to the default story ids. Invalid
    entries are logged and skipped.

    Args:
        story_ids: Story id specification
        default_ids: Ids used for 0 / None

    Returns:
        List[int]: Story ids, duplicates removed, order preserved
    """
    if story_ids is None:
        return list(default_ids)

    if isinstance(story_ids, (int, str)):
        raw_items: Iterable = str(story_ids).split(",")
    else:
        raw_items = story_ids

    result: List[int] = []
    for item in raw_items:
        try:
            story_id = int(str(item).strip())
        except ValueError:
            logger.warning(f"[StoryStore] Ignoring invalid story id: {item!r}")
            continue
        expanded = list(default_ids) if story_id == 0 else [story_id]
        for sid in expanded:
            if sid not in result:
                result.append(sid)
    return result


class StoryStore:
    """
    Loads and caches story definitions.

    Exposes blocks by id, by type, and by range (everything before a block).
    """

    def __init__(
        self,
        story_root: Optional[Union[str, Path]] = None,
        file_pattern: Optional[str] = None,
        default_story_ids: Optional[Sequence[int]] = None,
    ):
        """
        Initialize the story store.

        Args:
            story_root: Directory holding story files. If None, uses STORY_ROOT_DIR.
            file_pattern: Path below the root containing {story_id}.
            default_story_ids: Ids for story id 0. If None, uses STORY_IDS.
        """
        self.story_root = Path(story_root) if story_root else get_story_root()
        self.file_pattern = file_pattern or get_story_file_pattern()
        self.default_story_ids = list(default_story_ids or get_default_story_ids())
        self._cache: Dict[int, List[StoryBlock]] = {}

    def story_path(self, story_id: int) -> Path:
        """Get the file path for a story id."""
        return self.story_root / self.file_pattern.format(story_id=story_id)

    def resolve_story_ids(self, story_ids: StoryIdSpec) -> List[int]:
        """Normalize a story id specification against this store's defaults."""
        return normalize_story_ids(story_ids, self.default_story_ids)

    def invalidate(self, story_id: Optional[int] = None) -> None:
        """Drop one cached story, or the whole cache when story_id is None."""
        if story_id is None:
            self._cache.clear()
        else:
            self._cache.pop(story_id, None)

    def _read_story_file(self, story_id: int) -> Optional[List[StoryBlock]]:
        path = self.story_path(story_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.error(f"[StoryStore] Story file not found (ID: {story_id}): {path}")
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"[StoryStore] Error loading story file (ID: {story_id}): {e}")
            return None

        raw_blocks = data.get("blocks") if isinstance(data, dict) else None
        if not isinstance(raw_blocks, list):
            logger.error(f"[StoryStore] Story file has no block list (ID: {story_id}): {path}")
            return None

        blocks = [
            StoryBlock.from_dict(raw, story_id=story_id)
            for raw in raw_blocks
            if isinstance(raw, dict)
        ]
        logger.info(f"[StoryStore] Loaded story {story_id}: {len(blocks)} blocks")
        return blocks

    async def load_story(self, story_id: int) -> List[StoryBlock]:
        """
        Load one story's blocks, from cache when available.

        Args:
            story_id: Numeric story id

        Returns:
            List[StoryBlock]: Blocks in story order (empty on failure)
        """
        cached = self._cache.get(story_id)
        if cached is not None:
            return cached

        blocks = await asyncio.to_thread(self._read_story_file, story_id)
        if blocks is None:
            return []

        self._cache[story_id] = blocks
        return blocks

    async def get_blocks(self, story_ids: StoryIdSpec = None) -> List[StoryBlock]:
        """
        Get the combined blocks of one or more stories, in story order.

        Args:
            story_ids: Story id specification (0 / None for all stories)

        Returns:
            List[StoryBlock]: Concatenated blocks
        """
        ids = self.resolve_story_ids(story_ids)
        stories = await asyncio.gather(*(self.load_story(sid) for sid in ids))
        combined: List[StoryBlock] = []
        for blocks in stories:
            combined.extend(blocks)
        return combined

    async def blocks_before(
        self,
        block_id: Optional[str],
        story_ids: StoryIdSpec = None,
        block_type: Optional[str] = None,
    ) -> List[StoryBlock]:
        """
        Get all blocks strictly before a block (exclusive), optionally filtered by type.

        If block_id is None or not found, every block of the stories is returned.

        Args:
            block_id: Block to stop at (not included)
            story_ids: Story id specification
            block_type: Only keep blocks of this type

        Returns:
            List[StoryBlock]: Filtered blocks in story order
        """
        blocks = await self.get_blocks(story_ids)

        if block_id:
            index = next((i for i, b in enumerate(blocks) if b.id == block_id), None)
            if index is None:
                logger.debug(f"[StoryStore] Block {block_id} not found, using all blocks")
            else:
                blocks = blocks[:index]

        if block_type:
            blocks = [b for b in blocks if b.type == block_type]

        return blocks

    async def blocks_of_type(self, block_type: str, story_ids: StoryIdSpec = None) -> List[StoryBlock]:
        """Get every block of a type across the given stories."""
        return [b for b in await self.get_blocks(story_ids) if b.type == block_type]

    async def find_block(self, block_id: str, story_ids: StoryIdSpec = None) -> Optional[StoryBlock]:
        """
        Find a block by id.

        Args:
            block_id: Block id
            story_ids: Stories to search (default: all configured stories)

        Returns:
            StoryBlock or None when not found
        """
        for block in await self.get_blocks(story_ids):
            if block.id == block_id:
                return block
        return None

    async def story_id_of(self, block_id: str) -> Optional[int]:
        """Get the id of the story containing a block."""
        block = await self.find_block(block_id)
        return block.story_id if block else None
