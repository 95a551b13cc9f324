"""
Story domain models.

- StoryBlock: one authored unit of story content (immutable once loaded)
- ContextRef: pointer from a dynamic block to an earlier block
- PlayerChoice: a player's recorded selection on a block (options snapshotted)
- DynamicContent: LLM output recorded for a block
- BlockView: a block enriched with one player's choice and content, used for rendering
- ContextEntry: a recorded choice folded into a prompt

Persisted dictionaries use the camelCase keys of the shared document.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

Content = Union[str, List[str]]


class BlockType(str, Enum):
    """Authored block types."""

    PLAIN = "plain"
    STATIC = "static"
    SCENE_HEADER = "scene-header"
    DYNAMIC = "dynamic"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["BlockType"]:
        """Return the BlockType for a raw type string, or None when unknown."""
        try:
            return cls(raw)
        except ValueError:
            return None


def now_iso() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ContextRef:
    """Reference from a dynamic block to an earlier block whose choice feeds its prompt."""

    value: str
    include_all: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextRef":
        return cls(
            value=str(data.get("value") or ""),
            include_all=data.get("includeAll") is True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "includeAll": self.include_all}


@dataclass(frozen=True)
class StoryBlock:
    """One authored block of a story file."""

    id: str
    type: str
    text: Optional[str] = None
    options: Tuple[str, ...] = ()
    title_name: Optional[str] = None
    prompt: Optional[str] = None
    generate_options: bool = False
    context: Tuple[ContextRef, ...] = ()
    story_id: Optional[int] = None

    @property
    def kind(self) -> Optional[BlockType]:
        return BlockType.parse(self.type)

    @property
    def is_question(self) -> bool:
        """Static blocks and option-generating dynamic blocks carry choices."""
        return self.kind is BlockType.STATIC or (
            self.kind is BlockType.DYNAMIC and self.generate_options
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], story_id: Optional[int] = None) -> "StoryBlock":
        options = data.get("options") or []
        context = data.get("context") or []
        return cls(
            id=str(data.get("id", "")),
            type=str(data.get("type", "")),
            text=data.get("text"),
            options=tuple(str(o) for o in options),
            title_name=data.get("titleName"),
            prompt=data.get("prompt"),
            generate_options=data.get("generateOptions") is True,
            context=tuple(
                ContextRef.from_dict(c) for c in context if isinstance(c, dict)
            ),
            story_id=story_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type}
        if self.text is not None:
            data["text"] = self.text
        if self.options:
            data["options"] = list(self.options)
        if self.title_name is not None:
            data["titleName"] = self.title_name
        if self.prompt is not None:
            data["prompt"] = self.prompt
        if self.generate_options:
            data["generateOptions"] = True
        if self.context:
            data["context"] = [c.to_dict() for c in self.context]
        if self.story_id is not None:
            data["storyId"] = self.story_id
        return data


@dataclass
class PlayerChoice:
    """A player's selection on a block, with the options offered at that moment."""

    chosen_text: str
    available_options: List[str] = field(default_factory=list)
    chosen_index: Optional[int] = None
    block_type: Optional[str] = None
    instruction: Optional[str] = None
    context_blocks: List[Any] = field(default_factory=list)
    timestamp: str = field(default_factory=now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerChoice":
        return cls(
            chosen_text=data.get("chosenText") or "",
            available_options=list(data.get("availableOptions") or []),
            chosen_index=data.get("chosenIndex"),
            block_type=data.get("blockType"),
            instruction=data.get("instruction"),
            context_blocks=list(data.get("contextBlocks") or []),
            timestamp=data.get("timestamp") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockType": self.block_type,
            "availableOptions": list(self.available_options),
            "chosenIndex": self.chosen_index,
            "chosenText": self.chosen_text,
            "instruction": self.instruction,
            "contextBlocks": list(self.context_blocks),
            "timestamp": self.timestamp,
        }


@dataclass
class DynamicContent:
    """Generated content for a dynamic block."""

    content: Content
    block_type: str = "dynamic"
    timestamp: str = field(default_factory=now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DynamicContent":
        return cls(
            content=data.get("content", ""),
            block_type=data.get("blockType") or "dynamic",
            timestamp=data.get("timestamp") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        content = list(self.content) if isinstance(self.content, list) else self.content
        return {
            "blockType": self.block_type,
            "content": content,
            "timestamp": self.timestamp,
        }


@dataclass
class BlockView:
    """A story block together with one player's recorded data for it."""

    block: StoryBlock
    player_choice: Optional[PlayerChoice] = None
    dynamic_content: Optional[Content] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.block.to_dict()
        if self.player_choice is not None:
            data["playerChoice"] = {
                "chosenIndex": self.player_choice.chosen_index,
                "chosenText": self.player_choice.chosen_text,
                "availableOptions": list(self.player_choice.available_options),
            }
        if self.dynamic_content is not None:
            data["dynamicContent"] = self.dynamic_content
        return data


@dataclass
class ContextEntry:
    """A recorded choice referenced by a dynamic block's context."""

    chosen_text: Optional[str]
    available_options: List[str] = field(default_factory=list)
    story_id: Optional[int] = None
    block_id: Optional[str] = None
