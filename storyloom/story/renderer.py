"""
Block Renderer - converts story blocks into text.

The rendered text is used both for human-readable compilation of a
player's story and for feeding prior story content back into prompts, so
resolved and unresolved choices must stay distinguishable.
"""

from typing import Iterable, List, Optional, Sequence

from .models import BlockType, BlockView, Content

ID_PREFIX_LENGTH = 8


def _id_prefix(block_id: str) -> str:
    return f"{block_id[:ID_PREFIX_LENGTH]}..."


def _join_content(content: Content, separator: str) -> str:
    if isinstance(content, list):
        return separator.join(str(item) for item in content)
    return str(content)


def _render_scene_header(view: BlockView, prior_text: str) -> str:
    prefix = "\n\n" if prior_text else ""
    return f"{prefix}{view.block.title_name or ''}\n"


def _render_plain(view: BlockView) -> str:
    return view.block.text or ""


def _render_static(view: BlockView) -> str:
    block = view.block
    choice = view.player_choice
    if choice is None:
        return f"<choice not made> (options: {', '.join(block.options)})"

    # Snapshot taken at choice time wins over the authored list
    options: Sequence[str] = choice.available_options or list(block.options)
    chosen_text = choice.chosen_text
    if choice.chosen_index is not None and 0 <= choice.chosen_index < len(options):
        chosen_text = options[choice.chosen_index]
    return f"<{chosen_text}> (choices given: {', '.join(options)})"


def _render_dynamic(view: BlockView) -> str:
    block = view.block
    choice = view.player_choice

    if block.generate_options:
        if choice is not None and choice.chosen_text:
            return f"<{choice.chosen_text}> (dynamic choices: {', '.join(choice.available_options)})"
        if view.dynamic_content:
            return _join_content(view.dynamic_content, ", ")
        return f"<dynamic choice not made for block {_id_prefix(block.id)}>"

    if view.dynamic_content:
        return _join_content(view.dynamic_content, "\n")
    return f"<dynamic content not generated for block {_id_prefix(block.id)}>"


def _render_unknown(view: BlockView) -> str:
    return f"<{view.block.type} block: {_id_prefix(view.block.id)}>"


def render_block(view: BlockView, prior_text: str = "") -> str:
    """
    Render a single block as text.

    Args:
        view: Block with the player's recorded data (if any)
        prior_text: Text compiled so far (scene headers depend on it)

    Returns:
        str: Text representation of the block
    """
    kind = view.block.kind
    if kind is BlockType.SCENE_HEADER:
        return _render_scene_header(view, prior_text)
    elif kind is BlockType.PLAIN:
        return _render_plain(view)
    elif kind is BlockType.STATIC:
        return _render_static(view)
    elif kind is BlockType.DYNAMIC:
        return _render_dynamic(view)
    return _render_unknown(view)


def compile_story_text(views: Iterable[BlockView]) -> str:
    """
    Concatenate rendered blocks into one story text.

    Args:
        views: Blocks in story order

    Returns:
        str: Compiled story text
    """
    compiled = ""
    for view in views:
        compiled += render_block(view, compiled)
    return compiled


def split_passages(views: Sequence[BlockView]) -> List[List[BlockView]]:
    """
    Split blocks into passages (runs of blocks between scene headers).

    A scene header starts a new passage and belongs to it.
    """
    passages: List[List[BlockView]] = []
    current: Optional[List[BlockView]] = None
    for view in views:
        if view.block.kind is BlockType.SCENE_HEADER or current is None:
            current = []
            passages.append(current)
        current.append(view)
    return passages
