"""
Prompt Builder - assembles the final prompt for a dynamic block.

A prompt is made of:
- the author's message, with {get ...} placeholders already resolved
- a context section built from the block's ContextRefs, grouped by station
- optionally the narrative of the current passage before the dynamic block
- block-type instructions followed by the strict JSON response format

Instruction templates are filled with str.format. Authoring parameters that
are missing fall back to defaults; a template naming a field that has no
value at all is a configuration error (PromptTemplateError).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..ledger.choice_ledger import ChoiceLedger
from .errors import PromptTemplateError
from .interpreter import InterpretContext, PlaceholderInterpreter
from .models import ContextEntry, ContextRef
from .story_store import StoryStore

logger = logging.getLogger(__name__)

VARIANT_OPTION = "dynamic-option"
VARIANT_TEXT = "dynamic-text"
VARIANT_WORD = "dynamic-word"

SYSTEM_PROMPT = "You are a great, nuanced story writer who specializes in creative writing in Chinese."

INSTRUCTION_TEMPLATES: Dict[str, str] = {
    VARIANT_OPTION: (
        "You are a creative storyteller. Please generate {option_count} distinct and compelling options for a story choice.\n"
        "These options should be interesting, diverse, and appropriate for the context."
    ),
    VARIANT_TEXT: (
        "You are a creative storyteller. Please generate a passage of approximately {sentence_count} sentences.\n"
        "The text should be vivid, engaging, and should fit naturally within the story context."
    ),
    VARIANT_WORD: (
        "You are a creative storyteller. Please generate a single {lexicon_category} that fits the story context.\n"
        "The word should be expressive, evocative, and relevant to the narrative situation."
    ),
}

DEFAULT_INSTRUCTION_PARAMS: Dict[str, Any] = {
    "option_count": 3,
    "sentence_count": 5,
    "lexicon_category": "word",
}

_RESPONSE_FORMAT_HEADER = (
    "你必须严格按照以下JSON格式回复。其他格式都不被接受：\n"
    "1. \"reasoning\"：(必填) 你的创作思路和考虑"
)

RESPONSE_FORMATS: Dict[str, str] = {
    VARIANT_OPTION: (
        "2. \"deliverable\"：(必填) 一个包含3-5个选项的数组，格式如[\"选项1\", \"选项2\", \"选项3\"]\n\n"
        "严格遵守此JSON Schema:\n"
        '{"$schema":"http://json-schema.org/draft-04/schema#","type":"object","properties":'
        '{"reasoning":{"type":"string","minLength":1},"deliverable":{"type":"array","items":{"type":"string"},'
        '"minItems":3,"maxItems":5}},"required":["reasoning","deliverable"],"additionalProperties":false}'
    ),
    VARIANT_TEXT: (
        "2. \"deliverable\"：(必填) 生成的文本内容，不得为空\n\n"
        "严格遵守此JSON Schema:\n"
        '{"$schema":"http://json-schema.org/draft-04/schema#","type":"object","properties":'
        '{"reasoning":{"type":"string","minLength":1},"deliverable":{"type":"string","minLength":1}},'
        '"required":["reasoning","deliverable"],"additionalProperties":false}'
    ),
    VARIANT_WORD: (
        "2. \"deliverable\"：(必填) 一个词语，不得为空\n\n"
        "严格遵守此JSON Schema:\n"
        '{"$schema":"http://json-schema.org/draft-04/schema#","type":"object","properties":'
        '{"reasoning":{"type":"string","minLength":1},"deliverable":{"type":"string","minLength":1}},'
        '"required":["reasoning","deliverable"],"additionalProperties":false}'
    ),
}

_RESPONSE_FORMAT_FOOTER = "注意：回复必须是可以被JSON.parse()直接解析的格式。"

BASE_PROMPT_TEMPLATE = "{message}\n{context}\n\n{instructions}"
EXTENDED_PROMPT_TEMPLATE = (
    "{message}\n{context}\n\n"
    "以下是本段落中动态内容之前的故事文本:\n{text_before_dynamic}\n\n"
    "{instructions}"
)

STATION_LABELS = {
    1: "第一站",
    2: "第二站",
    3: "第三站",
    4: "第四站",
    5: "第五站",
}
UNKNOWN_STATION_LABEL = "其他"


@dataclass
class PassageContext:
    """Narrative of the current passage before the dynamic block."""

    text_before_dynamic: Optional[str] = None


def block_variant(generate_options: bool, lexicon_category: Optional[str] = None) -> str:
    """Pick the instruction variant for a dynamic block's authoring parameters."""
    if generate_options:
        return VARIANT_OPTION
    if lexicon_category:
        return VARIANT_WORD
    return VARIANT_TEXT


def _fill_template(name: str, template: str, params: Dict[str, Any]) -> str:
    try:
        return template.format(**params)
    except KeyError as e:
        raise PromptTemplateError(name, str(e.args[0])) from e
    except (IndexError, ValueError) as e:
        raise PromptTemplateError(name, str(e)) from e


def build_response_format(variant: str) -> str:
    """Build the strict JSON response-format block for a variant."""
    body = RESPONSE_FORMATS.get(variant)
    if body is None:
        raise PromptTemplateError(variant, "response format")
    return f"{_RESPONSE_FORMAT_HEADER}\n{body}\n{_RESPONSE_FORMAT_FOOTER}"


def build_block_instructions(
    variant: str,
    option_count: Optional[int] = None,
    sentence_count: Optional[int] = None,
    lexicon_category: Optional[str] = None,
) -> str:
    """
    Build block-type instructions from authoring parameters.

    Args:
        variant: dynamic-option, dynamic-text or dynamic-word
        option_count: Number of options to generate
        sentence_count: Approximate sentence count for text
        lexicon_category: Kind of word to generate

    Returns:
        str: Natural-language instruction followed by the response format

    Raises:
        PromptTemplateError: If the variant is unknown or a template field has no value
    """
    template = INSTRUCTION_TEMPLATES.get(variant)
    if template is None:
        raise PromptTemplateError(variant, "instruction template")

    params = dict(DEFAULT_INSTRUCTION_PARAMS)
    supplied = {
        "option_count": option_count,
        "sentence_count": sentence_count,
        "lexicon_category": lexicon_category,
    }
    params.update({key: value for key, value in supplied.items() if value is not None})

    instruction = _fill_template(variant, template, params)
    return f"{instruction}\n\n{build_response_format(variant)}"


def _station_label(story_id: Optional[int]) -> str:
    if story_id is None:
        return UNKNOWN_STATION_LABEL
    return STATION_LABELS.get(story_id, f"第{story_id}站")


def format_context_string(entries: Sequence[ContextEntry]) -> str:
    """
    Format context entries into a prompt section.

    Entries are grouped by originating story in ascending story order
    (unknown stories last); each is an indexed line with the chosen text and,
    when known, the full option set.

    Args:
        entries: Context entries in any order

    Returns:
        str: Context section ("" when there are no entries)
    """
    if not entries:
        return ""

    groups: Dict[Optional[int], List[ContextEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.story_id, []).append(entry)

    ordered_keys = sorted(
        groups.keys(),
        key=lambda sid: (sid is None, sid if sid is not None else 0),
    )

    lines = ["", "", "上下文信息:"]
    index = 0
    for story_id in ordered_keys:
        lines.append(f"{_station_label(story_id)}:")
        for entry in groups[story_id]:
            index += 1
            if entry.chosen_text:
                line = f"上下文 {index}: 玩家从多个选项中选择了 \"{entry.chosen_text}\""
                if entry.available_options:
                    line += "\n可选项: " + ", ".join(entry.available_options)
            else:
                line = f"上下文 {index}: 无选择记录"
            lines.append(line)

    return "\n".join(lines)


async def fetch_context_info(
    context_refs: Sequence[ContextRef],
    player_id: Optional[str],
    ledger: ChoiceLedger,
    story_store: StoryStore,
) -> List[ContextEntry]:
    """
    Collect the recorded choices referenced by a block's context.

    includeAll references fan out to every player's choice on that block;
    other references use the current player's choice only.

    Returns:
        List[ContextEntry]: Entries in reference order
    """
    entries: List[ContextEntry] = []
    for ref in context_refs:
        if not ref.value:
            continue

        story_id = await story_store.story_id_of(ref.value)

        if ref.include_all:
            choices = await ledger.choices_for_block(ref.value)
        elif player_id:
            choice = await ledger.get_choice(player_id, ref.value)
            choices = [choice] if choice else []
        else:
            choices = []

        for choice in choices:
            entries.append(ContextEntry(
                chosen_text=choice.chosen_text,
                available_options=list(choice.available_options),
                story_id=story_id,
                block_id=ref.value,
            ))

    logger.debug(f"[PromptBuilder] Collected {len(entries)} context entries from {len(context_refs)} refs")
    return entries


async def hydrate_message(
    interpreter: PlaceholderInterpreter,
    message: Optional[str],
    context: InterpretContext,
) -> str:
    """Resolve {get ...} placeholders in the author's message."""
    message = message or ""
    if "{get" not in message:
        return message
    return await interpreter.interpret(message, context)


def craft_prompt(
    message: Optional[str],
    context_string: str,
    instructions: str,
    passage_context: Optional[PassageContext] = None,
) -> str:
    """
    Combine message, context and instructions into the final prompt.

    The extended template is used when passage_context carries
    text_before_dynamic (even an empty string).

    Args:
        message: Author's message with placeholders resolved
        context_string: Output of format_context_string
        instructions: Output of build_block_instructions
        passage_context: Optional passage narrative

    Returns:
        str: Prompt sent to the LLM
    """
    params = {
        "message": message or "",
        "context": context_string,
        "instructions": instructions,
    }

    if passage_context is not None and passage_context.text_before_dynamic is not None:
        params["text_before_dynamic"] = passage_context.text_before_dynamic
        return _fill_template("extended", EXTENDED_PROMPT_TEMPLATE, params)

    return _fill_template("base", BASE_PROMPT_TEMPLATE, params)


def build_system_prompt() -> str:
    """System prompt for every dynamic block."""
    return SYSTEM_PROMPT
