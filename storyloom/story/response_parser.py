"""
Response Parser - recovers the deliverable from raw LLM output.

LLM replies are asked to be strict JSON ({"reasoning": ..., "deliverable": ...})
but often arrive fenced, half-formed or as free prose. Recovery runs an
ordered list of strategies; each one is total (never raises) and returns
None when it cannot produce a usable, non-empty result:

1. JSON parse of the first {...} span with a "deliverable" field
2. Regex extraction of the "deliverable" value
3. Heuristics (list items, short lines, Chinese markers, paragraphs)
4. Fixed fallback

A fenced code block in the reply is stripped first and is authoritative.
"""

import json
import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

from .models import Content
from .prompt_builder import VARIANT_OPTION, VARIANT_TEXT, VARIANT_WORD, block_variant

logger = logging.getLogger(__name__)

FALLBACK_OPTIONS = ["选项 1", "选项 2", "选项 3", "选项 4"]
FALLBACK_TEXT = "无法生成有效内容。"
FALLBACK_WORD = "词语"
FALLBACK_STRATEGY = "fallback"

_FENCED_BLOCK_REGEX = re.compile(r"```(?:json)?([\s\S]*?)```")
_JSON_SPAN_REGEX = re.compile(r"\{[\s\S]*\}")
_JSON_TAIL_REGEX = re.compile(r"\{[\s\S]*$")
_DELIVERABLE_ARRAY_REGEX = re.compile(r'"deliverable"\s*:\s*\[([\s\S]*?)\]')
_DELIVERABLE_STRING_REGEX = re.compile(r'"deliverable"\s*:\s*"((?:[^"\\]|\\.)*)(?:"|$)')
_COMMA_OUTSIDE_QUOTES_REGEX = re.compile(r',(?=(?:[^"]*"[^"]*")*[^"]*$)')
_LIST_ITEM_REGEX = re.compile(r"^\s*(?:\d+[.)、]|[*\-•])\s*(\S.*)$", re.MULTILINE)

_OPTION_MARKERS = (
    re.compile(r"最终选项[:：]([\s\S]*?)(?:$|思考|最终)"),
    re.compile(r"选项[:：]([\s\S]*?)(?:$|思考|选择)"),
    re.compile(r"选择[:：]([\s\S]*?)(?:$|思考|分析)"),
)
_TEXT_MARKERS = (
    re.compile(r"最终文本[:：]([\s\S]*?)(?:$|思考|最终)"),
    re.compile(r"内容[:：]([\s\S]*?)(?:$|思考|分析)"),
    re.compile(r"段落[:：]([\s\S]*?)(?:$|思考|分析)"),
)
_WORD_MARKERS = (
    re.compile(r"最终词语[:：]([\s\S]*?)(?:$|思考|最终)"),
    re.compile(r"词语[:：]([\s\S]*?)(?:$|思考|分析)"),
    re.compile(r"单词[:：]([\s\S]*?)(?:$|思考|分析)"),
)

Strategy = Callable[[str, str], Optional[Content]]


def clean_message(message: Optional[str]) -> str:
    """
    Normalize a raw LLM reply.

    If the reply contains a fenced code block, its body is returned.
    Otherwise stray fence markers are removed.
    """
    if not message:
        return ""

    fenced = _FENCED_BLOCK_REGEX.search(message)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()

    cleaned = re.sub(r"```[\w]*\n?", "", message).replace("```", "")
    return cleaned.strip()


def _unescape(value: str) -> str:
    return value.replace('\\"', '"').replace("\\n", "\n").strip()


def _clean_options(items: Sequence[object]) -> Optional[List[str]]:
    options = [str(item).strip() for item in items if item is not None and str(item).strip()]
    return options or None


def _coerce_deliverable(value: object, variant: str) -> Optional[Content]:
    """Check a parsed deliverable against the variant's expected shape."""
    if variant == VARIANT_OPTION:
        if isinstance(value, list):
            return _clean_options(value)
        return None

    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list) and variant == VARIANT_TEXT:
        lines = _clean_options(value)
        return "\n".join(lines) if lines else None
    return None


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------


def parse_json_deliverable(reply: str, variant: str) -> Optional[Content]:
    """Strict JSON parse of the first {...} span."""
    match = _JSON_SPAN_REGEX.search(reply)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0), strict=False)
    except ValueError:
        logger.debug("[Parser] Standard JSON parsing failed, falling back to regex parser")
        return None
    if not isinstance(parsed, dict) or "deliverable" not in parsed:
        return None
    return _coerce_deliverable(parsed["deliverable"], variant)


def extract_deliverable_regex(reply: str, variant: str) -> Optional[Content]:
    """Regex extraction of the "deliverable" value from malformed JSON."""
    if variant == VARIANT_OPTION:
        match = _DELIVERABLE_ARRAY_REGEX.search(reply)
        if not match:
            return None
        items = [
            _unescape(re.sub(r"^[\"']+|[\"']+$", "", item.strip()))
            for item in _COMMA_OUTSIDE_QUOTES_REGEX.split(match.group(1))
        ]
        return _clean_options(items)

    match = _DELIVERABLE_STRING_REGEX.search(reply)
    if not match:
        return None
    return _unescape(match.group(1)) or None


def _first_marker_match(reply: str, patterns: Sequence["re.Pattern[str]"]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(reply)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def _looks_like_json(line: str) -> bool:
    return "{" in line or "}" in line


def strip_json_debris(reply: str) -> str:
    """Remove fenced blocks, {...} spans and an unterminated {... tail."""
    prose = re.sub(r"```[\s\S]*?```", "", reply)
    prose = _JSON_SPAN_REGEX.sub("", prose)
    prose = _JSON_TAIL_REGEX.sub("", prose)
    return prose.strip()


def extract_options_heuristic(reply: str) -> Optional[List[str]]:
    """Recover options from list items, short lines or Chinese option markers."""
    items = _clean_options(_LIST_ITEM_REGEX.findall(reply))
    if items:
        logger.info(f"[Parser] Extracted {len(items)} list-item options as fallback")
        return items

    lines = [
        line.strip() for line in re.split(r"\n+", reply)
        if line.strip()
        and len(line.strip()) < 100
        and not _looks_like_json(line)
        and ":" not in line
        and "：" not in line
    ]
    if 2 <= len(lines) <= 5:
        logger.info(f"[Parser] Extracted {len(lines)} line-based options as fallback")
        return lines

    marked = _first_marker_match(strip_json_debris(reply), _OPTION_MARKERS)
    if marked:
        options = _clean_options(re.split(r"\n+|[,，、|]", marked))
        if options:
            logger.info(f"[Parser] Extracted {len(options)} marker options as fallback")
            return options
    return None


def extract_text_heuristic(reply: str) -> Optional[str]:
    """Recover text from Chinese markers, the longest paragraph or the stripped reply."""
    # Markers inside JSON (e.g. a "reasoning" value) must not be picked up
    prose = strip_json_debris(reply)

    marked = _first_marker_match(prose, _TEXT_MARKERS)
    if marked:
        return marked

    paragraphs = [
        p.strip() for p in re.split(r"\n\n+", prose)
        if len(p.strip()) > 30
        and not _looks_like_json(p)
        and "function" not in p
        and "reasoning" not in p
    ]
    if paragraphs:
        logger.info("[Parser] Using longest paragraph as fallback text")
        return max(paragraphs, key=len)

    return prose or None


def extract_word_heuristic(reply: str) -> Optional[str]:
    """Recover a single word from Chinese markers or the shortest short line."""
    marked = _first_marker_match(strip_json_debris(reply), _WORD_MARKERS)
    if marked:
        return marked

    words = [
        line.strip() for line in re.split(r"\n+", reply)
        if line.strip()
        and len(line.strip()) < 15
        and not _looks_like_json(line)
        and ":" not in line
        and "：" not in line
    ]
    if words:
        return min(words, key=len)
    return None


def extract_heuristic(reply: str, variant: str) -> Optional[Content]:
    if variant == VARIANT_OPTION:
        return extract_options_heuristic(reply)
    if variant == VARIANT_WORD:
        return extract_word_heuristic(reply)
    return extract_text_heuristic(reply)


def fixed_fallback(reply: str, variant: str) -> Content:
    logger.warning(f"[Parser] All recovery strategies failed, using fixed fallback for {variant}")
    if variant == VARIANT_OPTION:
        return list(FALLBACK_OPTIONS)
    if variant == VARIANT_WORD:
        return FALLBACK_WORD
    return FALLBACK_TEXT


STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("json", parse_json_deliverable),
    ("regex", extract_deliverable_regex),
    ("heuristic", extract_heuristic),
    (FALLBACK_STRATEGY, fixed_fallback),
)


def parse_response_with_strategy(
    raw_reply: Optional[str],
    generate_options: bool = False,
    variant: Optional[str] = None,
) -> Tuple[Content, str]:
    """
    Recover the deliverable and report which strategy produced it.

    Args:
        raw_reply: Raw reply text
        generate_options: Option mode (list result) when True
        variant: Explicit variant (dynamic-option, dynamic-text, dynamic-word);
            overrides generate_options

    Returns:
        Tuple of (content, strategy name). The name is FALLBACK_STRATEGY when
        nothing could be recovered and the content is a fixed placeholder.
    """
    if variant not in (VARIANT_OPTION, VARIANT_TEXT, VARIANT_WORD):
        variant = block_variant(generate_options)

    reply = clean_message(raw_reply)

    for name, strategy in STRATEGIES:
        try:
            result = strategy(reply, variant)
        except Exception as e:
            logger.error(f"[Parser] Strategy '{name}' raised: {e}", exc_info=True)
            continue
        if result:
            logger.info(f"[Parser] Recovered {variant} deliverable via {name} strategy")
            return result, name

    return fixed_fallback(reply, variant), FALLBACK_STRATEGY


def parse_response(
    raw_reply: Optional[str],
    generate_options: bool = False,
    variant: Optional[str] = None,
) -> Content:
    """
    Recover the deliverable from a raw LLM reply.

    Returns:
        Content: Non-empty list of options, or non-empty text
    """
    content, _ = parse_response_with_strategy(raw_reply, generate_options, variant)
    return content
