"""
Placeholder grammar - tokenizer and parser for {get ...} queries.

Recognized forms (inner text after "get", whitespace-normalized,
case-insensitive):
- story so far for this player / compiled story for this player
- story so far for nobody
- codename
- answer of question#<id> from this player
- decisions of question#<id|id,id|all> by <this player|all>, from story <n|n,n>

Placeholders never nest, so a single regex scan finds them all. Parsing
returns one query variant per placeholder; anything unrecognized becomes an
UnknownQuery carrying the reason, so substitution logic never has to look
at raw text.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Tuple, Union

logger = logging.getLogger(__name__)

PLACEHOLDER_REGEX = re.compile(r"\{(get\s+[^{}]*)\}")

TARGET_THIS_PLAYER = "thisPlayer"
TARGET_ALL = "all"
TARGET_NOBODY = "nobody"

_COMPILED_STORY_REGEX = re.compile(
    r"^(?:compiled story|story so far) for (this player|nobody)$", re.IGNORECASE
)
_CODENAME_REGEX = re.compile(r"^codename$", re.IGNORECASE)
_ANSWER_REGEX = re.compile(
    r"^answer\s+of\s+question#([a-zA-Z0-9\-]+)\s+from\s+this\s+player$", re.IGNORECASE
)
_ANSWER_LOOSE_REGEX = re.compile(
    r"answer.*question#([a-zA-Z0-9\-]+).*this player", re.IGNORECASE
)
_DECISIONS_REGEX = re.compile(
    r"^decisions of question#([a-zA-Z0-9\-,]+) by (this player|all), from story ([0-9,]+)$",
    re.IGNORECASE,
)

EXPECTED_FORMATS = (
    '"story so far for this player", "story so far for nobody", "codename", '
    '"answer of question#[ID] from this player", or '
    '"decisions of question#[ID] by [this player|all], from story [ID]"'
)


@dataclass(frozen=True)
class Placeholder:
    """A {get ...} placeholder found in text."""

    full_match: str
    inner_content: str
    start: int
    end: int


@dataclass(frozen=True)
class CompiledStoryQuery:
    target: str = TARGET_THIS_PLAYER


@dataclass(frozen=True)
class DecisionsQuery:
    question_ids: Tuple[str, ...]
    target: str
    story_ids: Tuple[str, ...]

    @property
    def is_all(self) -> bool:
        return "all" in self.question_ids


@dataclass(frozen=True)
class AnswerQuery:
    question_id: str


@dataclass(frozen=True)
class CodenameQuery:
    pass


@dataclass(frozen=True)
class UnknownQuery:
    original_text: str
    error: str = field(default="")


PlaceholderQuery = Union[
    CompiledStoryQuery, DecisionsQuery, AnswerQuery, CodenameQuery, UnknownQuery
]


def _split_ids(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def find_placeholders(text: str) -> List[Placeholder]:
    """
    Find all {get ...} placeholders in text.

    Args:
        text: Text to scan

    Returns:
        List[Placeholder]: Matches in order of appearance
    """
    if not isinstance(text, str) or "{" not in text or "}" not in text:
        return []

    return [
        Placeholder(
            full_match=match.group(0),
            inner_content=match.group(1),
            start=match.start(),
            end=match.end(),
        )
        for match in PLACEHOLDER_REGEX.finditer(text)
    ]


def parse_placeholder(inner_content: str) -> PlaceholderQuery:
    """
    Classify a placeholder's inner content into a query.

    Args:
        inner_content: Text between the braces (starting with "get")

    Returns:
        PlaceholderQuery: Parsed query, UnknownQuery when unrecognized
    """
    normalized = re.sub(r"\s+", " ", inner_content.strip())

    if not normalized.lower().startswith("get "):
        return UnknownQuery(
            original_text=inner_content,
            error='Invalid placeholder format: must start with "get"',
        )

    query_text = normalized[4:].strip()

    match = _COMPILED_STORY_REGEX.match(query_text)
    if match:
        target = TARGET_NOBODY if match.group(1).lower() == "nobody" else TARGET_THIS_PLAYER
        return CompiledStoryQuery(target=target)

    if _CODENAME_REGEX.match(query_text):
        return CodenameQuery()

    match = _ANSWER_REGEX.match(query_text)
    if match:
        return AnswerQuery(question_id=match.group(1).strip())

    match = _DECISIONS_REGEX.match(query_text)
    if match:
        target = TARGET_THIS_PLAYER if match.group(2).lower() == "this player" else TARGET_ALL
        question_ids = _split_ids(match.group(1))
        story_ids = _split_ids(match.group(3))
        if question_ids and story_ids:
            return DecisionsQuery(
                question_ids=question_ids,
                target=target,
                story_ids=story_ids,
            )

    # Loose answer form for inconsistent spacing/wording
    if not query_text.lower().startswith("decisions"):
        match = _ANSWER_LOOSE_REGEX.search(query_text)
        if match:
            logger.info(f"[Placeholder] Matched answer query with loose pattern: {query_text}")
            return AnswerQuery(question_id=match.group(1).strip())

    return UnknownQuery(
        original_text=inner_content,
        error=f'Unrecognized placeholder format. Got: "{query_text}". Expected formats: {EXPECTED_FORMATS}',
    )
