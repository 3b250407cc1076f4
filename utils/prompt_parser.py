"""
NovelAI prompt parsing.

Turns the JSON ``Comment`` of a NovelAI PNG into a GenerationMetadata record
with a deduplicated, weighted, sourced tag list.

Weight grammar handled per comma-separated segment:
    {tag}, {{tag}}, ...   emphasis, 1.05 per level
    [tag], [[tag]], ...   de-emphasis, 0.95 per level
    W::tag::              explicit weight |W|, negative when W < 0

Grouped forms such as ``[[a, b]]`` or ``-1::a, b::`` are first expanded so
that every segment names exactly one tag.
"""
import json
import re
from typing import Iterable, List, NamedTuple, Optional

from core.models import GenerationMetadata, TagSource, WeightedTag

EMPHASIS_MULTIPLIER = 1.05
DEEMPHASIS_MULTIPLIER = 0.95

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_EXPLICIT_WEIGHT_RE = re.compile(r'(-?\d+(?:\.\d+)?)?::(.+)::')
_EXPLICIT_GROUP_RE = re.compile(r'(-?\d+(?:\.\d+)?)::((?:[^:]|:[^:])+)::')
_CURLY_GROUP_RE = re.compile(r'(\{+)([^{}]+)(\}+)')
_SQUARE_GROUP_RE = re.compile(r'(\[+)([^\[\]]+)(\]+)')
_NUMERIC_ONLY_RE = re.compile(r'[\d\s.+-]+')
_WHITESPACE_RE = re.compile(r'\s+')


class TagWeight(NamedTuple):
    name: str
    weight: float
    is_negative: bool


def normalize_tag_name(text: str) -> str:
    """Lowercase and collapse whitespace runs to a single underscore."""
    return _WHITESPACE_RE.sub('_', text.strip().lower())


def parse_tag_weight(part: str) -> Optional[TagWeight]:
    """
    Parse one prompt segment into (name, weight, is_negative).

    Returns None for empty segments and for stray numeric fragments.
    """
    text = part.strip()
    if not text:
        return None

    weight = 1.0
    is_negative = False

    explicit = _EXPLICIT_WEIGHT_RE.fullmatch(text)
    if explicit:
        raw_weight, text = explicit.group(1), explicit.group(2).strip()
        # "::tag::" with no number keeps the default weight
        if raw_weight:
            value = float(raw_weight)
            is_negative = value < 0
            weight = abs(value)
    else:
        curly = 0
        while text.startswith('{') and text.endswith('}'):
            text = text[1:-1]
            curly += 1

        square = 0
        while text.startswith('[') and text.endswith(']'):
            text = text[1:-1]
            square += 1

        if curly > 0:
            weight = pow(EMPHASIS_MULTIPLIER, curly)
        elif square > 0:
            weight = pow(DEEMPHASIS_MULTIPLIER, square)

    text = text.strip()
    if not text or _NUMERIC_ONLY_RE.fullmatch(text):
        return None

    name = normalize_tag_name(text)
    if not name:
        return None

    return TagWeight(name, weight, is_negative)


def _split_terms(content: str) -> List[str]:
    return [term.strip() for term in content.split(',') if term.strip()]


def _expand_explicit(match) -> str:
    weight = match.group(1)
    return ', '.join(f"{weight}::{term}::" for term in _split_terms(match.group(2)))


def _expand_brackets(match) -> str:
    opening, content, closing = match.groups()
    if ',' not in content or len(opening) != len(closing):
        return match.group(0)
    return ', '.join(f"{opening}{term}{closing}" for term in _split_terms(content))


def expand_control_syntax(prompt: str) -> str:
    """
    Rewrite grouped weight syntax into one weighted expression per tag.

        expand_control_syntax("[[a, b]]")     -> "[[a]], [[b]]"
        expand_control_syntax("-1::a, b::")   -> "-1::a::, -1::b::"
        expand_control_syntax("[[solo]]")     -> "[[solo]]"
    """
    result = _EXPLICIT_GROUP_RE.sub(_expand_explicit, prompt)
    result = _CURLY_GROUP_RE.sub(_expand_brackets, result)
    result = _SQUARE_GROUP_RE.sub(_expand_brackets, result)
    return result


def extract_weighted_tags(prompt: str, source: TagSource,
                          is_negative_prompt: bool = False) -> List[WeightedTag]:
    """Expand, split and weight every segment of one prompt field."""
    tags = []
    seen = set()

    for part in expand_control_syntax(prompt).split(','):
        parsed = parse_tag_weight(part)
        if parsed is None or parsed.name in seen:
            continue
        seen.add(parsed.name)
        tags.append(WeightedTag(
            name=parsed.name,
            weight=parsed.weight,
            is_negative=is_negative_prompt or parsed.is_negative,
            source=source,
        ))

    return tags


def _as_str(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    # out-of-range values cannot be stored as SQLite INTEGER
    if isinstance(value, int) and INT64_MIN <= value <= INT64_MAX:
        return value
    return None


def _as_float(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _caption(block) -> dict:
    """Return the ``caption`` object of a v4 prompt block, or {}."""
    if not isinstance(block, dict):
        return {}
    caption = block.get('caption')
    return caption if isinstance(caption, dict) else {}


def _merge(target: List[WeightedTag], seen: set, new_tags: Iterable[WeightedTag]):
    for tag in new_tags:
        if tag.name not in seen:
            seen.add(tag.name)
            target.append(tag)


def parse_prompt_data(raw_comment: str) -> GenerationMetadata:
    """
    Parse a NovelAI comment string.

    Never raises: a comment that is not a JSON object yields empty metadata
    with raw_comment preserved.
    """
    try:
        data = json.loads(raw_comment)
    except (TypeError, ValueError):
        return GenerationMetadata.empty(raw_comment)

    if not isinstance(data, dict):
        return GenerationMetadata.empty(raw_comment)

    tags: List[WeightedTag] = []
    seen = set()

    prompt = _as_str(data.get('prompt'))
    if prompt:
        _merge(tags, seen, extract_weighted_tags(prompt, TagSource.PROMPT))

    v4_caption = _caption(data.get('v4_prompt'))
    base_caption = _as_str(v4_caption.get('base_caption'))
    if base_caption:
        _merge(tags, seen, extract_weighted_tags(base_caption, TagSource.V4_BASE))

    char_captions = v4_caption.get('char_captions')
    if not isinstance(char_captions, list):
        char_captions = None
    for entry in char_captions or []:
        text = _as_str(entry.get('char_caption')) if isinstance(entry, dict) else None
        if text:
            _merge(tags, seen, extract_weighted_tags(text, TagSource.V4_CHAR))

    uc = _as_str(data.get('uc'))
    v4_negative = _as_str(_caption(data.get('v4_negative_prompt')).get('base_caption'))
    negative_text = uc or v4_negative
    if negative_text:
        _merge(tags, seen, extract_weighted_tags(negative_text, TagSource.NEGATIVE,
                                                 is_negative_prompt=True))

    return GenerationMetadata(
        raw_comment=raw_comment,
        prompt=prompt,
        negative_prompt=uc if uc is not None else v4_negative,
        seed=_as_int(data.get('seed')),
        steps=_as_int(data.get('steps')),
        scale=_as_float(data.get('scale')),
        sampler=_as_str(data.get('sampler')),
        width=_as_int(data.get('width')),
        height=_as_int(data.get('height')),
        v4_base_caption=base_caption,
        v4_char_captions=char_captions,
        tags=tags,
    )
