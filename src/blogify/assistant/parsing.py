"""
Best-effort JSON extraction from model output.

Models are asked for JSON but often wrap it in a markdown fence or answer in
prose. ``parse_json_reply`` tries, in order: the whole text as JSON, then the
first fenced code block, and finally hands back ``None`` as a
``FellBackToDefault`` so the caller substitutes its own default. It never
raises.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

T = TypeVar("T")

OUTCOME_PARSED = "parsed"
OUTCOME_EXTRACTED_FROM_FENCE = "extracted_from_fence"
OUTCOME_FELL_BACK_TO_DEFAULT = "fell_back_to_default"

_FENCE = re.compile(r"```(?:json)?[ \t]*\r?\n([\s\S]*?)\r?\n[ \t]*```")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T
    outcome: str = OUTCOME_PARSED


@dataclass(frozen=True)
class ExtractedFromFence(Generic[T]):
    value: T
    outcome: str = OUTCOME_EXTRACTED_FROM_FENCE


@dataclass(frozen=True)
class FellBackToDefault(Generic[T]):
    value: T
    outcome: str = OUTCOME_FELL_BACK_TO_DEFAULT


ParseResult = Union[Parsed[T], ExtractedFromFence[T], FellBackToDefault[T]]


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except ValueError:
        return None


def parse_json_reply(
    text: Optional[str],
    accept: Callable[[Any], bool] = lambda value: value is not None,
) -> ParseResult[Optional[Any]]:
    """
    Parse ``text`` as JSON, falling back to the first fenced code block.

    ``accept`` lets the caller reject JSON of the wrong shape, which is then
    treated like unparseable text.
    """
    if text is None:
        return FellBackToDefault(None)

    value = _loads(text.strip())
    if value is not None and accept(value):
        return Parsed(value)

    match = _FENCE.search(text)
    if match is not None:
        value = _loads(match.group(1).strip())
        if value is not None and accept(value):
            return ExtractedFromFence(value)

    return FellBackToDefault(None)
