"""
Content Generation Workflows

Three stateless workflows wrap a single text-generation call each:

- ``draft(topic)``: a full blog post as ``{title, body}``
- ``seo_metadata(content, title)``: ``{title, slug, description, keywords}``
- ``calendar(recent_posts, today)``: five ``{topic, estimatedTraffic, date}``
  suggestions

The text generator is unreliable, so every workflow degrades instead of
failing: the reply is parsed as JSON, then as the first fenced code block,
and otherwise replaced by a default computed locally from the inputs. The
same default is used when the provider itself fails, with the failure
reported in ``error``. Defaults depend only on the inputs.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from blogify.assistant.parsing import (
    OUTCOME_FELL_BACK_TO_DEFAULT,
    parse_json_reply,
)
from blogify.assistant.prompts import (
    CALENDAR_PROMPT,
    DRAFT_PROMPT,
    SEO_PROMPT,
    SYSTEM_PROMPT,
    format_prompt,
)
from blogify.assistant.provider import TextGenerationProvider
from blogify.model.post import Post
from blogify.slug import DEFAULT_SLUG, SLUG_MAX_LENGTH, slugify

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEO_CONTENT_LIMIT = 2000
SEO_TITLE_LENGTH = 60
SEO_DESCRIPTION_LENGTH = 160
CALENDAR_RECENT_POSTS = 3
CALENDAR_TOPIC = "technology and programming"

_HEADING = re.compile(r"^#[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_HEADING_LINE = re.compile(r"^#.*$", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")


class Draft(BaseModel):
    title: str
    body: str


class SeoMetadata(BaseModel):
    title: str
    slug: str
    description: str
    keywords: List[str] = Field(default_factory=list)


class CalendarEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: str
    estimated_traffic: str = Field(alias="estimatedTraffic")
    date: str


@dataclass(frozen=True)
class WorkflowResult(Generic[T]):
    value: T
    outcome: str
    """One of ``parsed``, ``extracted_from_fence`` or ``fell_back_to_default``."""
    error: Optional[str] = None


async def _generate(
    provider: TextGenerationProvider, model: str, template: str, **variables: Any
) -> str:
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": format_prompt(template, variables)},
    ]
    return await provider.complete(messages, model)


def _first_heading(markdown: str) -> Optional[str]:
    match = _HEADING.search(markdown)
    if match is None:
        return None
    return match.group(1).strip() or None


def _as_draft(value: Any) -> Optional[Draft]:
    if not isinstance(value, dict):
        return None
    try:
        return Draft.model_validate(value)
    except ValidationError:
        return None


async def draft(
    provider: TextGenerationProvider, model: str, topic: str
) -> WorkflowResult[Draft]:
    """
    Write a blog post about ``topic``.

    A JSON ``{title, body}`` answer is used as is. Anything else is taken as
    markdown: the body is the whole reply and the title is its first level one
    heading, or ``topic`` when there is none.
    """
    try:
        text = await _generate(provider, model, DRAFT_PROMPT, topic=topic)
    except Exception as e:
        logger.warning("draft generation failed: %s", e)
        return WorkflowResult(
            Draft(title=topic, body=""), OUTCOME_FELL_BACK_TO_DEFAULT, str(e)
        )

    result = parse_json_reply(text, accept=lambda value: _as_draft(value) is not None)
    if result.outcome != OUTCOME_FELL_BACK_TO_DEFAULT:
        return WorkflowResult(Draft.model_validate(result.value), result.outcome)

    return WorkflowResult(
        Draft(title=_first_heading(text) or topic, body=text),
        OUTCOME_FELL_BACK_TO_DEFAULT,
    )


def default_seo_metadata(content: str) -> SeoMetadata:
    """Metadata derived from the content alone."""
    first_line = content.split("\n", 1)[0]
    first_line = re.sub(r"^#+\s*", "", first_line).strip()

    description = _HEADING_LINE.sub("", content)
    description = _WHITESPACE.sub(" ", description).strip()

    return SeoMetadata(
        title=first_line[:SEO_TITLE_LENGTH],
        slug=slugify(first_line, SLUG_MAX_LENGTH) or DEFAULT_SLUG,
        description=description[:SEO_DESCRIPTION_LENGTH].strip(),
        keywords=[],
    )


def _as_seo_metadata(value: Any) -> Optional[SeoMetadata]:
    if not isinstance(value, dict):
        return None
    fields = dict(value)
    if fields.get("keywords") is None:
        fields["keywords"] = []
    try:
        meta = SeoMetadata.model_validate(fields)
    except ValidationError:
        return None
    meta.slug = slugify(meta.slug, SLUG_MAX_LENGTH) or slugify(meta.title) or DEFAULT_SLUG
    return meta


async def seo_metadata(
    provider: TextGenerationProvider, model: str, content: str, title: str = ""
) -> WorkflowResult[SeoMetadata]:
    """
    Suggest SEO metadata for a post.

    Only the first 2000 characters of ``content`` are sent to the provider.
    """
    try:
        text = await _generate(
            provider,
            model,
            SEO_PROMPT,
            title=title or "Blog Post",
            content=content[:SEO_CONTENT_LIMIT],
        )
    except Exception as e:
        logger.warning("seo metadata generation failed: %s", e)
        return WorkflowResult(
            default_seo_metadata(content), OUTCOME_FELL_BACK_TO_DEFAULT, str(e)
        )

    result = parse_json_reply(
        text, accept=lambda value: _as_seo_metadata(value) is not None
    )
    meta = _as_seo_metadata(result.value)
    if result.outcome != OUTCOME_FELL_BACK_TO_DEFAULT and meta is not None:
        return WorkflowResult(meta, result.outcome)

    logger.info("seo metadata reply was not JSON, using defaults")
    return WorkflowResult(default_seo_metadata(content), OUTCOME_FELL_BACK_TO_DEFAULT)


DEFAULT_CALENDAR_TOPICS = (
    ("Industry Trends", "High"),
    ("Best Practices Guide", "Medium"),
    ("Case Study Analysis", "Medium"),
    ("Tips and Tricks", "Low"),
    ("Future Predictions", "High"),
)


def default_calendar(today: date) -> List[CalendarEntry]:
    return [
        CalendarEntry(
            topic=topic,
            estimated_traffic=traffic,
            date=(today + timedelta(days=7 * week)).isoformat(),
        )
        for week, (topic, traffic) in enumerate(DEFAULT_CALENDAR_TOPICS)
    ]


def _describe_recent_posts(recent_posts: Sequence[Post]) -> str:
    lines = [
        f"- {post.title or 'Untitled'}: {(post.body or '')[:100]}..."
        for post in recent_posts[:CALENDAR_RECENT_POSTS]
    ]
    return "\n".join(lines) or "No recent posts available"


def _as_calendar(value: Any) -> Optional[List[CalendarEntry]]:
    if not isinstance(value, list):
        return None
    entries = []
    for item in value:
        if not isinstance(item, dict):
            continue
        fields = dict(item)
        if "estimatedTraffic" not in fields and "traffic" in fields:
            fields["estimatedTraffic"] = fields.pop("traffic")
        try:
            entries.append(CalendarEntry.model_validate(fields))
        except ValidationError:
            continue
    return entries or None


async def calendar(
    provider: TextGenerationProvider,
    model: str,
    recent_posts: Sequence[Post],
    today: date,
) -> WorkflowResult[List[CalendarEntry]]:
    """
    Suggest upcoming topics from at most the three most recent posts.

    Entries of the reply that do not have the expected shape are dropped; if
    none survive, five default topics dated weekly from ``today`` are used.
    """
    try:
        text = await _generate(
            provider,
            model,
            CALENDAR_PROMPT,
            topic=CALENDAR_TOPIC,
            recent_posts=_describe_recent_posts(recent_posts),
            today=today.isoformat(),
        )
    except Exception as e:
        logger.warning("calendar generation failed: %s", e)
        return WorkflowResult(
            default_calendar(today), OUTCOME_FELL_BACK_TO_DEFAULT, str(e)
        )

    result = parse_json_reply(text, accept=lambda value: _as_calendar(value) is not None)
    entries = _as_calendar(result.value)
    if result.outcome != OUTCOME_FELL_BACK_TO_DEFAULT and entries is not None:
        return WorkflowResult(entries, result.outcome)

    logger.info("calendar reply was not a JSON list, using default topics")
    return WorkflowResult(default_calendar(today), OUTCOME_FELL_BACK_TO_DEFAULT)
