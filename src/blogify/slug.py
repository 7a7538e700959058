import re

SLUG_MAX_LENGTH = 50
DEFAULT_SLUG = "post"

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-{2,}")


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Lowercase, keep ``[a-z0-9-]``, hyphenate whitespace and cut to ``max_length``.

    May return an empty string when ``text`` has no usable characters.
    """
    slug = _DISALLOWED.sub("", text.lower()).strip()
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    return slug[:max_length].strip("-")
