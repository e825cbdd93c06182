"""FundSync - Slug Normalizer.

Deterministic display text → identifier transform used for folder and story
addressing in the store. ``slugify(slugify(x)) == slugify(x)`` for any input.
"""

import re
from typing import Optional

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def slugify(text: Optional[str]) -> str:
    """Lower-case, drop anything outside ``[a-z0-9\\s-]``, hyphenate whitespace."""
    if not text:
        return ""
    slug = _DISALLOWED.sub("", str(text).lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")


def join_path(*parts: str) -> str:
    """Join slug segments into a store ``full_slug``."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))
