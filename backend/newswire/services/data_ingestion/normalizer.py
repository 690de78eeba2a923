"""
Draft normalization.

Pure functions: no I/O, no clock reads beyond what the draft carries.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional
import re

from newswire.core.exceptions import MalformedItemError
from newswire.services.data_ingestion.base import ArticleDraft

ARTICLE_TTL_DAYS = 30
SUMMARY_MAX_LENGTH = 300
ELLIPSIS = "..."
DEFAULT_CATEGORY = "general"

# Only these entities are decoded; anything else (e.g. &ouml;) is kept verbatim
ENTITIES = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
}

TAG_RE = re.compile(r"<[^>]*>")
ENTITY_RE = re.compile("|".join(re.escape(entity) for entity in ENTITIES))


def clean_text(text: Optional[str]) -> str:
    """
    Strip tags, decode the supported entities and collapse whitespace.

    Decoding can produce new markup or entities (``&amp;lt;b&amp;gt;``), so
    the steps repeat until the text stops changing. The result is a fixed
    point: cleaning it again returns it unchanged.
    """
    if not text:
        return ""

    while True:
        decoded = ENTITY_RE.sub(lambda m: ENTITIES[m.group(0)], text)
        stripped = TAG_RE.sub(" ", decoded)
        collapsed = " ".join(stripped.split())
        if collapsed == text:
            return collapsed
        text = collapsed


def truncate(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    """Cap text at max_length characters, marking the cut with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_expiry(published_at: datetime, ttl_days: int = ARTICLE_TTL_DAYS) -> datetime:
    return as_utc(published_at) + timedelta(days=ttl_days)


def normalize(
    draft: ArticleDraft,
    summary_max_length: int = SUMMARY_MAX_LENGTH,
    ttl_days: int = ARTICLE_TTL_DAYS,
) -> ArticleDraft:
    """
    Normalize a draft into its stored shape.

    - title, summary and content are cleaned of markup
    - a missing summary falls back to the truncated content
    - published_at defaults to the fetch time; expiry is published + ttl
    - category defaults to "general"

    Returns a new draft; the input is not modified.

    Raises:
        MalformedItemError: If title or source URL is empty after cleaning
    """
    title = clean_text(draft.title)
    source_url = (draft.source_url or "").strip()
    if not title or not source_url:
        raise MalformedItemError(
            f"Draft from {draft.source_name or 'unknown source'} lacks title or source URL"
        )

    content = clean_text(draft.content) or None
    summary = clean_text(draft.summary) or content
    if summary:
        summary = truncate(summary, summary_max_length)

    published_at = as_utc(draft.published_at or draft.fetched_at)

    return replace(
        draft,
        title=title,
        source_url=source_url,
        source_name=(draft.source_name or "").strip(),
        published_at=published_at,
        expiry_at=compute_expiry(published_at, ttl_days),
        category=(draft.category or "").strip() or DEFAULT_CATEGORY,
        image_url=(draft.image_url or "").strip() or None,
        summary=summary or None,
        content=content,
    )
