"""
Batch deduplication on the canonical source URL.
"""

from typing import Iterable

from newswire.services.data_ingestion.base import ArticleDraft


def deduplicate(drafts: Iterable[ArticleDraft]) -> list[ArticleDraft]:
    """
    Collapse a batch to one draft per source URL.

    Tie-break: the LAST draft seen for a URL wins. Two search queries that
    return the same story keep the copy from the later query. The output
    keeps the order in which each URL was first seen.
    """
    by_url: dict[str, ArticleDraft] = {}
    for draft in drafts:
        by_url[draft.source_url] = draft
    return list(by_url.values())
