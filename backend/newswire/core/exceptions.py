"""
Exception hierarchy for the ingestion pipeline.

Only PersistenceError is fatal to an ingestion cycle. Source, item and
enrichment failures are isolated, logged and reported.
"""
from typing import Optional


class NewswireError(Exception):
    """Base class for all pipeline errors."""


# =============================================================================
# Sources
# =============================================================================

class SourceError(NewswireError):
    """A source adapter could not produce drafts."""

    def __init__(self, source_name: str, message: str):
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name
        self.message = message


class SourceUnavailable(SourceError):
    """Network error, timeout or non-2xx response from a source."""

    def __init__(self, source_name: str, message: str, status_code: Optional[int] = None):
        super().__init__(source_name, message)
        self.status_code = status_code


class MalformedItemError(NewswireError):
    """A feed item lacks a title or a source URL."""


# =============================================================================
# Persistence
# =============================================================================

class PersistenceError(NewswireError):
    """The article store rejected a write or could not be reached."""


class ArticleNotFoundError(NewswireError):
    def __init__(self, article_id: str):
        super().__init__(f"Article not found: {article_id}")
        self.article_id = article_id


# =============================================================================
# Enrichment
# =============================================================================

class EnrichmentError(NewswireError):
    """The generative service call did not produce an enrichment."""

    status_code: Optional[int] = None

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class EnrichmentRateLimited(EnrichmentError):
    status_code = 429


class EnrichmentAuthInvalid(EnrichmentError):
    status_code = 403


class EnrichmentUpstreamError(EnrichmentError):
    status_code = 502
