"""
Article enrichment using generative LLMs (Gemini or Claude).

Produces structured commentary for one article per call: summary, context,
timeline, analysis and "what we know now". Which articles get enriched,
and how fast, is decided by the enrichment dispatcher.
"""
import json
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import anthropic
import httpx
import structlog

from newswire.config import Settings
from newswire.core.exceptions import (
    ArticleNotFoundError,
    EnrichmentAuthInvalid,
    EnrichmentRateLimited,
    EnrichmentUpstreamError,
)
from newswire.models.domain import Article, EnrichmentResult, EnrichmentStatus
from newswire.services.persistence import ArticleRepository

logger = structlog.get_logger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"
FALLBACK_SUMMARY_LENGTH = 500

SYSTEM_PROMPT = """You are a professional news analyst. Given a news article, provide:
1. A unique summary in your own words (2-3 sentences)
2. Context explaining background and significance (2-3 sentences)
3. Timeline of key events (bullet points)
4. Analysis of implications and impact (2-3 sentences)
5. "What We Know Now" - key facts distilled (bullet points)

Format your response as JSON with keys: summary, context, timeline, analysis, whatWeKnow"""

FENCED_JSON_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
FENCED_RE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)


# =============================================================================
# Generative backends
# =============================================================================

class GenerativeClient(ABC):
    """A text-in, text-out generative model."""

    name: str

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generate a completion for the prompt.

        Raises:
            EnrichmentRateLimited: On HTTP 429
            EnrichmentAuthInvalid: On HTTP 401/403
            EnrichmentUpstreamError: On any other failure or an empty reply
        """
        pass


class GeminiClient(GenerativeClient):
    """Google Gemini generateContent over plain HTTP."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
        temperature: float = 0.7,
        max_output_tokens: int = 2000,
    ):
        self.api_key = api_key
        self.model = model
        self._client = client
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def generate(self, prompt: str) -> str:
        url = f"{GEMINI_API_URL}/{self.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

        try:
            if self._client is not None:
                response = await self._post(self._client, url, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, url, payload)
        except httpx.HTTPError as e:
            raise EnrichmentUpstreamError(f"Gemini request failed: {e!r}") from e

        if response.status_code == 429:
            raise EnrichmentRateLimited("Google API rate limit exceeded", status_code=429)
        if response.status_code in (401, 403):
            raise EnrichmentAuthInvalid(
                "Google API key invalid or expired", status_code=response.status_code
            )
        if not response.is_success:
            raise EnrichmentUpstreamError(
                f"Gemini API error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentUpstreamError("No content received from Gemini API") from e

        if not text:
            raise EnrichmentUpstreamError("No content received from Gemini API")
        return text

    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict) -> httpx.Response:
        return await client.post(
            url,
            params={"key": self.api_key},
            json=payload,
            timeout=self.timeout,
        )


class AnthropicClient(GenerativeClient):
    """Claude via the Anthropic Messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-3-haiku-20240307",
        client: Optional[anthropic.AsyncAnthropic] = None,
        timeout: float = 60.0,
        max_tokens: int = 2000,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            raise EnrichmentRateLimited("Anthropic rate limit exceeded", status_code=429) from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise EnrichmentAuthInvalid(
                "Anthropic API key invalid or not permitted", status_code=e.status_code
            ) from e
        except anthropic.APIStatusError as e:
            raise EnrichmentUpstreamError(
                f"Anthropic API error: {e.status_code}", status_code=e.status_code
            ) from e
        except anthropic.APIError as e:
            raise EnrichmentUpstreamError(f"Anthropic request failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text:
            raise EnrichmentUpstreamError("No content received from Anthropic API")
        return text


def create_generative_client(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Optional[GenerativeClient]:
    """Build the configured backend, or None when enrichment is off."""
    if not settings.enrichment_enabled:
        return None

    if settings.enrichment_provider == "anthropic":
        return AnthropicClient(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            timeout=settings.enrichment_timeout_seconds,
        )

    return GeminiClient(
        api_key=settings.google_ai_studio_key,
        model=settings.gemini_model,
        client=http_client,
        timeout=settings.enrichment_timeout_seconds,
    )


# =============================================================================
# Enricher
# =============================================================================

class Enricher:
    """
    Enriches a single article with one generative call.

    Idempotent: an article that already has ai_enriched_at set is
    returned as stored, without calling the model.
    """

    def __init__(self, repository: ArticleRepository, client: GenerativeClient):
        self.repository = repository
        self.client = client

    async def enrich(self, article_id: str) -> EnrichmentResult:
        """
        Enrich one article.

        Args:
            article_id: ID of the stored article

        Returns:
            The stored or newly produced enrichment

        Raises:
            ArticleNotFoundError: If no article has this ID
            EnrichmentError: If the generative call fails
        """
        article = await self.repository.get(article_id)
        if article is None:
            raise ArticleNotFoundError(article_id)

        if article.is_enriched:
            logger.info("Article already enriched", article_id=article_id)
            return EnrichmentResult.from_article(article)

        logger.info("Calling generative model", article_id=article_id, backend=self.client.name)
        raw = await self.client.generate(self.build_prompt(article))

        fields, degraded = self.parse_response(raw)
        if degraded:
            logger.warning("Enrichment response was not valid JSON", article_id=article_id)

        result = EnrichmentResult(
            article_id=article_id,
            status=EnrichmentStatus.PARSE_DEGRADED if degraded else EnrichmentStatus.ENRICHED,
            enriched_at=datetime.now(timezone.utc),
            **fields,
        )

        if not await self.repository.save_enrichment(result):
            # Another run got there first; report what is stored
            stored = await self.repository.get(article_id)
            if stored is None:
                raise ArticleNotFoundError(article_id)
            return EnrichmentResult.from_article(stored)

        logger.info("Article enriched", article_id=article_id, status=result.status.value)
        return result

    def build_prompt(self, article: Article) -> str:
        """Build the enrichment prompt."""
        lines = [
            SYSTEM_PROMPT,
            "",
            f"Article Title: {article.title}",
            "",
            f"Source: {article.source_name}",
            f"Published: {article.published_at.isoformat()}",
            f"Category: {article.category or 'general'}",
            "",
        ]
        if article.summary:
            lines.append(f"Summary: {article.summary}")
        if article.content:
            lines.append(f"Content: {article.content}")
        lines.extend(["", "Provide unique analysis and insights for this article."])
        return "\n".join(lines)

    @classmethod
    def parse_response(cls, text: str) -> tuple[dict, bool]:
        """
        Extract the enrichment fields from a model reply.

        The reply may wrap its JSON in a ```json (or bare ```) fence.

        Returns:
            Tuple of (fields, degraded). When the reply is not a JSON object,
            the raw text (truncated) becomes the summary and degraded is True.
        """
        match = FENCED_JSON_RE.search(text) or FENCED_RE.search(text)
        candidate = match.group(1) if match else text.strip()

        try:
            data = json.loads(candidate)
        except ValueError:
            data = None

        if not isinstance(data, dict):
            return {
                "summary": text[:FALLBACK_SUMMARY_LENGTH],
                "context": "",
                "timeline": "",
                "analysis": "",
                "what_we_know": "",
            }, True

        return {
            "summary": cls._as_text(data.get("summary")),
            "context": cls._as_text(data.get("context")),
            "timeline": cls._as_text(data.get("timeline")),
            "analysis": cls._as_text(data.get("analysis")),
            "what_we_know": cls._as_text(data.get("whatWeKnow", data.get("what_we_know"))),
        }, False

    @staticmethod
    def _as_text(value) -> Optional[str]:
        """Bullet lists come back as JSON arrays; store them as lines."""
        if value is None:
            return None
        if isinstance(value, list):
            return "\n".join(f"- {str(item).strip()}" for item in value if str(item).strip())
        return str(value).strip()
