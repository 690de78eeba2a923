"""
Translation of drafts through the DeepL API.

Best-effort: any failure keeps the original text.
"""
import asyncio
from dataclasses import replace
from typing import Optional

import httpx
import structlog

from newswire.services.data_ingestion.base import ArticleDraft
from newswire.services.data_ingestion.rate_limiter import RateLimiter, get_rate_limiter

logger = structlog.get_logger(__name__)


class DeepLTranslator:
    """Translates title, summary and content of drafts to one target language."""

    RATE_LIMIT_KEY = "deepl"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api-free.deepl.com/v2/translate",
        target_language: str = "EN",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
        batch_size: int = 5,
        batch_delay: float = 1.0,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.target_language = target_language
        self._client = client
        self.timeout = timeout
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.rate_limiter = rate_limiter or get_rate_limiter()

    async def translate_text(self, text: Optional[str]) -> Optional[str]:
        """Translate one text, returning the original on any failure."""
        if not text or not text.strip():
            return text

        await self.rate_limiter.wait_if_needed(self.RATE_LIMIT_KEY)

        try:
            if self._client is not None:
                response = await self._post(self._client, text)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, text)
        except httpx.HTTPError as e:
            logger.error("DeepL translation error", error=repr(e))
            return text

        if not response.is_success:
            logger.error("DeepL translation API error", status=response.status_code)
            return text

        try:
            translated = response.json()["translations"][0]["text"].strip()
        except (ValueError, KeyError, IndexError, TypeError, AttributeError):
            logger.error("Unexpected DeepL response", body=response.text[:200])
            return text

        return translated or text

    async def _post(self, client: httpx.AsyncClient, text: str) -> httpx.Response:
        return await client.post(
            self.api_url,
            headers={"Authorization": f"DeepL-Auth-Key {self.api_key}"},
            json={"text": [text], "target_lang": self.target_language},
            timeout=self.timeout,
        )

    async def translate_draft(self, draft: ArticleDraft) -> ArticleDraft:
        title, summary, content = await asyncio.gather(
            self.translate_text(draft.title),
            self.translate_text(draft.summary),
            self.translate_text(draft.content),
        )
        return replace(draft, title=title or draft.title, summary=summary, content=content)

    async def translate_drafts(self, drafts: list[ArticleDraft]) -> list[ArticleDraft]:
        """Translate drafts in small concurrent batches with a pause between batches."""
        translated: list[ArticleDraft] = []
        total_batches = (len(drafts) + self.batch_size - 1) // self.batch_size

        for i in range(0, len(drafts), self.batch_size):
            batch = drafts[i:i + self.batch_size]
            logger.debug(
                "Translating batch",
                batch=i // self.batch_size + 1,
                total=total_batches,
            )
            translated.extend(await asyncio.gather(*(self.translate_draft(d) for d in batch)))

            if i + self.batch_size < len(drafts):
                await asyncio.sleep(self.batch_delay)

        logger.info("Drafts translated", count=len(translated))
        return translated
