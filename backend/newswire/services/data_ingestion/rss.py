"""
RSS feed adapter for news outlets.

Feeds are parsed with a small set of regular expressions over repeated
<item> blocks rather than a full XML parser: real-world news feeds are
often not well-formed, and only a handful of common item fields are used.
The parsing stays inside this adapter so it can be replaced without
touching normalization, deduplication or persistence.
"""

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional
import logging
import re

import httpx

from newswire.core.exceptions import SourceUnavailable
from newswire.services.data_ingestion.base import (
    USER_AGENT,
    ArticleDraft,
    BaseSource,
    SourceConfig,
    SourceKind,
)
from newswire.services.data_ingestion.rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

# Swedish news outlets
DEFAULT_RSS_FEEDS = [
    {"name": "SVT Nyheter", "url": "https://www.svt.se/nyheter/rss.xml", "category": "general"},
    {"name": "Dagens Nyheter", "url": "https://www.dn.se/rss/", "category": "general"},
    {
        "name": "Aftonbladet",
        "url": "https://rss.aftonbladet.se/rss2/small/pages/sections/senastenytt/",
        "category": "general",
    },
    {"name": "Expressen", "url": "https://feeds.expressen.se/nyheter/", "category": "general"},
    {"name": "Svenska Dagbladet", "url": "https://www.svd.se/feed/articles.rss", "category": "general"},
    {"name": "SVT Sport", "url": "https://www.svt.se/sport/rss.xml", "category": "sports"},
    {"name": "DN Ekonomi", "url": "https://www.dn.se/ekonomi/rss/", "category": "business"},
]

ITEM_RE = re.compile(r"<item(?:\s[^>]*)?>(.*?)</item>", re.IGNORECASE | re.DOTALL)
CDATA_RE = re.compile(r"^<!\[CDATA\[(.*?)\]\]>$", re.DOTALL)
ENCLOSURE_RE = re.compile(r"<enclosure\b[^>]*?\burl=[\"']([^\"']*)[\"']", re.IGNORECASE)


def create_rss_configs(feeds: Optional[list[dict]] = None) -> list[SourceConfig]:
    """Build source configs for the given (or default) feed list."""
    return [
        SourceConfig(
            name=feed["name"],
            kind=SourceKind.RSS_FEED,
            endpoint=feed["url"],
            category=feed.get("category", "general"),
        )
        for feed in (feeds or DEFAULT_RSS_FEEDS)
    ]


class RSSSource(BaseSource):
    """
    RSS 2.0 feed adapter.

    Fetches one feed per configured source and maps its items to drafts.
    """

    kind = SourceKind.RSS_FEED

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.rate_limiter = rate_limiter or get_rate_limiter()

    async def fetch(self, config: SourceConfig) -> list[ArticleDraft]:
        """Fetch and parse a single RSS feed."""
        await self.rate_limiter.wait_if_needed("rss")

        try:
            async with self.http_client() as client:
                response = await client.get(
                    config.endpoint,
                    headers={"User-Agent": USER_AGENT},
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            raise SourceUnavailable(config.name, f"HTTP error: {e!r}") from e

        if not response.is_success:
            raise SourceUnavailable(
                config.name,
                f"HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        articles = self.parse_feed(response.text, config)
        logger.info(f"Found {len(articles)} articles from {config.name}")
        return articles

    def parse_feed(self, xml_content: str, config: SourceConfig) -> list[ArticleDraft]:
        """Parse the <item> blocks of an RSS document into drafts."""
        articles = []
        skipped = 0

        for item_xml in ITEM_RE.findall(xml_content)[: config.max_items]:
            article = self._parse_item(item_xml, config)
            if article is None:
                skipped += 1
                continue
            articles.append(article)

        if skipped:
            logger.debug(f"Skipped {skipped} incomplete items from {config.name}")

        return articles

    def _parse_item(self, item_xml: str, config: SourceConfig) -> Optional[ArticleDraft]:
        """Parse a single RSS item."""
        title = self._extract(item_xml, "title")
        link = self._unescape_url(self._extract(item_xml, "link"))
        if not title or not link:
            return None

        description = self._extract(item_xml, "description")

        enclosure = ENCLOSURE_RE.search(item_xml)
        image_url = self._unescape_url(enclosure.group(1)) if enclosure else None

        return ArticleDraft(
            title=title,
            source_url=link,
            source_name=config.name,
            published_at=self._parse_date(self._extract(item_xml, "pubDate")),
            category=config.category,
            image_url=image_url or None,
            summary=description or None,
            content=description or None,
        )

    @staticmethod
    def _extract(item_xml: str, tag: str) -> str:
        """Text of the first <tag>, with or without a CDATA wrapper."""
        match = re.search(
            rf"<{tag}(?:\s[^>]*?)?(?<!/)>(.*?)</{tag}>",
            item_xml,
            re.IGNORECASE | re.DOTALL,
        )
        if not match:
            return ""

        value = match.group(1).strip()
        cdata = CDATA_RE.match(value)
        if cdata:
            value = cdata.group(1)
        return value.strip()

    @staticmethod
    def _unescape_url(url: str) -> str:
        return url.replace("&amp;", "&").strip()

    def _parse_date(self, date_str: Optional[str]) -> Optional[datetime]:
        """Parse RSS date format (RFC 822), ISO 8601 as fallback."""
        if not date_str:
            return None

        try:
            return parsedate_to_datetime(date_str)
        except (ValueError, TypeError):
            pass

        try:
            return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        except ValueError:
            return None
