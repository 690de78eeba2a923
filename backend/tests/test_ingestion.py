"""
Tests for the source adapters and the aggregator.

These tests use mocked HTTP responses to verify parsing logic
without requiring network access.
"""

import asyncio
import time
from datetime import datetime, timezone

import httpx
import pytest

from newswire.core.exceptions import SourceError, SourceUnavailable
from newswire.services.data_ingestion.aggregator import SourceAggregator
from newswire.services.data_ingestion.base import (
    USER_AGENT,
    ArticleDraft,
    BaseSource,
    SourceConfig,
    SourceKind,
)
from newswire.services.data_ingestion.rss import RSSSource, create_rss_configs
from newswire.services.data_ingestion.world_news import (
    WorldNewsSource,
    create_world_news_config,
)


# Sample RSS feed response
SAMPLE_RSS_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Nyheter</title>
    <item>
      <title><![CDATA[Regeringen presenterar budgeten]]></title>
      <link>https://example.se/nyheter/budget?id=1&amp;ref=rss</link>
      <description><![CDATA[<p>Finansministern presenterade <b>budgeten</b> idag.</p>]]></description>
      <pubDate>Mon, 15 Jan 2024 09:00:00 +0100</pubDate>
      <enclosure url="https://img.example.se/budget.jpg" type="image/jpeg" length="0"/>
    </item>
    <item>
      <title>Storm drar in över västkusten</title>
      <link>https://example.se/nyheter/storm</link>
      <description>SMHI varnar för kraftiga vindar.</description>
      <pubDate>2024-01-14T15:00:00Z</pubDate>
    </item>
    <item>
      <title>Saknar länk</title>
      <description>Den här posten har ingen link.</description>
    </item>
    <item>
      <link>https://example.se/nyheter/utan-rubrik</link>
    </item>
  </channel>
</rss>
"""

SAMPLE_WORLD_NEWS_RESPONSE = {
    "offset": 0,
    "number": 2,
    "available": 2,
    "news": [
        {
            "id": 1,
            "title": "Riksbanken lämnar räntan oförändrad",
            "url": "https://dn.se/ekonomi/ranta",
            "publish_date": "2024-01-15 08:30:00",
            "image": "https://dn.se/img/ranta.jpg",
            "summary": "Styrräntan ligger kvar.",
            "text": "Riksbanken meddelade på måndagen att styrräntan ligger kvar.",
            "category": "business",
        },
        {
            "id": 2,
            "title": "Lång text utan sammanfattning",
            "url": "https://dn.se/lang",
            "publish_date": "2024-01-15T07:00:00Z",
            "text": "x" * 400,
        },
        {
            "id": 3,
            "title": "",
            "url": "https://dn.se/utan-titel",
        },
    ],
}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestRSSSource:
    """Tests for the RSS adapter."""

    def test_parse_rss(self, rss_config, rate_limiter):
        source = RSSSource(rate_limiter=rate_limiter)
        articles = source.parse_feed(SAMPLE_RSS_RESPONSE, rss_config)

        assert len(articles) == 2

        first = articles[0]
        assert first.title == "Regeringen presenterar budgeten"
        assert first.source_url == "https://example.se/nyheter/budget?id=1&ref=rss"
        assert first.image_url == "https://img.example.se/budget.jpg"
        assert first.summary == "<p>Finansministern presenterade <b>budgeten</b> idag.</p>"
        assert first.source_name == "Test Feed"
        assert first.published_at == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)

    def test_plain_text_and_iso_date(self, rss_config, rate_limiter):
        source = RSSSource(rate_limiter=rate_limiter)
        second = source.parse_feed(SAMPLE_RSS_RESPONSE, rss_config)[1]

        assert second.title == "Storm drar in över västkusten"
        assert second.summary == "SMHI varnar för kraftiga vindar."
        assert second.image_url is None
        assert second.published_at == datetime(2024, 1, 14, 15, 0, tzinfo=timezone.utc)

    def test_unparseable_date_is_none(self, rss_config, rate_limiter):
        xml = "<item><title>T</title><link>https://e.se/x</link><pubDate>igår</pubDate></item>"
        source = RSSSource(rate_limiter=rate_limiter)

        assert source.parse_feed(xml, rss_config)[0].published_at is None

    def test_respects_max_items(self, rss_config, rate_limiter):
        items = "".join(
            f"<item><title>Nyhet {i}</title><link>https://e.se/{i}</link></item>"
            for i in range(15)
        )
        source = RSSSource(rate_limiter=rate_limiter)

        assert len(source.parse_feed(items, rss_config)) == 10

    async def test_fetch_sends_user_agent(self, rss_config, rate_limiter):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user_agent"] = request.headers.get("user-agent")
            return httpx.Response(200, text=SAMPLE_RSS_RESPONSE)

        async with mock_client(handler) as client:
            source = RSSSource(client=client, rate_limiter=rate_limiter)
            articles = await source.fetch(rss_config)

        assert seen["user_agent"] == USER_AGENT
        assert len(articles) == 2

    async def test_non_2xx_raises_unavailable(self, rss_config, rate_limiter):
        async with mock_client(lambda request: httpx.Response(503)) as client:
            source = RSSSource(client=client, rate_limiter=rate_limiter)
            with pytest.raises(SourceUnavailable) as exc_info:
                await source.fetch(rss_config)

        assert exc_info.value.status_code == 503
        assert exc_info.value.source_name == "Test Feed"

    async def test_network_error_raises_unavailable(self, rss_config, rate_limiter):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            source = RSSSource(client=client, rate_limiter=rate_limiter)
            with pytest.raises(SourceUnavailable):
                await source.fetch(rss_config)

    def test_default_feeds(self):
        configs = create_rss_configs()

        assert len(configs) == 7
        assert all(c.kind == SourceKind.RSS_FEED for c in configs)
        assert {c.category for c in configs} == {"general", "sports", "business"}


class TestWorldNewsSource:
    """Tests for the World News API adapter."""

    async def test_maps_news_items(self, rate_limiter):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=SAMPLE_WORLD_NEWS_RESPONSE)

        config = create_world_news_config(queries=[{"source-ids": "dn.se", "number": 15}])

        async with mock_client(handler) as client:
            source = WorldNewsSource(
                api_key="test-key", client=client, request_delay=0, rate_limiter=rate_limiter
            )
            articles = await source.fetch(config)

        assert len(articles) == 2

        first = articles[0]
        assert first.title == "Riksbanken lämnar räntan oförändrad"
        assert first.source_url == "https://dn.se/ekonomi/ranta"
        assert first.image_url == "https://dn.se/img/ranta.jpg"
        assert first.summary == "Styrräntan ligger kvar."
        assert first.category == "business"
        assert first.published_at == datetime(2024, 1, 15, 8, 30)

        second = articles[1]
        assert second.summary == "x" * 300 + "..."
        assert second.category == "general"

        request = requests[0]
        assert request.headers["x-api-key"] == "test-key"
        assert request.url.params["source-ids"] == "dn.se"
        assert request.url.params["number"] == "15"
        assert request.url.params["sort-by"] == "publish-time"
        assert request.url.params["sort-direction"] == "DESC"
        assert request.url.params["language"] == "sv"
        assert request.url.params["source-countries"] == "se"

    async def test_one_request_per_query(self, rate_limiter):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.params["source-ids"])
            return httpx.Response(200, json={"news": []})

        config = create_world_news_config()

        async with mock_client(handler) as client:
            source = WorldNewsSource(
                api_key="k", client=client, request_delay=0, rate_limiter=rate_limiter
            )
            await source.fetch(config)

        assert calls == [q["source-ids"] for q in config.queries]

    async def test_failing_query_is_skipped(self, rate_limiter):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["source-ids"] == "svd.se":
                return httpx.Response(500)
            return httpx.Response(200, json=SAMPLE_WORLD_NEWS_RESPONSE)

        config = create_world_news_config(
            queries=[{"source-ids": "dn.se"}, {"source-ids": "svd.se"}]
        )

        async with mock_client(handler) as client:
            source = WorldNewsSource(
                api_key="k", client=client, request_delay=0, rate_limiter=rate_limiter
            )
            articles = await source.fetch(config)

        assert len(articles) == 2

    async def test_unexpected_response_shape_is_skipped(self, rate_limiter):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["source-ids"] == "svd.se":
                return httpx.Response(200, json=[])
            return httpx.Response(
                200, json={"news": [{"title": "Rubrik", "url": "https://dn.se/a"}, "skräp"]}
            )

        config = create_world_news_config(
            queries=[{"source-ids": "dn.se"}, {"source-ids": "svd.se"}]
        )

        async with mock_client(handler) as client:
            source = WorldNewsSource(
                api_key="k", client=client, request_delay=0, rate_limiter=rate_limiter
            )
            articles = await source.fetch(config)

        assert [a.source_url for a in articles] == ["https://dn.se/a"]

    async def test_requests_are_spaced_by_delay(self, rate_limiter):
        sent_at = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent_at.append(time.monotonic())
            return httpx.Response(200, json={"news": []})

        config = create_world_news_config(
            queries=[{"source-ids": "dn.se"}, {"source-ids": "svd.se"}]
        )

        async with mock_client(handler) as client:
            source = WorldNewsSource(
                api_key="k", client=client, request_delay=0.2, rate_limiter=rate_limiter
            )
            await source.fetch(config)

        assert len(sent_at) == 2
        assert sent_at[1] - sent_at[0] >= 0.18

    async def test_all_queries_failing_raises(self, rate_limiter):
        config = create_world_news_config(
            queries=[{"source-ids": "dn.se"}, {"source-ids": "svd.se"}]
        )

        async with mock_client(lambda request: httpx.Response(402)) as client:
            source = WorldNewsSource(
                api_key="k", client=client, request_delay=0, rate_limiter=rate_limiter
            )
            with pytest.raises(SourceUnavailable):
                await source.fetch(config)

    async def test_missing_api_key_raises(self, rate_limiter):
        source = WorldNewsSource(api_key=None, request_delay=0, rate_limiter=rate_limiter)

        with pytest.raises(SourceUnavailable):
            await source.fetch(create_world_news_config())


class StubSource(BaseSource):
    """Adapter returning canned drafts per source name."""

    kind = SourceKind.RSS_FEED

    def __init__(self, drafts_by_source: dict, delay: float = 0.0):
        super().__init__()
        self.drafts_by_source = drafts_by_source
        self.delay = delay

    async def fetch(self, config: SourceConfig) -> list[ArticleDraft]:
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.drafts_by_source[config.name]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def feed(name: str) -> SourceConfig:
    return SourceConfig(name=name, kind=SourceKind.RSS_FEED, endpoint=f"https://{name}.example")


class TestAggregator:
    """Tests for concurrent fetching."""

    async def test_failed_source_is_isolated(self):
        adapter = StubSource({
            "A": [ArticleDraft(title="A1", source_url="https://a/1")],
            "B": SourceUnavailable("B", "HTTP 500 Internal Server Error", status_code=500),
            "C": [ArticleDraft(title="C1", source_url="https://c/1")],
        })
        aggregator = SourceAggregator(
            [feed("A"), feed("B"), feed("C")],
            {SourceKind.RSS_FEED: adapter},
        )

        drafts, results = await aggregator.fetch_all()

        assert [d.source_url for d in drafts] == ["https://a/1", "https://c/1"]
        failed = [r for r in results if not r.success]
        assert len(failed) == 1
        assert failed[0].source_name == "B"
        assert failed[0].errors == ["HTTP 500 Internal Server Error"]

    async def test_incomplete_drafts_are_dropped(self):
        adapter = StubSource({
            "A": [
                ArticleDraft(title="Med länk", source_url="https://a/1"),
                ArticleDraft(title="Utan länk", source_url=""),
                ArticleDraft(title="  ", source_url="https://a/2"),
            ],
        })
        aggregator = SourceAggregator([feed("A")], {SourceKind.RSS_FEED: adapter})

        drafts, results = await aggregator.fetch_all()

        assert [d.source_url for d in drafts] == ["https://a/1"]
        assert results[0].articles_fetched == 1

    async def test_slow_source_times_out(self):
        adapter = StubSource({"A": []}, delay=1.0)
        aggregator = SourceAggregator(
            [feed("A")], {SourceKind.RSS_FEED: adapter}, source_timeout=0.05
        )

        drafts, results = await aggregator.fetch_all()

        assert drafts == []
        assert "Timed out" in results[0].errors[0]

    async def test_disabled_sources_are_skipped(self):
        disabled = feed("B")
        disabled.enabled = False
        aggregator = SourceAggregator(
            [feed("A"), disabled],
            {SourceKind.RSS_FEED: StubSource({"A": []})},
        )

        assert [s.name for s in aggregator.sources] == ["A"]

    async def test_missing_adapter_is_a_source_error(self):
        config = SourceConfig(name="API", kind=SourceKind.SEARCH_API, endpoint="https://api")
        aggregator = SourceAggregator([config], {SourceKind.RSS_FEED: StubSource({})})

        with pytest.raises(SourceError):
            await aggregator._fetch_from_source(config)
