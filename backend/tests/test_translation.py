"""
Tests for DeepL translation and the rate limiter.
"""

import json

import httpx

from conftest import make_draft
from newswire.services.data_ingestion.rate_limiter import RateLimiter
from newswire.services.translation import DeepLTranslator


def deepl_handler(request: httpx.Request) -> httpx.Response:
    text = json.loads(request.content)["text"][0]
    return httpx.Response(200, json={"translations": [{"text": f"EN:{text}"}]})


def translator(handler, rate_limiter, **kwargs) -> tuple[DeepLTranslator, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DeepLTranslator(
        api_key="deepl-key",
        client=client,
        batch_delay=0,
        rate_limiter=rate_limiter,
        **kwargs,
    ), client


class TestDeepLTranslator:

    async def test_translates_text(self, rate_limiter):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return deepl_handler(request)

        deepl, client = translator(handler, rate_limiter)
        async with client:
            result = await deepl.translate_text("Hej världen")

        assert result == "EN:Hej världen"
        assert seen["auth"] == "DeepL-Auth-Key deepl-key"
        assert seen["body"]["target_lang"] == "EN"

    async def test_api_error_keeps_original(self, rate_limiter):
        deepl, client = translator(lambda request: httpx.Response(456), rate_limiter)
        async with client:
            assert await deepl.translate_text("Hej") == "Hej"

    async def test_network_error_keeps_original(self, rate_limiter):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        deepl, client = translator(handler, rate_limiter)
        async with client:
            assert await deepl.translate_text("Hej") == "Hej"

    async def test_malformed_response_keeps_original(self, rate_limiter):
        deepl, client = translator(lambda request: httpx.Response(200, json={}), rate_limiter)
        async with client:
            assert await deepl.translate_text("Hej") == "Hej"

    async def test_empty_text_is_not_sent(self, rate_limiter):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return deepl_handler(request)

        deepl, client = translator(handler, rate_limiter)
        async with client:
            assert await deepl.translate_text(None) is None
            assert await deepl.translate_text("  ") == "  "

        assert calls == []

    async def test_translates_drafts_in_batches(self, rate_limiter):
        drafts = [
            make_draft(f"https://example.se/{i}", f"Rubrik {i}", content=None)
            for i in range(7)
        ]

        deepl, client = translator(deepl_handler, rate_limiter, batch_size=3)
        async with client:
            translated = await deepl.translate_drafts(drafts)

        assert [d.title for d in translated] == [f"EN:Rubrik {i}" for i in range(7)]
        assert translated[0].summary == "EN:Sammanfattning av Rubrik 0"
        assert translated[0].content is None
        assert translated[0].source_url == "https://example.se/0"


class TestRateLimiter:

    async def test_acquire_within_limit(self):
        limiter = RateLimiter()
        limiter.set_limit("api", 2, 60)

        assert await limiter.acquire("api") is True
        assert await limiter.acquire("api") is True
        assert limiter.get_status("api")["available"] == 0

    async def test_times_out_when_exhausted(self):
        limiter = RateLimiter()
        limiter.set_limit("api", 1, 60)

        await limiter.acquire("api")

        assert await limiter.acquire("api", timeout=0.1) is False

    async def test_spacing_between_requests(self):
        limiter = RateLimiter()
        limiter.set_spacing("api", 30.0)

        await limiter.acquire("api")

        assert await limiter.acquire("api", timeout=0.1) is False
        assert limiter.get_status("api")["min_spacing_seconds"] == 30.0

    def test_defaults(self):
        limiter = RateLimiter()

        status = limiter.get_status("world_news")

        assert status["max_requests"] == 60
        assert status["min_spacing_seconds"] == 0.1
