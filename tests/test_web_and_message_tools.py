"""
Tests for web_search, web_fetch and message tools.

HTTP is faked with httpx.MockTransport.
"""

import json

import httpx
import pytest

from superbot.tools import MessageTool, WebFetchTool, WebSearchTool


class TestWebSearch:

    @pytest.mark.asyncio
    async def test_without_key(self, monkeypatch):
        monkeypatch.delenv("BRAVE_API_KEY", raising=False)
        assert await WebSearchTool().execute(query="x") == "Error: BRAVE_API_KEY not configured"

    @pytest.mark.asyncio
    async def test_formats_results(self):
        seen = {}

        def handler(request):
            seen["token"] = request.headers["x-subscription-token"]
            seen["count"] = request.url.params["count"]
            return httpx.Response(200, json={"web": {"results": [
                {"title": "Python", "url": "https://python.org", "description": "The language"},
                {"title": "PyPI", "url": "https://pypi.org"},
            ]}})

        tool = WebSearchTool(api_key="brave-key", transport=httpx.MockTransport(handler))
        result = await tool.execute(query="python", count=50)

        assert seen == {"token": "brave-key", "count": "10"}
        assert result.splitlines()[0] == "Results for: python"
        assert "1. Python\n   https://python.org\n   The language" in result
        assert "2. PyPI\n   https://pypi.org" in result

    @pytest.mark.asyncio
    async def test_no_results_and_errors(self):
        empty = WebSearchTool(api_key="k", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        assert await empty.execute(query="zzz") == "No results for: zzz"

        failing = WebSearchTool(api_key="k", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        assert (await failing.execute(query="zzz")).startswith("Error:")


class TestWebFetch:

    @pytest.mark.asyncio
    async def test_html_extraction(self):
        html = (
            "<html><head><title>Hello Page</title><style>p{}</style></head>"
            "<body><nav>menu</nav><p>Main text.</p><script>evil()</script></body></html>"
        )
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, text=html, headers={"content-type": "text/html"})
        )
        data = json.loads(await WebFetchTool(transport=transport).execute(url="https://example.com"))

        assert data["extractor"] == "bs4"
        assert data["status"] == 200
        assert data["text"].startswith("# Hello Page")
        assert "Main text." in data["text"]
        assert "evil()" not in data["text"]
        assert "menu" not in data["text"]

    @pytest.mark.asyncio
    async def test_json_and_truncation(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"k": "v" * 500}))
        data = json.loads(await WebFetchTool(transport=transport).execute(url="https://api.example.com", maxChars=100))
        assert data["extractor"] == "json"
        assert data["truncated"] is True
        assert data["length"] == 100

    @pytest.mark.asyncio
    async def test_rejects_non_http(self):
        data = json.loads(await WebFetchTool().execute(url="file:///etc/passwd"))
        assert data["error"] == "Only http/https URLs allowed"

    @pytest.mark.asyncio
    async def test_http_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(404))
        data = json.loads(await WebFetchTool(transport=transport).execute(url="https://example.com/missing"))
        assert "error" in data


class TestMessageTool:

    @pytest.mark.asyncio
    async def test_sends_to_context_chat(self, bus, workspace):
        tool = MessageTool(send_callback=bus.publish_outbound, workspace=workspace)
        tool.set_context("telegram", "42")

        result = await tool.execute(content="hello", media=["report.pdf"])

        assert result == "Message sent to telegram:42"
        out = await bus.consume_outbound(timeout=1)
        assert (out.channel, out.chat_id, out.content) == ("telegram", "42", "hello")
        assert out.media == [str(workspace / "report.pdf")]

    @pytest.mark.asyncio
    async def test_explicit_target_overrides_context(self, bus):
        tool = MessageTool(send_callback=bus.publish_outbound)
        tool.set_context("telegram", "42")
        assert await tool.execute(content="hi", channel="whatsapp", chat_id="7") == "Message sent to whatsapp:7"

    @pytest.mark.asyncio
    async def test_no_target(self, bus):
        tool = MessageTool(send_callback=bus.publish_outbound)
        assert await tool.execute(content="hi") == "Error: No target channel/chat specified"
        assert bus.outbound_size == 0
