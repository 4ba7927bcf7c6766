"""
Web tools: web_search (Brave) and web_fetch.
"""

import json
import os
import re
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from superbot.tools.base import Tool

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36"
BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


def _normalize(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


class WebSearchTool(Tool):
    """Search the web using the Brave Search API."""

    def __init__(self, api_key: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key or os.environ.get("BRAVE_API_KEY", "")
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web. Returns titles, URLs, and snippets."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "count": {
                    "type": "integer",
                    "description": "Number of results (1-10)",
                    "minimum": 1,
                    "maximum": 10,
                },
            },
            "required": ["query"],
        }

    async def execute(self, query: str, count: int = 5, **kwargs: Any) -> str:
        if not self.api_key:
            return "Error: BRAVE_API_KEY not configured"

        n = min(max(count, 1), 10)
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.get(
                    BRAVE_SEARCH_URL,
                    params={"q": query, "count": n},
                    headers={
                        "Accept": "application/json",
                        "X-Subscription-Token": self.api_key,
                    },
                )
                response.raise_for_status()
            results = response.json().get("web", {}).get("results", [])
        except Exception as e:
            return f"Error: {e}"

        if not results:
            return f"No results for: {query}"

        lines = [f"Results for: {query}\n"]
        for i, item in enumerate(results[:n], 1):
            lines.append(f"{i}. {item.get('title', '')}\n   {item.get('url', '')}")
            if desc := item.get("description"):
                lines.append(f"   {desc}")
        return "\n".join(lines)


class WebFetchTool(Tool):
    """Fetch a URL and extract readable text."""

    def __init__(self, max_chars: int = 50_000, transport: httpx.AsyncBaseTransport | None = None):
        self.max_chars = max_chars
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return "Fetch URL and extract readable content (HTML → text)."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to fetch"},
                "extractMode": {
                    "type": "string",
                    "enum": ["markdown", "text"],
                    "description": "Extract mode",
                },
                "maxChars": {
                    "type": "integer",
                    "description": "Max characters to return",
                    "minimum": 100,
                },
            },
            "required": ["url"],
        }

    async def execute(
        self,
        url: str,
        extractMode: str = "text",
        maxChars: int | None = None,
        **kwargs: Any,
    ) -> str:
        max_chars = maxChars or self.max_chars

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return json.dumps({"error": "Only http/https URLs allowed", "url": url})
        if not parsed.netloc:
            return json.dumps({"error": "Invalid URL", "url": url})

        try:
            async with httpx.AsyncClient(
                timeout=30,
                follow_redirects=True,
                max_redirects=5,
                headers={"User-Agent": USER_AGENT},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except Exception as e:
            return json.dumps({"error": str(e), "url": url})

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            text = json.dumps(response.json(), indent=2)
            extractor = "json"
        elif "text/html" in content_type or response.text[:256].lower().lstrip().startswith("<!doctype"):
            text = self._extract_html(response.text)
            extractor = "bs4"
        else:
            text = response.text
            extractor = "raw"

        truncated = len(text) > max_chars
        if truncated:
            text = text[:max_chars]

        return json.dumps(
            {
                "url": url,
                "finalUrl": str(response.url),
                "status": response.status_code,
                "extractor": extractor,
                "truncated": truncated,
                "length": len(text),
                "text": text,
            }
        )

    @staticmethod
    def _extract_html(html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        for element in soup(["script", "style", "nav", "header", "footer", "aside"]):
            element.decompose()
        title = soup.title.string.strip() if soup.title and soup.title.string else ""
        body = _normalize(soup.get_text(separator="\n"))
        return f"# {title}\n\n{body}" if title else body
