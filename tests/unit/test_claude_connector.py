"""
Unit tests for ClaudeConnector response handling.

The Anthropic client and page fetch are replaced, so nothing leaves the
process.

Run: pytest tests/unit/test_claude_connector.py -v
"""

from types import SimpleNamespace

import pytest

from integrations.claude_connector import MAX_REDIRECTS, ClaudeConnector
from exceptions import ConnectorError, UnsafeUrlError
from models.stream import ChunkEvent, LogEvent, ProductsResultEvent, UsageEvent, CategoriesResultEvent


def delta(kind: str, text: str) -> SimpleNamespace:
    if kind == "thinking_delta":
        return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type=kind, thinking=text))
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type=kind, text=text))


class FakeStream:
    """Async context manager mimicking messages.stream()."""

    def __init__(self, events: list, stop_reason: str):
        self._events = events
        self._stop_reason = stop_reason

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            yield event

    async def get_final_message(self):
        return SimpleNamespace(
            stop_reason=self._stop_reason,
            usage=SimpleNamespace(input_tokens=100, output_tokens=40),
        )


def scripted_connector(events: list, stop_reason: str = "end_turn") -> ClaudeConnector:
    connector = ClaudeConnector(api_key="test-key")
    connector.client = SimpleNamespace(
        messages=SimpleNamespace(stream=lambda **params: FakeStream(events, stop_reason))
    )

    async def fetch_page(url):
        return "<html><body>listing</body></html>"

    connector.fetch_page = fetch_page
    return connector


async def collect(stream) -> list:
    return [event async for event in stream]


class TestClaudeConnectorProducts:
    """Tests for ClaudeConnector.stream_products()"""

    async def test_streams_thoughts_and_parses_products(self):
        """Should yield thought and text chunks, usage, then the products."""
        connector = scripted_connector([
            delta("thinking_delta", "Scanning the grid"),
            delta("text_delta", '{"products": [{"name": "Chiavari Chair", "rental_price": "$8.50"}'),
            delta("text_delta", "]}"),
        ])

        events = await collect(connector.stream_products("https://shop.example.com/chairs", "Chairs", "m"))

        assert isinstance(events[0], ChunkEvent) and events[0].is_thought
        assert isinstance(events[1], ChunkEvent) and not events[1].is_thought
        assert isinstance(events[3], UsageEvent)
        assert events[3].usage.total_tokens == 140
        result = events[-1]
        assert isinstance(result, ProductsResultEvent)
        assert result.success is True
        assert result.products[0].rental_price == 8.5

    async def test_truncated_response_keeps_complete_products(self):
        """Should salvage complete products and report a non-fatal notice."""
        connector = scripted_connector([
            delta("text_delta", '{"products": [{"name": "A"}, {"name": "B"}, {"name": "C", "col'),
        ], stop_reason="max_tokens")

        events = await collect(connector.stream_products("https://shop.example.com/chairs", "Chairs", "m"))

        assert isinstance(events[-2], LogEvent)
        assert [p.name for p in events[-1].products] == ["A", "B"]
        assert events[-1].success is True

    async def test_truncated_with_nothing_complete_fails(self):
        connector = scripted_connector([delta("text_delta", '{"products": [{"na')], stop_reason="max_tokens")

        events = await collect(connector.stream_products("https://shop.example.com/chairs", "Chairs", "m"))

        assert events[-1].success is False

    async def test_unconfigured_client_yields_failure(self):
        """Should end with a failure result instead of raising."""
        connector = scripted_connector([])
        connector.client = None

        events = await collect(connector.stream_products("https://shop.example.com/chairs", "Chairs", "m"))

        assert len(events) == 1
        assert events[0].success is False
        assert "ANTHROPIC_API_KEY" in events[0].error


class TestClaudeConnectorCategories:
    async def test_empty_taxonomy_is_success(self):
        connector = scripted_connector([delta("text_delta", '```json\n{"categories": []}\n```')])

        events = await collect(connector.stream_categories("https://shop.example.com", "m"))

        assert isinstance(events[-1], CategoriesResultEvent)
        assert events[-1].success is True
        assert events[-1].categories == []

    async def test_unsafe_page_url_fails_without_fetch(self):
        connector = ClaudeConnector(api_key="test-key")

        events = await collect(connector.stream_categories("http://127.0.0.1/", "m"))

        assert events[-1].success is False


class TestClaudeConnectorModels:
    async def test_list_models_falls_back_without_client(self):
        connector = ClaudeConnector(api_key="test-key")
        connector.client = None

        models = await connector.list_models()

        assert any(m.id == "claude-sonnet-4-20250514" for m in models)


class FakeHttp:
    """Scripted requests.get: url -> redirect target or page body."""

    def __init__(self, redirects: dict, pages: dict):
        self.redirects = redirects
        self.pages = pages
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs.get("allow_redirects")))
        if url in self.redirects:
            return SimpleNamespace(
                is_redirect=True,
                headers={"Location": self.redirects[url]},
                raise_for_status=lambda: None,
            )
        return SimpleNamespace(is_redirect=False, headers={}, text=self.pages[url], raise_for_status=lambda: None)


class TestClaudeConnectorFetchPage:
    """Tests for ClaudeConnector.fetch_page()"""

    async def test_redirect_to_metadata_host_is_blocked(self, monkeypatch):
        """Should refuse to follow a redirect into an internal address."""
        http = FakeHttp(redirects={"https://shop.example.com/": "http://169.254.169.254/latest/meta-data"}, pages={})
        monkeypatch.setattr("integrations.claude_connector.requests.get", http.get)

        with pytest.raises(UnsafeUrlError):
            await ClaudeConnector(api_key="test-key").fetch_page("https://shop.example.com/")

        assert http.calls == [("https://shop.example.com/", False)]

    async def test_relative_redirect_is_followed(self, monkeypatch):
        http = FakeHttp(
            redirects={"https://shop.example.com/": "/catalog"},
            pages={"https://shop.example.com/catalog": "<html><body>Chairs</body></html>"},
        )
        monkeypatch.setattr("integrations.claude_connector.requests.get", http.get)

        page = await ClaudeConnector(api_key="test-key").fetch_page("https://shop.example.com/")

        assert "Chairs" in page
        assert [url for url, _ in http.calls] == ["https://shop.example.com/", "https://shop.example.com/catalog"]

    async def test_redirect_loop_is_a_connector_error(self, monkeypatch):
        http = FakeHttp(
            redirects={"https://shop.example.com/a": "/b", "https://shop.example.com/b": "/a"},
            pages={},
        )
        monkeypatch.setattr("integrations.claude_connector.requests.get", http.get)

        with pytest.raises(ConnectorError):
            await ClaudeConnector(api_key="test-key").fetch_page("https://shop.example.com/a")

        assert len(http.calls) == MAX_REDIRECTS + 1
