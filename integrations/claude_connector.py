"""
Claude-backed source connector.

Fetches the source page, sends a trimmed copy of its HTML to Claude and
streams thinking/text deltas back as chunk events. The final text is parsed
leniently: a response cut off at the token limit still yields every
complete record it contained.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import AsyncIterator, Optional
from urllib.parse import urljoin

import anthropic
import requests
import structlog

from config import settings
from exceptions import ConnectorError, ConnectorNotConfiguredError, UnsafeUrlError
from integrations.source_connector import SourceConnector
from models.classification import ClassificationAssignment
from models.enrichment import ItemDetails
from models.extraction import ExtractedCategory, ModelInfo, TokenUsage
from models.staging import ScrapedProduct, StagingItemResponse
from models.stream import (
    CategoriesResultEvent,
    CategoryStreamEvent,
    ChunkEvent,
    LogEvent,
    ProductsResultEvent,
    ProductStreamEvent,
    UsageEvent,
)
from models.taxonomy import TaxonomyContext
from utils.json_utils import parse_json_response, salvage_array_objects
from utils.text_utils import clean_text
from utils.url_validator import validate_external_url

logger = structlog.get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

_STRIP_BLOCKS = re.compile(r"<(script|style|noscript|svg)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_STRIP_COMMENTS = re.compile(r"<!--.*?-->", re.DOTALL)
_COLLAPSE_WS = re.compile(r"\s{2,}")

# Each hop is re-validated before it is followed
MAX_REDIRECTS = 5

FALLBACK_MODELS = [
    ModelInfo(id="claude-sonnet-4-20250514", display_name="Claude Sonnet 4", description="Balanced"),
    ModelInfo(id="claude-opus-4-20250514", display_name="Claude Opus 4", description="Most capable"),
    ModelInfo(id="claude-3-5-haiku-20241022", display_name="Claude Haiku 3.5", description="Fastest"),
]


@dataclass
class _Completion:
    """Collects the streamed text of one request."""
    text: str = ""
    stop_reason: Optional[str] = None

    @property
    def truncated(self) -> bool:
        return self.stop_reason == "max_tokens"


class ClaudeConnector(SourceConnector):
    """
    Source connector using the Anthropic Messages API.

    Each public stream makes exactly one model request and ends with exactly
    one result event, success or failure.
    """

    CATEGORY_PROMPT = """You analyse e-commerce pages for a rental inventory importer.

IMPORTANT: Return ONLY valid JSON, no markdown, no explanation.

Find the product taxonomy on this page: the categories (product types such as
"Chairs", "Tables") and collections (curated themes or lines such as
"Boho Wedding"). For each one return:
- name: label as shown on the page
- url: absolute URL of its listing page (null if none)
- item_count: number of items if the page shows it (null otherwise)
- suggested_type: "category" or "collection"

Return JSON in this exact structure:
{"categories": [{"name": "Chairs", "url": "https://example.com/chairs", "item_count": 24, "suggested_type": "category"}]}

If the page has no taxonomy, return {"categories": []}."""

    SUBCATEGORY_PROMPT = """You analyse one category page of an e-commerce site.

IMPORTANT: Return ONLY valid JSON, no markdown, no explanation.

The page belongs to the parent "{parent_name}". List the sub-categories or
collections nested under it (not products). Use the same fields as a
top-level taxonomy entry: name, url, item_count, suggested_type.

Return JSON in this exact structure:
{{"categories": [{{"name": "Velvet Chairs", "url": "https://example.com/chairs/velvet", "item_count": null, "suggested_type": "category"}}]}}

If there are no sub-categories, return {{"categories": []}}."""

    PRODUCT_LIST_PROMPT = """You extract product listings from a category page of "{category_name}".

IMPORTANT: Return ONLY valid JSON, no markdown, no explanation.

For every product on the page return:
- name: product name
- variant_of_name: parent product name when this listing is a variant (color/size) of another, else null
- sku, rental_price, replacement_cost, color, material, weight, description: when shown, else null
- image_urls: absolute image URLs
- source_url: absolute URL of the product page

Return JSON in this exact structure:
{{"products": [{{"name": "Gold Chiavari Chair", "variant_of_name": "Chiavari Chair", "sku": null, "rental_price": 8.5, "replacement_cost": null, "color": "Gold", "material": null, "weight": null, "description": null, "image_urls": [], "source_url": "https://example.com/p/1"}}]}}"""

    DETAIL_PROMPT = """You read a single product page.

IMPORTANT: Return ONLY valid JSON, no markdown, no explanation.

Extract: sku, rental_price, replacement_cost, color, material, weight,
description, image_urls (absolute). Use null for anything not on the page.

Return one JSON object with exactly those keys."""

    CLASSIFY_PROMPT = """You assign staged products to an existing taxonomy.

IMPORTANT: Return ONLY valid JSON, no markdown, no explanation.

Only use ids from the lists below. Use null when nothing fits.

Categories:
{categories}

Collections:
{collections}

Return JSON in this exact structure:
{{"assignments": [{{"item_id": "...", "category_id": "... or null", "collection_id": "... or null"}}]}}"""

    def __init__(self, api_key: Optional[str] = None):
        """Initialize the connector. Without an API key every call fails cleanly."""
        key = api_key or settings.anthropic_api_key
        if key:
            self.client = anthropic.AsyncAnthropic(
                api_key=key,
                timeout=settings.connector_timeout_seconds
            )
        else:
            self.client = None

    # ===================
    # PAGE FETCHING
    # ===================

    def _fetch_page_sync(self, url: str) -> str:
        for _ in range(MAX_REDIRECTS + 1):
            response = requests.get(
                url,
                headers={"User-Agent": USER_AGENT, "Accept": "text/html"},
                timeout=settings.page_fetch_timeout_seconds,
                allow_redirects=False
            )
            if not response.is_redirect:
                response.raise_for_status()
                return response.text

            target = urljoin(url, response.headers.get("Location", ""))
            logger.debug("page_redirect", url=url, location=target)
            url = validate_external_url(target)

        raise requests.TooManyRedirects(f"More than {MAX_REDIRECTS} redirects")

    async def fetch_page(self, url: str) -> str:
        """
        Fetch a page and trim it for the model.

        Redirects are followed by hand so every hop passes URL validation.

        Raises:
            UnsafeUrlError: If the URL or a redirect targets an internal address
            ConnectorError: If the page cannot be fetched
        """
        safe_url = validate_external_url(url)
        logger.info("fetching_page", url=safe_url)

        try:
            html = await asyncio.to_thread(self._fetch_page_sync, safe_url)
        except requests.RequestException as e:
            logger.warning("page_fetch_failed", url=safe_url, error=str(e))
            raise ConnectorError(f"Could not fetch {safe_url}: {e}", details={"url": safe_url}) from e

        trimmed = _STRIP_BLOCKS.sub("", html)
        trimmed = _STRIP_COMMENTS.sub("", trimmed)
        trimmed = _COLLAPSE_WS.sub(" ", trimmed)

        if len(trimmed) > settings.page_max_chars:
            logger.info("page_truncated", url=safe_url, original_chars=len(trimmed))
            trimmed = trimmed[:settings.page_max_chars]

        return trimmed

    # ===================
    # MODEL CALLS
    # ===================

    def _request_params(self, system: str, content: str, model_id: str) -> dict:
        params = {
            "model": model_id,
            "max_tokens": settings.connector_max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": content}],
        }
        budget = settings.connector_thinking_budget
        if budget >= 1024 and budget < settings.connector_max_tokens:
            params["thinking"] = {"type": "enabled", "budget_tokens": budget}
        return params

    async def _stream_completion(
        self,
        system: str,
        content: str,
        model_id: str,
        completion: _Completion
    ) -> AsyncIterator[ChunkEvent | UsageEvent]:
        """
        Stream one request, yielding chunks and a usage event.

        The full response text lands in `completion`.
        """
        if self.client is None:
            raise ConnectorNotConfiguredError()

        parts: list[str] = []
        async with self.client.messages.stream(**self._request_params(system, content, model_id)) as stream:
            async for event in stream:
                if event.type != "content_block_delta":
                    continue
                delta = event.delta
                if delta.type == "thinking_delta":
                    yield ChunkEvent(text=delta.thinking, is_thought=True)
                elif delta.type == "text_delta":
                    parts.append(delta.text)
                    yield ChunkEvent(text=delta.text, is_thought=False)

            final = await stream.get_final_message()

        completion.text = "".join(parts)
        completion.stop_reason = final.stop_reason

        usage = final.usage
        yield UsageEvent(usage=TokenUsage(
            prompt_tokens=usage.input_tokens,
            completion_tokens=usage.output_tokens,
            total_tokens=usage.input_tokens + usage.output_tokens,
        ))

        logger.debug(
            "connector_stream_complete",
            model=model_id,
            stop_reason=final.stop_reason,
            response_length=len(completion.text)
        )

    async def _complete(self, system: str, content: str, model_id: str) -> str:
        """Non-streamed request returning the response text."""
        if self.client is None:
            raise ConnectorNotConfiguredError()

        try:
            response = await self.client.messages.create(
                model=model_id,
                max_tokens=settings.connector_max_tokens,
                system=system,
                messages=[{"role": "user", "content": content}]
            )
        except anthropic.APIError as e:
            logger.error("claude_api_error", error=str(e))
            raise ConnectorError(f"Claude API error: {e}") from e

        return "".join(block.text for block in response.content if block.type == "text")

    # ===================
    # TAXONOMY STREAMS
    # ===================

    def _parse_categories(self, completion: _Completion) -> tuple[list[ExtractedCategory], bool]:
        """Returns (categories, salvaged)."""
        data = parse_json_response(completion.text)
        salvaged = False
        if isinstance(data, dict):
            raw = data.get("categories") or []
        elif isinstance(data, list):
            raw = data
        else:
            raw = salvage_array_objects(completion.text, "categories")
            salvaged = True

        categories = []
        for entry in raw:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            try:
                categories.append(ExtractedCategory(**entry))
            except ValueError as e:
                logger.warning("category_entry_invalid", entry=entry, error=str(e))
        return categories, salvaged

    async def _taxonomy_stream(
        self,
        url: str,
        system: str,
        model_id: str
    ) -> AsyncIterator[CategoryStreamEvent]:
        completion = _Completion()
        try:
            page = await self.fetch_page(url)
            async for event in self._stream_completion(system, f"Page URL: {url}\n\n{page}", model_id, completion):
                yield event
        except (ConnectorError, ConnectorNotConfiguredError, UnsafeUrlError) as e:
            yield CategoriesResultEvent(success=False, error=e.message)
            return
        except anthropic.APIError as e:
            logger.error("claude_api_error", error=str(e))
            yield CategoriesResultEvent(success=False, error=f"Claude API error: {e}")
            return

        categories, salvaged = self._parse_categories(completion)
        if completion.truncated or salvaged:
            if not categories:
                yield CategoriesResultEvent(success=False, error="Response was cut off before any category was complete")
                return
            yield LogEvent(message=f"Response was truncated; kept {len(categories)} complete entries")

        yield CategoriesResultEvent(success=True, categories=categories)

    async def stream_categories(self, url: str, model_id: str) -> AsyncIterator[CategoryStreamEvent]:
        logger.info("connector_categories_started", url=url, model=model_id)
        async for event in self._taxonomy_stream(url, self.CATEGORY_PROMPT, model_id):
            yield event

    async def stream_subcategories(
        self,
        url: str,
        parent_name: str,
        model_id: str
    ) -> AsyncIterator[CategoryStreamEvent]:
        logger.info("connector_subcategories_started", url=url, parent=parent_name, model=model_id)
        system = self.SUBCATEGORY_PROMPT.format(parent_name=parent_name)
        async for event in self._taxonomy_stream(url, system, model_id):
            yield event

    # ===================
    # PRODUCT STREAM
    # ===================

    def _parse_products(self, completion: _Completion) -> tuple[list[ScrapedProduct], bool]:
        data = parse_json_response(completion.text)
        salvaged = False
        if isinstance(data, dict):
            raw = data.get("products") or []
        elif isinstance(data, list):
            raw = data
        else:
            raw = salvage_array_objects(completion.text, "products")
            salvaged = True

        products = []
        for entry in raw:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            try:
                products.append(ScrapedProduct(**entry))
            except ValueError as e:
                logger.warning("product_entry_invalid", name=entry.get("name"), error=str(e))
        return products, salvaged

    async def stream_products(
        self,
        url: str,
        category_name: str,
        model_id: str
    ) -> AsyncIterator[ProductStreamEvent]:
        logger.info("connector_products_started", url=url, category=category_name, model=model_id)
        system = self.PRODUCT_LIST_PROMPT.format(category_name=category_name)
        completion = _Completion()

        try:
            page = await self.fetch_page(url)
            async for event in self._stream_completion(system, f"Page URL: {url}\n\n{page}", model_id, completion):
                yield event
        except (ConnectorError, ConnectorNotConfiguredError, UnsafeUrlError) as e:
            yield ProductsResultEvent(success=False, error=e.message)
            return
        except anthropic.APIError as e:
            logger.error("claude_api_error", error=str(e))
            yield ProductsResultEvent(success=False, error=f"Claude API error: {e}")
            return

        products, salvaged = self._parse_products(completion)
        if completion.truncated or salvaged:
            if not products:
                yield ProductsResultEvent(success=False, error="Response was cut off before any product was complete")
                return
            yield LogEvent(message=f"{category_name}: response was truncated; kept {len(products)} complete products")

        yield ProductsResultEvent(success=True, products=products)

    # ===================
    # REQUEST/RESPONSE CALLS
    # ===================

    async def classify_items(
        self,
        items: list[StagingItemResponse],
        taxonomy: TaxonomyContext,
        model_id: str
    ) -> list[ClassificationAssignment]:
        system = self.CLASSIFY_PROMPT.format(
            categories="\n".join(f"- {c.id}: {c.name}" for c in taxonomy.categories) or "(none)",
            collections="\n".join(f"- {c.id}: {c.name}" for c in taxonomy.collections) or "(none)",
        )
        lines = []
        for item in items:
            description = clean_text(item.description, max_length=200)
            lines.append(f"- {item.id}: {item.name}" + (f" ({description})" if description else ""))
        content = "\n".join(lines)

        text = await self._complete(system, content, model_id)
        data = parse_json_response(text)
        if isinstance(data, dict):
            raw = data.get("assignments") or []
        else:
            raw = salvage_array_objects(text, "assignments")

        category_ids = {c.id for c in taxonomy.categories}
        collection_ids = {c.id for c in taxonomy.collections}

        assignments = []
        for entry in raw:
            if not isinstance(entry, dict) or not entry.get("item_id"):
                continue
            category_id = entry.get("category_id")
            collection_id = entry.get("collection_id")
            assignments.append(ClassificationAssignment(
                item_id=str(entry["item_id"]),
                category_id=category_id if category_id in category_ids else None,
                collection_id=collection_id if collection_id in collection_ids else None,
            ))

        logger.info("connector_classification_complete", items=len(items), assignments=len(assignments))
        return assignments

    async def fetch_item_details(self, item: StagingItemResponse, model_id: str) -> ItemDetails:
        if not item.source_url:
            raise ConnectorError("Item has no product page to read", details={"item_id": item.id})

        page = await self.fetch_page(item.source_url)
        text = await self._complete(self.DETAIL_PROMPT, f"Product: {item.name}\nPage URL: {item.source_url}\n\n{page}", model_id)

        data = parse_json_response(text)
        if not isinstance(data, dict):
            raise ConnectorError("Detail response was not valid JSON", details={"item_id": item.id})

        try:
            return ItemDetails(**data)
        except ValueError as e:
            raise ConnectorError(f"Detail response invalid: {e}", details={"item_id": item.id}) from e

    async def list_models(self) -> list[ModelInfo]:
        if self.client is None:
            return list(FALLBACK_MODELS)

        try:
            page = await self.client.models.list(limit=50)
        except anthropic.APIError as e:
            logger.warning("list_models_failed", error=str(e))
            return list(FALLBACK_MODELS)

        models = [
            ModelInfo(id=m.id, display_name=m.display_name or m.id)
            for m in page.data
        ]
        return models or list(FALLBACK_MODELS)


# Singleton instance
_claude_connector: Optional[ClaudeConnector] = None


def get_claude_connector() -> ClaudeConnector:
    """Get or create ClaudeConnector instance."""
    global _claude_connector
    if _claude_connector is None:
        _claude_connector = ClaudeConnector()
    return _claude_connector
