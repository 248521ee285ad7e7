"""
Shared test fixtures.

The mock Supabase client keeps rows in memory and applies filters, so
services can be exercised end to end without a database.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings load at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from unittest.mock import patch
from contextlib import ExitStack
from datetime import datetime, timezone
from typing import AsyncIterator, Generator, Optional
from uuid import uuid4

from exceptions import ConnectorError
from integrations.source_connector import SourceConnector
from models.classification import ClassificationAssignment
from models.enrichment import ItemDetails
from models.extraction import ExtractedCategory, ModelInfo, TokenUsage
from models.staging import ScrapedProduct, StagingItemResponse
from models.stream import (
    CategoriesResultEvent,
    ChunkEvent,
    ProductsResultEvent,
    UsageEvent,
)
from models.taxonomy import TaxonomyContext, TaxonomyEntry


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Chainable query over one in-memory table."""

    def __init__(self, client: "MockSupabaseClient", table: str, operation: str, payload=None):
        self._client = client
        self._table = table
        self._operation = operation
        self._payload = payload
        self._filters = []
        self._order = None
        self._limit = None
        self._range = None

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._client.calls.append((self._table, self._operation))
        if (self._table, self._operation) in self._client.failures:
            raise Exception(f"simulated {self._operation} failure on {self._table}")

        rows = self._client.rows(self._table)

        if self._operation == "insert":
            created = []
            for item in self._payload:
                row = dict(item)
                row.setdefault("id", str(uuid4()))
                row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                rows.append(row)
                created.append(dict(row))
            return MockSupabaseResponse(data=created)

        if self._operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(dict(row))
            return MockSupabaseResponse(data=updated)

        if self._operation == "delete":
            removed = [row for row in rows if self._matches(row)]
            rows[:] = [row for row in rows if not self._matches(row)]
            return MockSupabaseResponse(data=[dict(row) for row in removed])

        selected = [dict(row) for row in rows if self._matches(row)]
        if self._order:
            column, desc = self._order
            selected.sort(key=lambda row: str(row.get(column) or ""), reverse=desc)
        total = len(selected)
        if self._range:
            selected = selected[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            selected = selected[:self._limit]
        return MockSupabaseResponse(data=selected, count=total)


class MockSupabaseTable:
    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._client, self._name, "select")

    def insert(self, data):
        rows = [data] if isinstance(data, dict) else list(data)
        return MockSupabaseQuery(self._client, self._name, "insert", rows)

    def update(self, data):
        return MockSupabaseQuery(self._client, self._name, "update", dict(data))

    def delete(self):
        return MockSupabaseQuery(self._client, self._name, "delete")


class MockSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        mock_supabase.set_table_data("staging_items", [...])
        mock_supabase.fail_on("staging_items", "update")
    """

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self.failures: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []

    def set_table_data(self, table_name: str, data: list):
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def fail_on(self, table_name: str, operation: str):
        self.failures.add((table_name, operation))

    def clear_failures(self):
        self.failures.clear()

    def calls_to(self, table_name: str, operation: str) -> int:
        return self.calls.count((table_name, operation))

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)


# ===================
# FAKE CONNECTOR
# ===================

class FakeConnector(SourceConnector):
    """
    Scripted source connector.

    Category streams replay `category_events`. Product streams emit a
    thought chunk, then either the scripted products or a failure:
    names in `failing_categories` raise, names in `truncated_categories`
    close without a result.
    """

    def __init__(
        self,
        categories: Optional[list[ExtractedCategory]] = None,
        sub_categories: Optional[list[ExtractedCategory]] = None,
        products: Optional[dict[str, list[ScrapedProduct]]] = None,
        failing_categories: Optional[set[str]] = None,
        truncated_categories: Optional[set[str]] = None,
        details: Optional[dict[str, ItemDetails]] = None,
        failing_details: Optional[set[str]] = None,
        assignments: Optional[list[ClassificationAssignment]] = None
    ):
        self.category_events = [
            ChunkEvent(text="Looking at ", is_thought=True),
            ChunkEvent(text="the navigation", is_thought=True),
            UsageEvent(usage=TokenUsage(prompt_tokens=100, completion_tokens=20, total_tokens=120)),
            CategoriesResultEvent(success=True, categories=categories or []),
        ]
        self.sub_categories = sub_categories or []
        self.products = products or {}
        self.failing_categories = failing_categories or set()
        self.truncated_categories = truncated_categories or set()
        self.details = details or {}
        self.failing_details = failing_details or set()
        self.assignments = assignments or []
        self.detail_calls: list[str] = []

    async def stream_categories(self, url: str, model_id: str) -> AsyncIterator:
        for event in self.category_events:
            yield event

    async def stream_subcategories(self, url: str, parent_name: str, model_id: str) -> AsyncIterator:
        yield ChunkEvent(text=f"Exploring {parent_name}", is_thought=True)
        yield CategoriesResultEvent(success=True, categories=self.sub_categories)

    async def stream_products(self, url: str, category_name: str, model_id: str) -> AsyncIterator:
        yield ChunkEvent(text=f"Reading {category_name}", is_thought=True)
        if category_name in self.failing_categories:
            raise ConnectorError(f"Upstream timeout for {category_name}")
        if category_name in self.truncated_categories:
            return
        yield ProductsResultEvent(success=True, products=self.products.get(category_name, []))

    async def classify_items(self, items, taxonomy, model_id):
        return self.assignments

    async def fetch_item_details(self, item: StagingItemResponse, model_id: str) -> ItemDetails:
        self.detail_calls.append(item.name)
        if item.name in self.failing_details:
            raise ConnectorError(f"Could not load {item.name}")
        return self.details.get(item.name, ItemDetails(description=f"About {item.name}"))

    async def list_models(self) -> list[ModelInfo]:
        return [ModelInfo(id="test-model", display_name="Test Model")]


# ===================
# FIXTURES
# ===================

PATCHED_MODULES = [
    "config.database",
    "services.import_batch_service",
    "services.staging_service",
    "services.taxonomy_service",
    "services.commit_service",
]

SINGLETONS = [
    ("services.import_batch_service", "_import_batch_service"),
    ("services.staging_service", "_staging_service"),
    ("services.taxonomy_service", "_taxonomy_service"),
]


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """Create an in-memory Supabase client."""
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase, monkeypatch) -> Generator:
    """
    Patch the database client with the mock.

    Any service built inside the test gets the mock from get_supabase_client().
    """
    import importlib

    for module, attr in SINGLETONS:
        monkeypatch.setattr(importlib.import_module(module), attr, None)

    with ExitStack() as stack:
        for module in PATCHED_MODULES:
            stack.enter_context(patch(f"{module}.get_supabase_client", return_value=mock_supabase))
        stack.enter_context(patch("services.commit_service.get_admin_client", return_value=None))
        yield mock_supabase


@pytest.fixture
def taxonomy() -> TaxonomyContext:
    return TaxonomyContext(
        categories=(
            TaxonomyEntry(id="cat-rings", name="Rings"),
            TaxonomyEntry(id="cat-necklaces", name="Necklaces"),
            TaxonomyEntry(id="cat-chairs", name="Chairs"),
        ),
        collections=(
            TaxonomyEntry(id="col-bridal", name="Bridal"),
            TaxonomyEntry(id="col-summer", name="Summer Collection"),
        ),
    )


@pytest.fixture
def seeded_taxonomy(mock_db, mock_supabase, taxonomy):
    """Canonical taxonomy rows in the mock database."""
    mock_supabase.set_table_data("categories", [e.model_dump() for e in taxonomy.categories])
    mock_supabase.set_table_data("collections", [e.model_dump() for e in taxonomy.collections])
    return taxonomy


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db, fake_connector):
    """
    FastAPI test client with mocked database and connector.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("import_batches", [...])
            response = test_client_with_mock_db.get("/api/batches")
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.imports.get_claude_connector", return_value=fake_connector):
        with patch("routes.batches.get_claude_connector", return_value=fake_connector):
            yield TestClient(app)
