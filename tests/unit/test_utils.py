"""
Unit tests for JSON salvage, URL validation, text matching and price parsing.

Run: pytest tests/unit/test_utils.py -v
"""

from decimal import Decimal

import pytest

from utils.json_utils import parse_json_response, salvage_array_objects, strip_code_fences
from utils.text_utils import clean_text, find_exact_match, find_loose_match, normalize_name
from utils.url_validator import is_public_url, validate_external_url
from models.staging import ScrapedProduct, coerce_price
from models.taxonomy import TaxonomyEntry
from exceptions import UnsafeUrlError


class TestJsonUtils:
    """Tests for lenient model-output parsing."""

    def test_strips_markdown_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_parse_with_surrounding_prose(self):
        """Should find the JSON object inside extra text."""
        assert parse_json_response('Here you go: {"categories": []} done') == {"categories": []}

    def test_parse_invalid_returns_none(self):
        assert parse_json_response('{"products": [{"name": "A"},') is None

    def test_salvage_truncated_array(self):
        """Should keep every complete object before the cut."""
        text = '```json\n{"products": [{"name": "A", "tags": ["x"]}, {"name": "B"}, {"name": "C", "pri'

        assert salvage_array_objects(text, "products") == [{"name": "A", "tags": ["x"]}, {"name": "B"}]

    def test_salvage_bare_array(self):
        assert salvage_array_objects('[{"name": "A"}, {"na', "products") == [{"name": "A"}]

    def test_salvage_nothing_complete(self):
        assert salvage_array_objects('{"products": [{"name": "A"', "products") == []


class TestUrlValidator:
    """Tests for outbound URL safety."""

    @pytest.mark.parametrize("url", [
        "https://shop.example.com/catalog",
        "http://store.example.org/rings?page=2",
    ])
    def test_public_urls_allowed(self, url):
        assert is_public_url(url)
        assert validate_external_url(f"  {url} ") == url

    @pytest.mark.parametrize("url", [
        "http://localhost:8000/",
        "http://127.0.0.1/",
        "http://10.0.0.5/admin",
        "http://172.16.0.1/",
        "http://192.168.1.20/",
        "http://169.254.169.254/latest/meta-data",
        "http://[::1]/",
        "http://metadata.google.internal/",
        "http://app.localhost/",
        "ftp://shop.example.com/",
        "file:///etc/passwd",
        "",
    ])
    def test_internal_urls_blocked(self, url):
        """Should reject private, loopback, metadata and non-http URLs."""
        assert not is_public_url(url)
        with pytest.raises(UnsafeUrlError):
            validate_external_url(url)


class TestTextUtils:
    """Tests for name matching."""

    entries = [TaxonomyEntry(id="1", name="Rings"), TaxonomyEntry(id="2", name="Wedding Arches")]

    def test_normalize_name(self):
        assert normalize_name("  Wedding   ARCHES ") == "wedding arches"
        assert normalize_name("   ") is None

    def test_exact_match_case_insensitive(self):
        assert find_exact_match("wedding arches", self.entries).id == "2"
        assert find_exact_match("Arches", self.entries) is None

    def test_loose_match_both_directions(self):
        assert find_loose_match("Arches", self.entries).id == "2"
        assert find_loose_match("Gold Rings", self.entries).id == "1"
        assert find_loose_match("Lamps", self.entries) is None

    def test_clean_text(self):
        assert clean_text("  hello  ") == "hello"
        assert clean_text("   ") is None
        assert clean_text("abcdef", max_length=3) == "abc"


class TestCoercePrice:
    """Tests for price parsing on scraped items."""

    @pytest.mark.parametrize("raw, expected", [
        ("$1,250.00", Decimal("1250.00")),
        ("$1,250", Decimal("1250.00")),
        ("1,250,000", Decimal("1250000.00")),
        ("1.250,00 €", Decimal("1250.00")),
        ("1.250.000", Decimal("1250000.00")),
        ("12,5", Decimal("12.50")),
        ("8,50", Decimal("8.50")),
        ("$8.5 / day", Decimal("8.50")),
        (40, Decimal("40.00")),
        (19.999, Decimal("20.00")),
    ])
    def test_parses_common_formats(self, raw, expected):
        assert coerce_price(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "Call for price", True])
    def test_unparseable_is_none(self, raw):
        assert coerce_price(raw) is None

    def test_scraped_product_prices_are_decimal(self):
        product = ScrapedProduct(name="Chair", rental_price="$1,250", replacement_cost=80)

        assert product.rental_price == Decimal("1250.00")
        assert isinstance(product.replacement_cost, Decimal)
