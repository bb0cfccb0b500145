"""Tests for the product result extractor.

Covers:
- JSON string and structured payloads
- Truncation to the display cap, preserving order
- Price formatting (price range, first variant, missing)
- Fallback ids and default fields
- Malformed payloads degrade to an empty list
"""

import json
from typing import Any

from shopchat.services.product_extractor import extract_products, format_product


def _product(index: int, **overrides: Any) -> dict[str, Any]:
    product = {
        "product_id": f"gid://shopify/Product/{index}",
        "title": f"Red Shirt {index}",
        "price_range": {"min": f"{index}0.00", "max": f"{index}5.00", "currency": "USD"},
        "image_url": f"https://cdn.test/{index}.jpg",
        "description": f"Shirt number {index}",
        "url": f"https://test-shop.myshopify.com/products/red-shirt-{index}",
    }
    product.update(overrides)
    return product


def _result(payload: Any) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": payload}]}


# ---------------------------------------------------------------------------
# Tests: payload shapes
# ---------------------------------------------------------------------------


class TestPayloadShapes:
    """Tests for accepted tool result payloads."""

    def test_json_string_payload(self) -> None:
        """Parses a JSON-encoded string in the first content block."""
        payload = json.dumps({"products": [_product(1)]})

        products = extract_products(_result(payload))

        assert len(products) == 1
        assert products[0].id == "gid://shopify/Product/1"
        assert products[0].title == "Red Shirt 1"
        assert products[0].price == "USD 10.00"
        assert products[0].image_url == "https://cdn.test/1.jpg"

    def test_structured_payload(self) -> None:
        """Accepts an already-decoded object in the first content block."""
        products = extract_products(_result({"products": [_product(2)]}))

        assert [p.title for p in products] == ["Red Shirt 2"]

    def test_missing_products_key(self) -> None:
        """A payload without a products array yields nothing."""
        assert extract_products(_result(json.dumps({"items": [_product(1)]}))) == []

    def test_empty_content(self) -> None:
        """No content blocks yields nothing."""
        assert extract_products({"content": []}) == []
        assert extract_products({}) == []


# ---------------------------------------------------------------------------
# Tests: truncation
# ---------------------------------------------------------------------------


class TestTruncation:
    """Tests for the display cap."""

    def test_caps_at_three_preserving_order(self) -> None:
        """Five products yield the first three, in source order."""
        payload = json.dumps({"products": [_product(i) for i in range(1, 6)]})

        products = extract_products(_result(payload))

        assert [p.title for p in products] == ["Red Shirt 1", "Red Shirt 2", "Red Shirt 3"]

    def test_explicit_limit(self) -> None:
        """An explicit limit overrides the configured cap."""
        payload = json.dumps({"products": [_product(i) for i in range(1, 6)]})

        assert len(extract_products(_result(payload), limit=1)) == 1

    def test_fewer_than_cap(self) -> None:
        """Fewer products than the cap are all returned."""
        payload = json.dumps({"products": [_product(1), _product(2)]})

        assert len(extract_products(_result(payload))) == 2


# ---------------------------------------------------------------------------
# Tests: formatting
# ---------------------------------------------------------------------------


class TestFormatProduct:
    """Tests for mapping a raw product onto a card."""

    def test_price_from_first_variant(self) -> None:
        """Without a price range, the first variant's price is used."""
        raw = _product(1, price_range=None, variants=[
            {"price": "19.99", "currency": "CAD"},
            {"price": "29.99", "currency": "CAD"},
        ])

        assert format_product(raw).price == "CAD 19.99"

    def test_price_not_available(self) -> None:
        """No price range and no variants."""
        raw = _product(1, price_range=None)

        assert format_product(raw).price == "Price not available"

    def test_defaults_for_missing_fields(self) -> None:
        """Missing optional fields become empty strings and a generic title."""
        card = format_product({"product_id": "p1"})

        assert card.title == "Product"
        assert card.image_url == ""
        assert card.description == ""
        assert card.url == ""

    def test_fallback_id(self) -> None:
        """A product without an id gets a synthesized one."""
        card = format_product({"title": "No Id"})

        assert card.id.startswith("product-")
        assert len(card.id) == len("product-") + 7


# ---------------------------------------------------------------------------
# Tests: purity and failure handling
# ---------------------------------------------------------------------------


class TestRobustness:
    """Tests for idempotence and malformed input."""

    def test_same_input_same_output(self) -> None:
        """Extracting twice from the same result gives identical lists."""
        raw_products = [_product(1), {"title": "No Id"}, _product(3)]
        result = _result(json.dumps({"products": raw_products}))

        assert extract_products(result) == extract_products(result)

    def test_non_json_text(self) -> None:
        """Plain text that is not JSON yields an empty list without raising."""
        assert extract_products(_result("Sorry, the catalog is unavailable")) == []

    def test_products_not_a_list(self) -> None:
        """A non-list products member yields an empty list."""
        assert extract_products(_result(json.dumps({"products": "none"}))) == []

    def test_non_mapping_entries_skipped(self) -> None:
        """Entries that are not objects are ignored."""
        payload = json.dumps({"products": ["junk", _product(1)]})

        assert [p.title for p in extract_products(_result(payload))] == ["Red Shirt 1"]
