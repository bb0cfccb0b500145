"""Extract display-ready product cards from catalog search tool output."""

import hashlib
import json
import logging
from collections.abc import Mapping
from typing import Any

from shopchat.core.config import settings
from shopchat.schemas.chat import ProductCard

logger = logging.getLogger(__name__)


def _format_price(product: Mapping[str, Any]) -> str:
    price_range = product.get("price_range")
    if isinstance(price_range, Mapping):
        return f"{price_range.get('currency')} {price_range.get('min')}"

    variants = product.get("variants")
    if isinstance(variants, list) and variants and isinstance(variants[0], Mapping):
        return f"{variants[0].get('currency')} {variants[0].get('price')}"

    return "Price not available"


def _fallback_id(product: Mapping[str, Any]) -> str:
    digest = hashlib.sha1(
        json.dumps(product, sort_keys=True, default=str).encode(),
        usedforsecurity=False,
    ).hexdigest()
    return f"product-{digest[:7]}"


def format_product(product: Mapping[str, Any]) -> ProductCard:
    """Map one raw catalog product onto a :class:`ProductCard`."""
    return ProductCard(
        id=str(product.get("product_id") or _fallback_id(product)),
        title=product.get("title") or "Product",
        price=_format_price(product),
        image_url=product.get("image_url") or "",
        description=product.get("description") or "",
        url=product.get("url") or "",
    )


def extract_products(tool_result: Mapping[str, Any], limit: int | None = None) -> list[ProductCard]:
    """Extract at most ``limit`` products from a catalog search result.

    The first content block's ``text`` may hold either an object or a JSON
    string with a ``products`` array. Any parse failure yields an empty list.

    Args:
        tool_result: Success envelope ``{"content": [...]}`` from the tool gateway.
        limit: Maximum number of products; defaults to ``max_products_to_display``.

    Returns:
        Product cards in source order.
    """
    limit = settings.max_products_to_display if limit is None else limit

    try:
        content = tool_result.get("content") or []
        if not content:
            return []

        text = content[0].get("text")
        data = json.loads(text) if isinstance(text, str) else text

        products = data.get("products") if isinstance(data, Mapping) else None
        if not isinstance(products, list):
            return []

        cards = [format_product(p) for p in products[:limit] if isinstance(p, Mapping)]
        logger.info("Found %d products to display", len(cards))
        return cards
    except Exception:
        logger.exception("Failed to parse product search result")
        return []
