"""Shopify Storefront API lookups using httpx."""

import logging

import httpx

from shopchat.core.config import settings

logger = logging.getLogger(__name__)

CUSTOMER_ACCOUNT_URL_QUERY = """
query shop {
  shop {
    customerAccountUrl
  }
}
"""


async def fetch_customer_account_url(shop_domain: str) -> str | None:
    """Ask the Storefront API for the shop's customer account URL.

    Args:
        shop_domain: Shop origin as sent by the widget (e.g. https://shop.example.com).

    Returns:
        The customer account base URL, or None if the shop has none.

    Raises:
        httpx.HTTPStatusError: If the Storefront API rejects the request.
    """
    url = f"{shop_domain.rstrip('/')}/api/{settings.shopify_api_version}/graphql.json"
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Storefront-Access-Token": settings.shopify_storefront_access_token,
    }
    async with httpx.AsyncClient(headers=headers, timeout=15.0) as client:
        response = await client.post(url, json={"query": CUSTOMER_ACCOUNT_URL_QUERY})
        response.raise_for_status()
        body = response.json()

    account_url: str | None = ((body.get("data") or {}).get("shop") or {}).get("customerAccountUrl")
    if not account_url:
        logger.warning("Shop %s has no customer account URL", shop_domain)
    return account_url
