"""Shopify customer account OAuth helpers (PKCE and token exchange)."""

import base64
import hashlib
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx

from shopchat.core.config import settings

CODE_CHALLENGE_METHOD = "S256"


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier from 32 random bytes."""
    return _base64url(secrets.token_bytes(32))


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for a verifier."""
    return _base64url(hashlib.sha256(verifier.encode()).digest())


def _authentication_base() -> str:
    return f"https://shopify.com/authentication/{settings.shopify_shop_id}/oauth"


def build_authorization_url(state: str, code_challenge: str) -> str:
    """Build the customer account authorization URL.

    Args:
        state: OAuth state; carries the conversation id back to the callback.
        code_challenge: S256 challenge for the stored verifier.

    Returns:
        The full authorization URL to hand to the customer.
    """
    params = urlencode({
        "client_id": settings.shopify_client_id,
        "scope": settings.customer_account_scopes,
        "redirect_uri": settings.auth_callback_url,
        "response_type": "code",
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
    })
    return f"{_authentication_base()}/authorize?{params}"


async def exchange_code_for_token(code: str, code_verifier: str | None) -> dict[str, Any]:
    """Exchange an authorization code for a customer access token.

    Args:
        code: The authorization code from the callback.
        code_verifier: The PKCE verifier stored for this state, if any.

    Returns:
        The token response (``access_token``, ``expires_in``, ...).

    Raises:
        httpx.HTTPStatusError: If the token exchange fails.
    """
    form = {
        "grant_type": "authorization_code",
        "client_id": settings.shopify_client_id,
        "code": code,
        "redirect_uri": settings.auth_callback_url,
    }
    if code_verifier:
        form["code_verifier"] = code_verifier

    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.post(f"{_authentication_base()}/token", data=form)
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return data
