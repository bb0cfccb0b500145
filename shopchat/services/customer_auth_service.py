"""Customer account authorization: PKCE URLs, code exchange and token status."""

import logging
from datetime import UTC, datetime, timedelta

import httpx

from shopchat.core.exceptions import TokenExchangeError
from shopchat.integrations.shopify import customer_auth
from shopchat.schemas.auth import AccessToken, AuthorizationRequest, TokenStatusResponse
from shopchat.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class CustomerAuthService:
    """OAuth collaborator for the customer tool server.

    The OAuth ``state`` parameter is the conversation id, so the callback can
    attach the issued token to the right conversation.
    """

    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    async def generate_authorization_url(self, conversation_id: str) -> AuthorizationRequest:
        """Create a PKCE verifier, store it and build the authorization URL."""
        verifier = customer_auth.generate_code_verifier()
        challenge = customer_auth.generate_code_challenge(verifier)

        try:
            await self.store.store_code_verifier(conversation_id, verifier)
        except Exception:
            # The link is still useful; the callback exchanges without a verifier.
            logger.exception("Failed to store code verifier for %s", conversation_id)

        url = customer_auth.build_authorization_url(state=conversation_id, code_challenge=challenge)
        return AuthorizationRequest(url=url, conversation_id=conversation_id)

    async def get_access_token(self, conversation_id: str) -> AccessToken | None:
        return await self.store.get_token(conversation_id)

    async def complete_authorization(self, code: str, state: str) -> AccessToken:
        """Exchange the callback code and store the customer token.

        Raises:
            TokenExchangeError: If the token endpoint rejects the exchange.
        """
        verifier = await self.store.pop_code_verifier(state)
        if verifier is None:
            logger.warning("No code verifier found for state %s", state)

        try:
            token_data = await customer_auth.exchange_code_for_token(code, verifier)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token exchange failed: {e}") from e

        access_token = token_data.get("access_token")
        if not access_token:
            raise TokenExchangeError("Token response did not include an access token")

        expires_in = int(token_data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
        expires_at = datetime.now(UTC) + timedelta(seconds=expires_in)
        await self.store.upsert_token(state, access_token, expires_at)
        logger.info("Stored customer token for %s", state)

        return AccessToken(conversation_id=state, access_token=access_token, expires_at=expires_at)

    async def token_status(self, conversation_id: str) -> TokenStatusResponse:
        token = await self.store.get_token(conversation_id)
        if token is None:
            return TokenStatusResponse(status="unauthorized")
        return TokenStatusResponse(status="authorized", expires_at=token.expires_at)
