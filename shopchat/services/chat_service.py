"""Chat service wiring one streamed chat turn together."""

import logging
from typing import Any
from urllib.parse import urlsplit

from shopchat.core.config import settings
from shopchat.core.logging_config import conversation_id_var
from shopchat.integrations.shopify.mcp_client import MCPClient
from shopchat.integrations.shopify.storefront import fetch_customer_account_url
from shopchat.models.message import MessageRole
from shopchat.services.conversation_store import ConversationStore, decode_content
from shopchat.services.customer_auth_service import CustomerAuthService
from shopchat.services.llm_service import LLMService
from shopchat.services.stream_publisher import StreamPublisher
from shopchat.services.tool_gateway import ToolGateway
from shopchat.services.turn_engine import TurnEngine, TurnOutcome

logger = logging.getLogger(__name__)


def _normalize_origin(value: str) -> str | None:
    parts = urlsplit(value.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}".lower()


def trusted_shop_origin(origin: str | None) -> str | None:
    """Return the normalized origin if it is a configured shop, else None.

    Storefront credentials are only ever sent to hosts listed in
    ``shop_origins``; the request header alone is not trusted.
    """
    if not origin:
        return None
    normalized = _normalize_origin(origin)
    allowed = {_normalize_origin(o) for o in settings.shop_origins}
    if normalized is None or normalized not in allowed:
        logger.warning("Origin %s is not a configured shop, storefront tools disabled", origin)
        return None
    return normalized


class ChatService:
    """Service for streamed chat turns.

    The durable store is the only source of conversation state; nothing about
    a conversation is kept in memory between requests.
    """

    def __init__(self, store: ConversationStore, llm_service: LLMService | None = None) -> None:
        self.store = store
        self.llm_service = llm_service or LLMService()
        self.auth_service = CustomerAuthService(store)

    async def handle_chat_session(
        self,
        publisher: StreamPublisher,
        *,
        message: str,
        conversation_id: str,
        prompt_type: str | None = None,
        shop_domain: str | None = None,
    ) -> TurnOutcome:
        """Run a complete chat turn for one user message.

        This is the main entry point for chat. It:
        1. Sends the conversation id to the client
        2. Loads the storefront and customer tool catalogs
        3. Saves the user message and loads the full history
        4. Runs the turn engine, which streams everything else
        """
        conversation_id_var.set(conversation_id)
        await publisher.send({"type": "id", "conversation_id": conversation_id})

        gateway = await self._build_gateway(conversation_id, trusted_shop_origin(shop_domain))
        catalog = await gateway.load_catalog()

        history = await self._prepare_history(conversation_id, message)

        engine = TurnEngine(self.llm_service, gateway, self.store, conversation_id)
        outcome = await engine.run_turn(history, catalog, publisher.send, prompt_type)
        logger.info(
            "Turn finished: stop_reason=%s tool_rounds=%d products=%d auth_required=%s",
            outcome.stop_reason,
            outcome.tool_rounds,
            len(outcome.products),
            outcome.auth_required,
        )
        return outcome

    async def _build_gateway(self, conversation_id: str, shop_domain: str | None) -> ToolGateway:
        storefront_client = MCPClient.for_storefront(shop_domain) if shop_domain else None
        if storefront_client is None:
            logger.warning("No shop origin on request, storefront tools disabled")

        customer_endpoint = await self._resolve_customer_endpoint(conversation_id, shop_domain)
        customer_client = MCPClient.for_customer(customer_endpoint) if customer_endpoint else None

        return ToolGateway(
            conversation_id=conversation_id,
            storefront_client=storefront_client,
            customer_client=customer_client,
            auth_service=self.auth_service,
        )

    async def _resolve_customer_endpoint(
        self, conversation_id: str, shop_domain: str | None
    ) -> str | None:
        """Customer tool server URL, cached per conversation after the first lookup."""
        try:
            account_url = await self.store.get_customer_account_url(conversation_id)
            if not account_url:
                if not shop_domain:
                    return None
                account_url = await fetch_customer_account_url(shop_domain)
                if not account_url:
                    return None
                await self.store.store_customer_account_url(conversation_id, account_url)
        except Exception:
            logger.exception("Failed to resolve customer tool endpoint for %s", shop_domain)
            return None

        return f"{account_url.rstrip('/')}/customer/api/mcp"

    async def _prepare_history(self, conversation_id: str, message: str) -> list[dict[str, Any]]:
        """Persist the user message and return the full history ending with it."""
        saved = True
        try:
            await self.store.append_message(conversation_id, MessageRole.USER, message)
        except Exception:
            saved = False
            logger.exception("Failed to save user message for %s", conversation_id)

        try:
            stored = await self.store.load_history(conversation_id)
            history = [
                {"role": m.role.value, "content": decode_content(m.content)} for m in stored
            ]
        except Exception:
            logger.exception("Failed to load history for %s", conversation_id)
            history = []

        if not saved or not history:
            history.append({"role": MessageRole.USER.value, "content": message})
        return history
