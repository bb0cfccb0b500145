"""Tool catalog merging and dispatch to the storefront and customer tool servers."""

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from shopchat.core.exceptions import ToolBackendError, ToolUnauthorizedError
from shopchat.integrations.shopify.mcp_client import MCPClient
from shopchat.schemas.tools import ToolDescriptor, ToolResult
from shopchat.services.customer_auth_service import CustomerAuthService

logger = logging.getLogger(__name__)

AUTH_REQUIRED_MESSAGE = (
    "You need to authorize the app to access your customer data. "
    "[Click here to authorize]({url})"
)


class ToolBackend(str, enum.Enum):
    """Tool server that advertised a tool."""

    CUSTOMER = "customer"
    STOREFRONT = "storefront"


@dataclass
class ToolCatalog:
    """Merged tool descriptors with an explicit name to backend map."""

    tools: list[ToolDescriptor] = field(default_factory=list)
    backends: dict[str, ToolBackend] = field(default_factory=dict)

    @classmethod
    def merge(
        cls,
        storefront_tools: Sequence[ToolDescriptor],
        customer_tools: Sequence[ToolDescriptor],
    ) -> "ToolCatalog":
        """Merge both namespaces. A name advertised by both resolves to the customer server."""
        by_name: dict[str, ToolDescriptor] = {}
        backends: dict[str, ToolBackend] = {}

        for tool in storefront_tools:
            by_name[tool.name] = tool
            backends[tool.name] = ToolBackend.STOREFRONT

        for tool in customer_tools:
            if backends.get(tool.name) == ToolBackend.STOREFRONT:
                logger.warning("Tool %s advertised by both servers, using customer", tool.name)
            by_name[tool.name] = tool
            backends[tool.name] = ToolBackend.CUSTOMER

        return cls(tools=list(by_name.values()), backends=backends)

    def backend_for(self, name: str) -> ToolBackend | None:
        return self.backends.get(name)

    def to_llm_tools(self) -> list[dict[str, Any]]:
        return [tool.to_llm_tool() for tool in self.tools]


class ToolGateway:
    """Routes tool calls to the server that advertised them.

    Customer calls carry the conversation's bearer token, looked up on every
    call. A 401 from the customer server produces an ``auth_required`` result
    holding a fresh authorization link; the call is not retried.
    """

    def __init__(
        self,
        conversation_id: str,
        storefront_client: MCPClient | None,
        customer_client: MCPClient | None,
        auth_service: CustomerAuthService,
    ) -> None:
        self.conversation_id = conversation_id
        self.storefront_client = storefront_client
        self.customer_client = customer_client
        self.auth_service = auth_service
        self.catalog = ToolCatalog()

    async def load_catalog(self) -> ToolCatalog:
        """List tools from both servers; a failing server contributes no tools."""
        storefront_tools: list[ToolDescriptor] = []
        customer_tools: list[ToolDescriptor] = []

        if self.storefront_client is not None:
            try:
                storefront_tools = await self.storefront_client.list_tools()
            except ToolBackendError as e:
                logger.warning("Failed to list storefront tools, continuing without them: %s", e)

        if self.customer_client is not None:
            try:
                customer_tools = await self.customer_client.list_tools(
                    bearer_token=await self._bearer_token()
                )
            except ToolBackendError as e:
                logger.warning("Failed to list customer tools, continuing without them: %s", e)

        self.catalog = ToolCatalog.merge(storefront_tools, customer_tools)
        logger.info(
            "Tool catalog loaded: %d storefront, %d customer",
            len(storefront_tools),
            len(customer_tools),
        )
        return self.catalog

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Invoke a tool by name. Never raises for backend failures."""
        backend = self.catalog.backend_for(name)
        if backend is None:
            logger.warning("Tool not found: %s", name)
            return ToolResult.internal_error(f"Tool not found: {name}")

        if backend == ToolBackend.CUSTOMER:
            return await self._call_customer(name, arguments)
        return await self._call_storefront(name, arguments)

    async def _call_storefront(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        if self.storefront_client is None:
            return ToolResult.internal_error(f"Storefront tools are unavailable for {name}")

        try:
            raw = await self.storefront_client.call_tool(name, arguments)
        except ToolBackendError as e:
            logger.error("Storefront tool %s failed: %s", name, e)
            return ToolResult.internal_error(f"Error calling tool {name}: {e}")
        return ToolResult.success(raw)

    async def _call_customer(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        if self.customer_client is None:
            return ToolResult.internal_error(f"Customer tools are unavailable for {name}")

        try:
            raw = await self.customer_client.call_tool(
                name, arguments, bearer_token=await self._bearer_token()
            )
        except ToolUnauthorizedError:
            logger.info("Customer tool %s requires authorization", name)
            auth = await self.auth_service.generate_authorization_url(self.conversation_id)
            return ToolResult.auth_required(AUTH_REQUIRED_MESSAGE.format(url=auth.url))
        except ToolBackendError as e:
            logger.error("Customer tool %s failed: %s", name, e)
            return ToolResult.internal_error(f"Error calling tool {name}: {e}")
        return ToolResult.success(raw)

    async def _bearer_token(self) -> str | None:
        try:
            token = await self.auth_service.get_access_token(self.conversation_id)
        except Exception:
            logger.exception("Failed to load customer token for %s", self.conversation_id)
            return None
        return token.access_token if token else None
