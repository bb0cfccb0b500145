"""JSON-RPC client for Shopify tool servers (storefront and customer) using httpx."""

import base64
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from shopchat.core.config import settings
from shopchat.core.exceptions import ToolBackendError, ToolUnauthorizedError
from shopchat.schemas.tools import ToolDescriptor

logger = logging.getLogger(__name__)


def basic_auth_header(username: str, password: str) -> str:
    """Build a Basic ``Authorization`` header value."""
    encoded = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {encoded}"


class MCPClient:
    """Async client for a tool server speaking JSON-RPC 2.0 over a single POST endpoint.

    Supports ``tools/list`` and ``tools/call``. A 401 response raises
    ``ToolUnauthorizedError``; any other failure raises ``ToolBackendError``.
    """

    def __init__(
        self,
        endpoint: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.timeout = timeout if timeout is not None else settings.tool_timeout_seconds

    @classmethod
    def for_storefront(cls, shop_domain: str) -> "MCPClient":
        """Storefront tool server, authenticated with the static infrastructure credential."""
        headers: dict[str, str] = {}
        if settings.storefront_mcp_username:
            headers["Authorization"] = basic_auth_header(
                settings.storefront_mcp_username, settings.storefront_mcp_password
            )
        return cls(f"{shop_domain.rstrip('/')}/api/mcp", headers=headers)

    @classmethod
    def for_customer(cls, endpoint: str) -> "MCPClient":
        """Customer tool server; the bearer token is supplied per call."""
        return cls(endpoint)

    async def list_tools(self, bearer_token: str | None = None) -> list[ToolDescriptor]:
        """List the tools advertised by the server."""
        result = await self._rpc("tools/list", {}, bearer_token)
        tools_data = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools_data, list):
            logger.warning("Tool server %s returned no tool list", self.endpoint)
            tools_data = []

        tools: list[ToolDescriptor] = []
        for raw in tools_data:
            if not isinstance(raw, dict) or not raw.get("name"):
                logger.warning("Skipping malformed tool from %s: %r", self.endpoint, raw)
                continue
            try:
                tools.append(ToolDescriptor.from_wire(raw))
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid tool %s from %s: %s", raw["name"], self.endpoint, e
                )
        logger.info("Tool server %s advertised %d tools", self.endpoint, len(tools))
        return tools

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        bearer_token: str | None = None,
    ) -> Any:
        """Invoke a tool and return the unwrapped JSON-RPC result."""
        return await self._rpc("tools/call", {"name": name, "arguments": arguments}, bearer_token)

    async def _rpc(self, method: str, params: dict[str, Any], bearer_token: str | None) -> Any:
        payload = {"jsonrpc": "2.0", "method": method, "id": 1, "params": params}
        headers = dict(self.headers)
        if bearer_token:
            headers["Authorization"] = f"Bearer {bearer_token}"

        try:
            async with httpx.AsyncClient(headers=headers, timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise ToolBackendError(f"{method} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ToolBackendError(f"{method} failed: {e}") from e

        if response.status_code == 401:
            raise ToolUnauthorizedError(f"{method} unauthorized")
        if not response.is_success:
            raise ToolBackendError(
                f"{method} failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ToolBackendError(f"{method} returned a non-JSON body") from e

        if isinstance(body, dict):
            if body.get("error"):
                error = body["error"]
                message = error.get("message", error) if isinstance(error, dict) else error
                raise ToolBackendError(f"{method} failed: {message}")
            return body["result"] if "result" in body else body
        return body
