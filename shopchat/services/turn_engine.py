"""Turn engine: the LLM / tool-call loop for a single user message."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from shopchat.core.config import settings
from shopchat.core.exceptions import ToolLoopLimitExceeded
from shopchat.models.message import MessageRole
from shopchat.schemas.chat import ProductCard
from shopchat.schemas.tools import ToolResult
from shopchat.services.conversation_store import ConversationStore, encode_content
from shopchat.services.llm_service import CompletionResult, LLMService
from shopchat.services.product_extractor import extract_products
from shopchat.services.tool_gateway import ToolCatalog

logger = logging.getLogger(__name__)

EventSink = Callable[[dict[str, Any]], Awaitable[None]]

TOOL_LOOP_ABORTED = "Tool call skipped: too many tool rounds in one turn."


class ToolCaller(Protocol):
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult: ...


@dataclass
class TurnOutcome:
    """How a turn ended."""

    stop_reason: str
    products: list[ProductCard] = field(default_factory=list)
    auth_required: bool = False
    tool_rounds: int = 0


def _ends_with_user_input(history: Sequence[dict[str, Any]]) -> bool:
    last = history[-1]
    if last.get("role") != MessageRole.USER.value:
        return False
    content = last.get("content")
    if isinstance(content, str):
        return bool(content)
    return any(
        isinstance(block, dict) and block.get("type") in ("text", "tool_result")
        for block in content or []
    )


class TurnEngine:
    """Drives completions and tool calls until the model ends its turn.

    For each completion, text fragments are emitted as ``chunk`` events and
    the assembled message is appended to history, then ``message_complete``
    is emitted. Tool uses are executed one at a time in the order requested;
    each result is appended as a ``tool_result`` block and announced with
    ``new_message``.

    The turn ends on the first completion with no tool use, followed by
    ``end_turn`` and, if a catalog search produced products, ``product_results``.
    When a customer tool needs authorization, the engine makes one more
    completion with tool use disabled so the model can relay the link, then
    ends the turn.

    Persistence is best effort: a failed write is logged and the in-memory
    history carries on.
    """

    def __init__(
        self,
        llm_service: LLMService,
        gateway: ToolCaller,
        store: ConversationStore,
        conversation_id: str,
        max_tool_rounds: int | None = None,
        product_search_tool_name: str | None = None,
        max_products: int | None = None,
    ) -> None:
        self.llm_service = llm_service
        self.gateway = gateway
        self.store = store
        self.conversation_id = conversation_id
        self.max_tool_rounds = max_tool_rounds or settings.max_tool_rounds
        self.product_search_tool_name = (
            product_search_tool_name or settings.product_search_tool_name
        )
        self.max_products = max_products or settings.max_products_to_display

    async def run_turn(
        self,
        history: Sequence[dict[str, Any]],
        catalog: ToolCatalog,
        emit: EventSink,
        prompt_type: str | None = None,
    ) -> TurnOutcome:
        """Run one turn over ``history``, which must end with user input.

        Raises:
            ValueError: If the history is empty or does not end with user input.
            ToolLoopLimitExceeded: If the model keeps requesting tools past
                ``max_tool_rounds``.
        """
        if not history or not _ends_with_user_input(history):
            raise ValueError("History must end with a user message or tool result")

        messages = list(history)
        tools = catalog.to_llm_tools()
        products: list[ProductCard] = []
        rounds = 0
        auth_required = False

        while True:
            completion = await self._complete(messages, tools, prompt_type, emit)
            tool_uses = completion.tool_uses
            if not tool_uses:
                break

            if rounds >= self.max_tool_rounds:
                await self._abandon_tool_uses(messages, tool_uses)
                raise ToolLoopLimitExceeded(self.max_tool_rounds)
            rounds += 1

            for tool_use in tool_uses:
                name = tool_use["name"]
                result = await self.gateway.call_tool(name, tool_use.get("input") or {})

                if result.error is not None:
                    logger.info("Tool %s returned %s", name, result.error.type.value)
                    await self._append_tool_result(messages, tool_use["id"], result.error.data)
                    if result.is_auth_required:
                        auth_required = True
                        await emit({"type": "auth_required"})
                else:
                    if name == self.product_search_tool_name:
                        extracted = extract_products(result.model_dump(), limit=self.max_products)
                        if extracted:
                            products = extracted
                    await self._append_tool_result(messages, tool_use["id"], result.content)

                await emit({"type": "new_message"})

            if auth_required:
                completion = await self._complete(
                    messages, tools, prompt_type, emit, tool_choice="none"
                )
                break

        await emit({"type": "end_turn"})
        if products:
            await emit({
                "type": "product_results",
                "products": [p.model_dump() for p in products],
            })

        return TurnOutcome(
            stop_reason=completion.stop_reason,
            products=products,
            auth_required=auth_required,
            tool_rounds=rounds,
        )

    async def _complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        prompt_type: str | None,
        emit: EventSink,
        tool_choice: str | None = None,
    ) -> CompletionResult:
        async def on_text(text: str) -> None:
            await emit({"type": "chunk", "chunk": text})

        completion = await self.llm_service.stream_completion(
            messages, tools, prompt_type, on_text, tool_choice=tool_choice
        )

        if tool_choice == "none" and completion.tool_uses:
            logger.warning("Dropping tool use from a completion with tools disabled")
            completion = CompletionResult(
                content=[b for b in completion.content if b.get("type") != "tool_use"],
                stop_reason="end_turn",
            )

        if completion.content:
            messages.append({"role": MessageRole.ASSISTANT.value, "content": completion.content})
            await self._persist(MessageRole.ASSISTANT, completion.content)

        await emit({"type": "message_complete"})
        return completion

    async def _append_tool_result(
        self, messages: list[dict[str, Any]], tool_use_id: str, content: Any
    ) -> None:
        blocks = [{"type": "tool_result", "tool_use_id": tool_use_id, "content": content}]
        messages.append({"role": MessageRole.USER.value, "content": blocks})
        await self._persist(MessageRole.USER, blocks)

    async def _abandon_tool_uses(
        self, messages: list[dict[str, Any]], tool_uses: list[dict[str, Any]]
    ) -> None:
        """Answer unexecuted tool uses so the stored history stays well formed."""
        logger.error(
            "Tool loop limit of %d rounds reached for %s",
            self.max_tool_rounds,
            self.conversation_id,
        )
        for tool_use in tool_uses:
            await self._append_tool_result(messages, tool_use["id"], TOOL_LOOP_ABORTED)

    async def _persist(self, role: MessageRole, blocks: list[dict[str, Any]]) -> None:
        try:
            await self.store.append_message(self.conversation_id, role, encode_content(blocks))
        except Exception:
            logger.exception("Failed to save %s message for %s", role.value, self.conversation_id)
