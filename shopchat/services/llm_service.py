"""Streaming LLM completions over LangChain's ChatOpenAI."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import openai
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI

from shopchat.core.config import settings
from shopchat.core.exceptions import LLMAuthenticationError, LLMRateLimitError, LLMTimeoutError
from shopchat.services.prompts import get_system_prompt

logger = logging.getLogger(__name__)

StopReason = Literal["end_turn", "tool_use", "max_tokens"]
TextHandler = Callable[[str], Awaitable[None]]

INCOMPLETE_TOOL_CALL = "Tool call did not complete."


@dataclass
class CompletionResult:
    """A fully assembled assistant message."""

    content: list[dict[str, Any]] = field(default_factory=list)
    stop_reason: StopReason = "end_turn"

    @property
    def tool_uses(self) -> list[dict[str, Any]]:
        return [block for block in self.content if block.get("type") == "tool_use"]


def _chunk_text(chunk: AIMessageChunk) -> str:
    if isinstance(chunk.content, str):
        return chunk.content
    return "".join(
        part.get("text", "")
        for part in chunk.content
        if isinstance(part, dict) and part.get("type") == "text"
    )


def _tool_result_text(content: Any) -> str:
    """Flatten tool result content into the string a ToolMessage carries."""
    if isinstance(content, str):
        return content
    if isinstance(content, list) and all(
        isinstance(item, dict) and item.get("type") == "text" for item in content
    ):
        return "\n".join(str(item.get("text", "")) for item in content)
    return json.dumps(content)


def to_langchain_messages(history: Sequence[dict[str, Any]]) -> list[BaseMessage]:
    """Convert stored conversation history into LangChain messages.

    User text becomes ``HumanMessage``, tool-result blocks become
    ``ToolMessage`` and assistant blocks become ``AIMessage`` with tool calls.
    A tool call left without a result (a write that never landed) gets a
    placeholder result so the provider accepts the history.
    """
    messages: list[BaseMessage] = []
    pending: list[str] = []

    def settle_pending() -> None:
        for tool_call_id in pending:
            messages.append(ToolMessage(content=INCOMPLETE_TOOL_CALL, tool_call_id=tool_call_id))
        pending.clear()

    for entry in history:
        role = entry.get("role")
        content = entry.get("content")

        if role == "assistant":
            settle_pending()
            if isinstance(content, str):
                messages.append(AIMessage(content=content))
                continue
            text = "".join(b.get("text", "") for b in content if b.get("type") == "text")
            tool_calls = [
                {"id": b["id"], "name": b["name"], "args": b.get("input") or {}, "type": "tool_call"}
                for b in content
                if b.get("type") == "tool_use"
            ]
            messages.append(AIMessage(content=text, tool_calls=tool_calls))
            pending.extend(tc["id"] for tc in tool_calls)
            continue

        if isinstance(content, str):
            settle_pending()
            messages.append(HumanMessage(content=content))
            continue

        for block in content or []:
            if block.get("type") == "tool_result":
                tool_call_id = block.get("tool_use_id", "")
                if tool_call_id in pending:
                    pending.remove(tool_call_id)
                messages.append(
                    ToolMessage(
                        content=_tool_result_text(block.get("content")),
                        tool_call_id=tool_call_id,
                    )
                )
            elif block.get("type") == "text":
                settle_pending()
                messages.append(HumanMessage(content=block.get("text", "")))

    settle_pending()
    return messages


class LLMService:
    """Wraps ChatOpenAI streaming with tool binding and error classification."""

    def _get_llm(self) -> ChatOpenAI:
        return ChatOpenAI(
            model=settings.llm_model,
            api_key=settings.openai_api_key,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    async def stream_completion(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]],
        prompt_type: str | None,
        on_text: TextHandler,
        tool_choice: str | None = None,
    ) -> CompletionResult:
        """Stream one completion, forwarding text fragments as they arrive.

        Args:
            messages: Conversation history (``role`` / ``content`` dicts).
            tools: Function tool definitions for ``bind_tools``.
            prompt_type: System prompt key; unknown keys use the default.
            on_text: Awaited for every non-empty text fragment.
            tool_choice: Optional ``tool_choice`` passed to ``bind_tools``.

        Returns:
            The assembled assistant message and its stop reason.

        Raises:
            LLMAuthenticationError: The API rejected the credential.
            LLMRateLimitError: The API is rate limiting or overloaded.
            LLMTimeoutError: The completion exceeded ``llm_timeout_seconds``.
        """
        llm = self._get_llm()
        if tools:
            runnable: Any = (
                llm.bind_tools(list(tools), tool_choice=tool_choice)
                if tool_choice
                else llm.bind_tools(list(tools))
            )
        else:
            runnable = llm

        lc_messages: list[BaseMessage] = [
            SystemMessage(content=get_system_prompt(prompt_type)),
            *to_langchain_messages(messages),
        ]

        aggregate: AIMessageChunk | None = None
        try:
            async with asyncio.timeout(settings.llm_timeout_seconds):
                async for chunk in runnable.astream(lc_messages):
                    text = _chunk_text(chunk)
                    if text:
                        await on_text(text)
                    aggregate = chunk if aggregate is None else aggregate + chunk
        except (TimeoutError, openai.APITimeoutError) as e:
            raise LLMTimeoutError(
                f"Completion timed out after {settings.llm_timeout_seconds}s"
            ) from e
        except openai.AuthenticationError as e:
            raise LLMAuthenticationError(str(e)) from e
        except openai.RateLimitError as e:
            raise LLMRateLimitError(str(e)) from e
        except openai.APIStatusError as e:
            if e.status_code == 529 or "overloaded" in str(e).lower():
                raise LLMRateLimitError(str(e)) from e
            raise

        return self._assemble(aggregate)

    @staticmethod
    def _assemble(message: AIMessageChunk | None) -> CompletionResult:
        if message is None:
            return CompletionResult()

        content: list[dict[str, Any]] = []
        text = _chunk_text(message)
        if text:
            content.append({"type": "text", "text": text})
        for tool_call in message.tool_calls:
            content.append({
                "type": "tool_use",
                "id": tool_call.get("id") or "",
                "name": tool_call["name"],
                "input": tool_call.get("args") or {},
            })

        finish_reason = (message.response_metadata or {}).get("finish_reason")
        stop_reason: StopReason
        if message.tool_calls:
            stop_reason = "tool_use"
        elif finish_reason == "length":
            stop_reason = "max_tokens"
        else:
            stop_reason = "end_turn"

        return CompletionResult(content=content, stop_reason=stop_reason)
