"""Chat API endpoints for the widget."""

import logging
import uuid

import redis.exceptions
from fastapi import APIRouter, Header, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from shopchat.core.deps import Guard, Store
from shopchat.core.rate_limit import CHAT_RATE_LIMIT, limiter
from shopchat.schemas.chat import ChatRequest, HistoryResponse, MessageResponse
from shopchat.services.chat_service import ChatService
from shopchat.services.stream_publisher import SSE_HEADERS, StreamPublisher, create_sse_stream

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    summary="Send a chat message",
    response_class=StreamingResponse,
    response_model=None,
    responses={
        200: {"content": {"text/event-stream": {}}},
        400: {"description": "Message is required"},
        409: {"description": "A turn is already in progress for this conversation"},
    },
)
@limiter.limit(CHAT_RATE_LIMIT)
async def send_message(
    request: Request,  # noqa: ARG001 - required by slowapi
    payload: ChatRequest,
    store: Store,
    guard: Guard,
    origin: str | None = Header(None),
) -> StreamingResponse | JSONResponse:
    """Send a message and stream the assistant's turn as server-sent events.

    The shop is identified by the widget's ``Origin``. Events, in order:
    ``id``, then ``chunk`` / ``message_complete`` / ``new_message`` /
    ``auth_required`` while the turn runs, then ``end_turn`` and optionally
    ``product_results``; or a single ``error`` / ``rate_limit_exceeded``.
    """
    if not payload.message:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Message is required"},
        )

    message = payload.message
    conversation_id = payload.conversation_id or uuid.uuid4().hex

    lease: str | None = None
    try:
        lease = await guard.acquire(conversation_id)
        if lease is None:
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={"error": "A response is already in progress for this conversation"},
            )
    except redis.exceptions.RedisError:
        logger.exception("Turn guard unavailable, continuing without it")

    service = ChatService(store)

    async def handler(publisher: StreamPublisher) -> None:
        await service.handle_chat_session(
            publisher,
            message=message,
            conversation_id=conversation_id,
            prompt_type=payload.prompt_type,
            shop_domain=origin,
        )

    async def release() -> None:
        if lease is not None:
            await guard.release(conversation_id, lease)

    return StreamingResponse(
        create_sse_stream(handler, on_close=release),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Get conversation history",
)
async def get_history(
    store: Store,
    conversation_id: str = Query(..., max_length=64, description="Conversation ID"),
) -> HistoryResponse:
    """Return every stored message in insertion order.

    Tool results are included verbatim (JSON-encoded content with role
    ``user``); the widget filters them out.
    """
    messages = await store.load_history(conversation_id)
    return HistoryResponse(messages=[MessageResponse.model_validate(m) for m in messages])
