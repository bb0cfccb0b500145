"""Customer account authorization endpoints (token status polling and OAuth callback)."""

import html
import logging

from fastapi import APIRouter, Query, status
from fastapi.responses import HTMLResponse, JSONResponse

from shopchat.core.deps import Store
from shopchat.core.exceptions import TokenExchangeError
from shopchat.schemas.auth import TokenStatusResponse
from shopchat.services.customer_auth_service import CustomerAuthService

logger = logging.getLogger(__name__)

router = APIRouter()

CALLBACK_PAGE = """<!DOCTYPE html>
<html>
  <head><title>{title}</title></head>
  <body>
    <p>{body}</p>
    <script>setTimeout(function () {{ window.close(); }}, 1500);</script>
  </body>
</html>
"""


def _callback_page(title: str, body: str, status_code: int = status.HTTP_200_OK) -> HTMLResponse:
    return HTMLResponse(
        CALLBACK_PAGE.format(title=html.escape(title), body=html.escape(body)),
        status_code=status_code,
    )


@router.get(
    "/token-status",
    response_model=TokenStatusResponse,
    summary="Check whether a conversation has a customer token",
)
async def token_status(
    store: Store,
    conversation_id: str | None = Query(None, max_length=64),
) -> TokenStatusResponse | JSONResponse:
    """Polled by the widget after it shows an authorization link."""
    if not conversation_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing conversation_id"},
        )
    return await CustomerAuthService(store).token_status(conversation_id)


@router.get(
    "/callback",
    response_class=HTMLResponse,
    summary="Customer account OAuth callback",
)
async def auth_callback(
    store: Store,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
) -> HTMLResponse:
    """Exchange the authorization code and store the token for the conversation in ``state``."""
    if error:
        logger.warning("Customer authorization denied: %s", error)
        return _callback_page(
            "Authorization failed",
            "Authorization was not completed. You can close this window.",
            status.HTTP_400_BAD_REQUEST,
        )

    if not code or not state:
        return _callback_page(
            "Authorization failed",
            "Missing authorization code or state.",
            status.HTTP_400_BAD_REQUEST,
        )

    try:
        await CustomerAuthService(store).complete_authorization(code, state)
    except TokenExchangeError:
        logger.exception("Customer token exchange failed for %s", state)
        return _callback_page(
            "Authorization failed",
            "We could not complete authorization. Please try again from the chat.",
            status.HTTP_502_BAD_GATEWAY,
        )

    return _callback_page(
        "Authorization successful",
        "Authorization successful! You can close this window and continue chatting.",
    )
