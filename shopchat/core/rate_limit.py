"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from shopchat.core.config import settings


def _client_key(request: Request) -> str:
    """Key requests by the shopper's IP.

    ``X-Forwarded-For`` is only honoured when ``trust_forwarded_for`` is set,
    i.e. when the service runs behind a proxy that overwrites the header.
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return get_remote_address(request)


limiter = Limiter(key_func=_client_key)

CHAT_RATE_LIMIT = "10/minute"
