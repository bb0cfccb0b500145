"""Exception types raised across the chat gateway."""


class GatewayError(Exception):
    """Base class for gateway errors."""


class LLMAuthenticationError(GatewayError):
    """The LLM API rejected our credentials."""

    status_code = 401


class LLMRateLimitError(GatewayError):
    """The LLM API is rate limiting us or is overloaded."""

    status_code = 429


class LLMTimeoutError(GatewayError):
    """A completion did not finish within the configured timeout."""


class ToolLoopLimitExceeded(GatewayError):
    """The model kept requesting tools past the per-turn round limit."""

    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(f"Tool loop limit exceeded ({max_rounds} rounds)")


class ToolBackendError(GatewayError):
    """A tool server call failed (transport error, non-2xx, JSON-RPC error)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ToolUnauthorizedError(ToolBackendError):
    """A tool server answered 401 Unauthorized."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, status_code=401)


class TokenExchangeError(GatewayError):
    """Exchanging an authorization code for a customer token failed."""
