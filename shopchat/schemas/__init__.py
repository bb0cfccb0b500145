"""Pydantic schemas for request/response validation."""

from shopchat.schemas.common import ErrorResponse, HealthResponse

__all__ = [
    "HealthResponse",
    "ErrorResponse",
]
