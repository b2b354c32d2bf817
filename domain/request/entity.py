"""
Warmup request entities - immutable values built from descriptor strings.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from domain.common.exceptions import InvalidDescriptorException
from shared.codes import WarmupCode


class HttpMethod(str, Enum):
    """Supported HTTP methods"""
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"

    @classmethod
    def from_token(cls, token: str, descriptor: str) -> "HttpMethod":
        """Case-insensitive lookup; unknown verbs are rejected."""
        name = token.upper()
        try:
            return cls(name)
        except ValueError:
            raise InvalidDescriptorException(
                descriptor,
                f"method {name} is not supported",
                code=WarmupCode.UNSUPPORTED_METHOD,
            ) from None


@dataclass(frozen=True)
class Request:
    """
    A single HTTP warmup request.

    ``body`` is None only when the descriptor had no body segment; an empty
    body segment yields ``""``.
    """

    method: HttpMethod
    path: str
    body: Optional[str] = None

    @property
    def has_body(self) -> bool:
        return self.body is not None


@dataclass(frozen=True)
class GrpcRequest:
    """A single gRPC warmup call: ``package.Service/Method`` plus a JSON message."""

    service_method: str
    message: str = ""
