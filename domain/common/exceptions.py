"""Warmup exceptions shared by the domain, application and infrastructure layers.

Parse-time errors are raised to the caller; connection and invocation errors
are carried inside a ``Response`` rather than raised out of the clients.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import WarmupCode


class WarmupException(Exception):
    """Base warmup exception."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "WarmupError",
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        super().__init__(self.message)


class InvalidDescriptorException(WarmupException):
    def __init__(self, descriptor: str, reason: str, code: int = WarmupCode.INVALID_DESCRIPTOR):
        super().__init__(
            code=code,
            message=f"invalid request descriptor: {descriptor}, {reason}",
            error_type="InvalidDescriptor",
            details={"descriptor": descriptor},
        )
        self.descriptor = descriptor


class ConnectionFailedException(WarmupException):
    """Dial or reflection failure. Sticky for the lifetime of a client."""

    def __init__(self, message: str, *, host: str, protocol: str, code: int = WarmupCode.CONNECTION_ERROR):
        super().__init__(
            code=code,
            message=message,
            error_type="ConnectionError",
            details={"host": host, "protocol": protocol},
        )
        self.host = host
        self.protocol = protocol


class InvocationException(WarmupException):
    """A single remote call failed after the connection was established."""

    def __init__(
        self,
        message: str,
        *,
        protocol: str,
        status_code: Optional[str | int] = None,
        code: int = WarmupCode.INVOCATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type="InvocationError",
            details={"protocol": protocol, "status_code": status_code},
        )
        self.protocol = protocol
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} | Status: {self.status_code}"
