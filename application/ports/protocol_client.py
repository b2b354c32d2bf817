"""
Protocol client port (contracts-first).

The warmup service depends only on this contract so HTTP and gRPC clients
can be driven the same way without protocol-specific branching.
"""
from __future__ import annotations

from typing import Protocol, Sequence

from domain.request.entity import GrpcRequest, Request
from domain.response.entity import Response


class ProtocolClient(Protocol):
    """Connect-once, dispatch, close, report.

    Implementations connect lazily on the first dispatch, exactly once, and
    never raise out of a dispatch: every failure is carried in the returned
    Response.
    """

    protocol: str

    async def close(self) -> None: ...


class HttpDispatcher(ProtocolClient, Protocol):
    async def send_request(self, request: Request, headers: Sequence[str] = ()) -> Response: ...


class GrpcDispatcher(ProtocolClient, Protocol):
    async def send_request(self, service_method: str, message: str, headers: Sequence[str] = ()) -> Response: ...

    async def send(self, request: GrpcRequest, headers: Sequence[str] = ()) -> Response: ...
