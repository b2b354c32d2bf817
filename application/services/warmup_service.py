"""Application service that drives a warmup run.

Fans configured requests out over a fixed number of worker tasks until the
time or request budget is spent, then reports an aggregated summary. Each
dispatch re-parses its descriptor so placeholders resolve to fresh values.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

from application.ports.protocol_client import GrpcDispatcher, HttpDispatcher
from application.utils.descriptors import parse_grpc_request, parse_http_request
from core.logging_config import get_logger
from domain.response.entity import Response


logger = get_logger(__name__)

Call = Callable[[], Awaitable[Response]]


@dataclass
class ProtocolStats:
    total: int = 0
    failed: int = 0
    total_ms: float = 0.0

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    @property
    def mean_ms(self) -> float:
        return self.total_ms / self.total if self.total else 0.0


@dataclass
class WarmupSummary:
    by_protocol: dict[str, ProtocolStats] = field(default_factory=dict)
    elapsed_s: float = 0.0

    def record(self, response: Response) -> None:
        stats = self.by_protocol.setdefault(response.protocol, ProtocolStats())
        stats.total += 1
        stats.total_ms += response.elapsed_ms
        if not response.is_success:
            stats.failed += 1

    @property
    def total(self) -> int:
        return sum(s.total for s in self.by_protocol.values())

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.by_protocol.values())

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "elapsed_s": round(self.elapsed_s, 3),
            "protocols": {
                name: {
                    "total": s.total,
                    "failed": s.failed,
                    "mean_ms": round(s.mean_ms, 2),
                }
                for name, s in self.by_protocol.items()
            },
        }


class WarmupService:
    def __init__(
        self,
        *,
        http_client: Optional[HttpDispatcher] = None,
        grpc_client: Optional[GrpcDispatcher] = None,
        http_requests: Sequence[str] = (),
        grpc_requests: Sequence[str] = (),
        http_headers: Sequence[str] = (),
        grpc_headers: Sequence[str] = (),
        concurrency: int = 2,
        max_duration_seconds: float = 60,
        max_requests: int = 0,
        request_delay_ms: int = 0,
    ) -> None:
        """
        Raises:
            InvalidDescriptorException: a configured descriptor is malformed
            ValueError: requests are configured for a protocol without a client
        """
        if http_requests and http_client is None:
            raise ValueError("HTTP requests configured but no HTTP client given")
        if grpc_requests and grpc_client is None:
            raise ValueError("gRPC requests configured but no gRPC client given")

        # Reject bad descriptors before any traffic is sent
        for descriptor in http_requests:
            parse_http_request(descriptor)
        for descriptor in grpc_requests:
            parse_grpc_request(descriptor)

        self._http = http_client
        self._grpc = grpc_client
        self._http_headers = list(http_headers)
        self._grpc_headers = list(grpc_headers)
        self._calls: list[Call] = [
            *(self._http_call(d) for d in http_requests),
            *(self._grpc_call(d) for d in grpc_requests),
        ]
        self.concurrency = max(1, concurrency)
        self.max_duration_seconds = max_duration_seconds
        self.max_requests = max_requests
        self.request_delay_ms = request_delay_ms
        self._dispatched = 0
        self._summary = WarmupSummary()

    def _http_call(self, descriptor: str) -> Call:
        async def _call() -> Response:
            return await self._http.send_request(parse_http_request(descriptor), self._http_headers)
        return _call

    def _grpc_call(self, descriptor: str) -> Call:
        async def _call() -> Response:
            return await self._grpc.send(parse_grpc_request(descriptor), self._grpc_headers)
        return _call

    def _budget_left(self) -> bool:
        return not self.max_requests or self._dispatched < self.max_requests

    async def _worker(self, worker_id: int, deadline: float) -> None:
        loop = asyncio.get_running_loop()
        idx = worker_id
        while loop.time() < deadline and self._budget_left():
            self._dispatched += 1
            call = self._calls[idx % len(self._calls)]
            idx += 1
            response = await call()
            self._summary.record(response)
            if response.error is not None:
                logger.debug("warmup_call_failed", worker=worker_id, protocol=response.protocol, error=str(response.error))
            if self.request_delay_ms:
                await asyncio.sleep(self.request_delay_ms / 1000)

    async def run(self) -> WarmupSummary:
        if not self._calls:
            logger.warning("warmup_no_requests")
            return self._summary

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.max_duration_seconds
        logger.info(
            "warmup_started",
            requests=len(self._calls),
            concurrency=self.concurrency,
            max_duration_seconds=self.max_duration_seconds,
            max_requests=self.max_requests,
        )
        await asyncio.gather(*(self._worker(i, deadline) for i in range(self.concurrency)))
        self._summary.elapsed_s = loop.time() - started
        logger.info("warmup_summary", **self._summary.as_dict())
        return self._summary
