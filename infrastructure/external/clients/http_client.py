"""
HTTP warmup client

Sends a parsed Request over a shared httpx.AsyncClient and reports the
outcome as a Response:
- lazy, exactly-once client creation
- per-call timeout
- optional insecure mode (TLS verification off)
- no retries
"""
from __future__ import annotations

import time
from typing import Dict, Optional, Sequence

import httpx

from application.utils.descriptors import parse_headers
from core.logging_config import get_logger
from domain.common.exceptions import ConnectionFailedException
from domain.request.entity import Request
from domain.response.entity import Response
from infrastructure.external.clients.base import BaseProtocolClient
from shared.codes import WarmupCode


logger = get_logger(__name__)


class HttpClient(BaseProtocolClient):
    """Warmup client for HTTP targets."""

    protocol = "http"

    def __init__(
        self,
        host: str,
        insecure: bool = False,
        timeout_seconds: int = 10,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            host: base URL of the target, e.g. ``http://localhost:8080``
            insecure: skip TLS certificate verification
            timeout_seconds: per-call timeout
            headers: default headers sent with every request
            transport: custom httpx transport (tests use httpx.MockTransport)
        """
        super().__init__(host.rstrip("/"), insecure=insecure, timeout_seconds=timeout_seconds)
        self.default_headers = {"User-Agent": "warmup-client/1.0"}
        if headers:
            self.default_headers.update(headers)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _connect(self, headers: Sequence[str]) -> None:
        if self.insecure:
            logger.info("http_client_insecure", host=self.host)
        self._client = httpx.AsyncClient(
            base_url=self.host,
            timeout=httpx.Timeout(self.timeout_seconds),
            verify=not self.insecure,
            follow_redirects=True,
            transport=self._transport,
        )
        logger.info("http_client_ready", host=self.host)

    async def _close(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def send_request(self, request: Request, headers: Sequence[str] = ()) -> Response:
        """Send one request; never raises, failures are carried in the Response."""
        connect_error = await self._ensure_connected(headers)
        if connect_error is not None:
            return self._failed(connect_error)
        client = self._client
        if client is None:
            # closed after the connect check
            return self._failed(self._connect_error or ConnectionFailedException(
                f"{self.protocol} client closed", host=self.host, protocol=self.protocol
            ))

        request_headers = {**self.default_headers, **dict(parse_headers(headers))}
        content = request.body.encode("utf-8") if request.has_body else None

        logger.debug("http_request", method=request.method.value, path=request.path, has_body=request.has_body)
        started = time.perf_counter()
        try:
            response = await client.request(
                request.method.value,
                request.path,
                content=content,
                headers=request_headers,
            )
        except httpx.TimeoutException as exc:
            error = self._invocation_error(f"Request timeout after {self.timeout_seconds}s: {exc}")
            return self._response(started, time.perf_counter(), error=error)
        except httpx.HTTPError as exc:
            error = self._invocation_error(f"Network error: {exc}")
            return self._response(started, time.perf_counter(), error=error)
        except httpx.InvalidURL as exc:
            # not an HTTPError subclass; raised while building the URL from the path
            error = self._invocation_error(f"Invalid URL for path {request.path!r}: {exc}")
            return self._response(started, time.perf_counter(), error=error)
        ended = time.perf_counter()

        error = None
        if response.is_error:
            error = self._invocation_error(
                f"{request.method.value} {request.path} failed",
                status_code=response.status_code,
                code=WarmupCode.HTTP_STATUS_ERROR,
            )
        result = self._response(started, ended, error=error, status_code=response.status_code)

        logger.debug(
            "http_response",
            method=request.method.value,
            path=request.path,
            status_code=response.status_code,
            elapsed_ms=round(result.elapsed_ms, 2),
        )
        return result
