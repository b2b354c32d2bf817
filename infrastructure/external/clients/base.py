"""
Base protocol client implementing shared concerns: connect-once, close, report.

Concrete protocols subclass and implement ``_connect`` / ``_close`` plus their
own ``send_request``.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional, Sequence

from core.logging_config import get_logger
from domain.common.exceptions import ConnectionFailedException, InvocationException
from domain.response.entity import Response


logger = get_logger(__name__)


class BaseProtocolClient(ABC):
    protocol: str = "base"

    def __init__(self, host: str, insecure: bool = False, timeout_seconds: int = 10) -> None:
        self.host = host
        self.insecure = insecure
        self.timeout_seconds = timeout_seconds
        self._connect_lock = asyncio.Lock()
        self._connect_attempted = False
        self._connect_error: Optional[ConnectionFailedException] = None

    @property
    def connected(self) -> bool:
        return self._connect_attempted and self._connect_error is None

    @abstractmethod
    async def _connect(self, headers: Sequence[str]) -> None:
        """Open the transport. Runs at most once per client instance."""

    @abstractmethod
    async def _close(self) -> None:
        """Release the transport. Must tolerate being called when nothing is open."""

    async def _ensure_connected(self, headers: Sequence[str] = ()) -> Optional[ConnectionFailedException]:
        """Run the connect sequence once; return the remembered failure, if any.

        Callers arriving while a connect is in flight wait for it and observe
        the same outcome. A failed connect is never retried.
        """
        async with self._connect_lock:
            if self._connect_attempted:
                return self._connect_error
            self._connect_attempted = True
            try:
                await self._connect(headers)
            except ConnectionFailedException as exc:
                self._connect_error = exc
            except asyncio.CancelledError:
                self._connect_error = ConnectionFailedException(
                    f"{self.protocol} connect cancelled", host=self.host, protocol=self.protocol
                )
                raise
            except Exception as exc:
                err = ConnectionFailedException(f"{self.protocol} connect: {exc}", host=self.host, protocol=self.protocol)
                err.__cause__ = exc
                self._connect_error = err

            if self._connect_error is not None:
                logger.error(
                    "client_connect_failed",
                    protocol=self.protocol,
                    host=self.host,
                    error=str(self._connect_error),
                )
            return self._connect_error

    async def close(self) -> None:
        """Close the transport. Safe to call repeatedly or before any connect."""
        async with self._connect_lock:
            if not self.connected:
                return
            logger.info("client_closing", protocol=self.protocol, host=self.host)
            # later dispatches report the client as closed instead of reconnecting
            self._connect_error = ConnectionFailedException(
                f"{self.protocol} client closed", host=self.host, protocol=self.protocol
            )
            await self._close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Helpers
    def _response(
        self,
        started: float,
        ended: float,
        error: Optional[Exception] = None,
        status_code: Optional[str | int] = None,
    ) -> Response:
        return Response(
            duration=timedelta(seconds=ended - started),
            error=error,
            protocol=self.protocol,
            status_code=status_code,
        )

    def _failed(self, error: Exception) -> Response:
        return Response.failed(error, self.protocol)

    def _invocation_error(self, message: str, **kwargs) -> InvocationException:
        return InvocationException(message, protocol=self.protocol, **kwargs)
