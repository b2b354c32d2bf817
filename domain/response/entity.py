"""
Warmup response entity - the uniform outcome of one dispatched call.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


@dataclass(frozen=True)
class Response:
    """Outcome of one warmup call, produced identically by every protocol client.

    Fields:
      - duration: wall-clock time of the remote call, zero if no call was made
      - error: set iff the call did not succeed
      - protocol: tag of the client that produced it ("http", "grpc")
      - status_code: HTTP status or gRPC status name, when one was received
    """

    duration: timedelta
    error: Optional[Exception]
    protocol: str
    status_code: Optional[str | int] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def elapsed_ms(self) -> float:
        return self.duration.total_seconds() * 1000

    @classmethod
    def failed(cls, error: Exception, protocol: str) -> "Response":
        """A response for a call that was never attempted."""
        return cls(duration=timedelta(0), error=error, protocol=protocol)
