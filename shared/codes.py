"""
Shared warmup error codes used across layers (Domain/Application/Infrastructure).

This module provides a single source of truth so every failure reported in a
``Response`` can be classified without string matching.
"""
from enum import IntEnum


class WarmupCode(IntEnum):
    """Warmup status codes (single source)."""

    SUCCESS = 0

    # Descriptor errors (1xxxx)
    INVALID_DESCRIPTOR = 10000
    UNSUPPORTED_METHOD = 10001

    # Connection errors (2xxxx)
    CONNECTION_ERROR = 20000
    DIAL_TIMEOUT = 20001
    REFLECTION_ERROR = 20002

    # Invocation errors (3xxxx)
    INVOCATION_ERROR = 30000
    METHOD_NOT_FOUND = 30001
    MESSAGE_PARSE_ERROR = 30002
    HTTP_STATUS_ERROR = 30003

    # Template warnings (4xxxx), never raised
    TEMPLATE_WARNING = 40000
