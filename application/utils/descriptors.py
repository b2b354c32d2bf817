"""Parsing of compact request descriptors and header strings."""
from __future__ import annotations

from typing import Iterable

from application.utils.templating import interpolate_placeholders
from domain.common.exceptions import InvalidDescriptorException
from domain.request.entity import GrpcRequest, HttpMethod, Request


def parse_http_request(descriptor: str) -> Request:
    """Parse ``<method>:<path>[:body]`` into a Request.

    Only the first two colons split, so a body may contain ``:``. Path and
    body are interpolated.

    Raises:
        InvalidDescriptorException: fewer than two segments or an unsupported method
    """
    parts = descriptor.split(":", 2)
    if len(parts) < 2:
        raise InvalidDescriptorException(descriptor, "expected format <http-method>:<path>[:body]")

    method = HttpMethod.from_token(parts[0], descriptor)
    path = interpolate_placeholders(parts[1])
    if len(parts) == 2:
        return Request(method=method, path=path, body=None)
    return Request(method=method, path=path, body=interpolate_placeholders(parts[2]))


def parse_grpc_request(descriptor: str) -> GrpcRequest:
    """Parse ``<package.Service/Method>[:message]`` into a GrpcRequest.

    The message is everything after the first colon and is interpolated.
    """
    service_method, sep, message = descriptor.partition(":")
    service_method = service_method.strip()
    if not service_method:
        raise InvalidDescriptorException(descriptor, "expected format <service/method>[:message]")
    return GrpcRequest(
        service_method=service_method,
        message=interpolate_placeholders(message) if sep else "",
    )


def parse_headers(headers: Iterable[str], lowercase_keys: bool = False) -> list[tuple[str, str]]:
    """Turn ``"key: value"`` strings into ordered (key, value) pairs."""
    pairs: list[tuple[str, str]] = []
    for header in headers:
        key, _, value = header.partition(":")
        key = key.strip()
        if not key:
            continue
        pairs.append((key.lower() if lowercase_keys else key, value.strip()))
    return pairs
